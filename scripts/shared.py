#!/usr/bin/env python3
"""Helpers shared by the tag scripts: JSON event logging, GitHub HTTP, step outputs."""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

if TYPE_CHECKING:
    import requests


RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def configure_logging(level_name: str) -> None:
    level = getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr)


def log_event(logger: logging.Logger, level: int, event: str, **fields: Any) -> None:
    payload = {"event": event, **fields}
    logger.log(level, json.dumps(payload, sort_keys=True, default=str))


def is_rate_limited(response: "requests.Response") -> bool:
    """GitHub signals an exhausted primary rate limit with 403 and zero remaining."""
    return response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0"


def retry_delay(retry_backoff: float, attempt: int, response: "requests.Response | None" = None) -> float:
    """Exponential backoff, stretched to GitHub's Retry-After when it asks for longer."""
    delay = retry_backoff * (2 ** (attempt - 1))
    if response is None:
        return delay
    retry_after = str(response.headers.get("Retry-After", "")).strip()
    if retry_after.isdigit():
        return max(delay, float(retry_after))
    return delay


def request_with_retry(
    logger: logging.Logger,
    session: "requests.Session",
    method: str,
    url: str,
    *,
    timeout: int,
    retries: int,
    retry_backoff: float,
    **kwargs: Any,
) -> "requests.Response":
    """Send one GitHub API request.

    Timeouts, connection errors, 429/5xx and rate-limited 403 responses are
    retried up to ``retries`` times. The final response goes through
    ``raise_for_status``; the last transport error is re-raised.
    """
    # Lazy import: tag_formatting only needs log_event.
    import requests

    max_attempts = retries + 1
    method_upper = method.upper()

    for attempt in range(1, max_attempts + 1):
        final = attempt == max_attempts
        try:
            response = session.request(method=method_upper, url=url, timeout=timeout, **kwargs)
        except (requests.Timeout, requests.ConnectionError) as exc:
            if final:
                raise
            delay = retry_delay(retry_backoff, attempt)
            log_event(
                logger,
                logging.WARNING,
                "github_request_retry",
                attempt=attempt,
                max_attempts=max_attempts,
                url=url,
                reason=type(exc).__name__,
                wait_seconds=delay,
            )
            time.sleep(delay)
            continue

        retryable = response.status_code in RETRYABLE_STATUS_CODES or is_rate_limited(response)
        if final or not retryable:
            response.raise_for_status()
            return response

        delay = retry_delay(retry_backoff, attempt, response)
        log_event(
            logger,
            logging.WARNING,
            "github_request_retry",
            attempt=attempt,
            max_attempts=max_attempts,
            url=url,
            reason=f"HTTP {response.status_code}",
            wait_seconds=delay,
        )
        time.sleep(delay)

    raise RuntimeError("failed to receive HTTP response")


def github_headers(github_token: str) -> dict[str, str]:
    headers = {"Accept": "application/vnd.github+json"}
    if github_token:
        headers["Authorization"] = f"token {github_token}"
    return headers


def write_github_output(path: Path, values: Mapping[str, object]) -> None:
    """Append ``key=value`` lines to a $GITHUB_OUTPUT file."""
    lines = [f"{key}={value}" for key, value in values.items()]
    with path.open("a", encoding="utf-8") as handle:
        handle.write("\n".join(lines) + "\n")
