#!/usr/bin/env python3
"""Resolve the tag pattern and latest release tag for the current branch.

With version-from-branch enabled, a branch such as ``release/2.5`` narrows
the tag search to ``v2.5.*`` and the reported version to ``2.5.x``. Tags are
only read, never created.
"""

from __future__ import annotations

import argparse
import fnmatch
import logging
import os
import re
import subprocess
from pathlib import Path

import requests

from action_config import add_config_arguments, config_from_args
from shared import configure_logging, github_headers, log_event, request_with_retry, write_github_output
from tag_formatting import (
    BranchVersioningTagFormatter,
    ConfigurationError,
    build_tag_formatter,
    latest_valid_tag,
)


DEFAULT_GITHUB_API_BASE_URL = "https://api.github.com"
REPOSITORY_RE = re.compile(r"^[^/\s]+/[^/\s]+$")
LOGGER = logging.getLogger("branchtag.resolve_version_tag")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Report the tag pattern and latest release tag allowed on the current branch."
    )
    parser.add_argument(
        "--branch",
        default="",
        help="Branch name (default: GITHUB_HEAD_REF, GITHUB_REF_NAME, then the checked-out branch).",
    )
    add_config_arguments(parser)
    parser.add_argument(
        "--source",
        default="git",
        choices=("git", "github"),
        help="Where to read tags from: local git refs or the GitHub API (default: git).",
    )
    parser.add_argument(
        "--repository",
        default=os.environ.get("GITHUB_REPOSITORY", ""),
        help="GitHub repository in owner/repo format (required for --source github).",
    )
    parser.add_argument(
        "--github-token",
        default=os.environ.get("GITHUB_TOKEN", ""),
        help="GitHub token with repository read access.",
    )
    parser.add_argument(
        "--api-base-url",
        default=DEFAULT_GITHUB_API_BASE_URL,
        help="GitHub API base URL (default: https://api.github.com).",
    )
    parser.add_argument("--timeout", type=int, default=30, help="HTTP timeout in seconds (default: 30).")
    parser.add_argument(
        "--retries",
        type=int,
        default=2,
        help="Number of retries for retryable HTTP failures (default: 2).",
    )
    parser.add_argument(
        "--retry-backoff",
        type=float,
        default=1.0,
        help="Base backoff seconds between retries (default: 1.0).",
    )
    parser.add_argument(
        "--github-output",
        default=os.environ.get("GITHUB_OUTPUT", ""),
        help="File to append step outputs to (default: $GITHUB_OUTPUT).",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Structured log verbosity written to stderr.",
    )
    return parser.parse_args(argv)


def validate_args(args: argparse.Namespace) -> None:
    if args.source == "github":
        if not args.repository or not REPOSITORY_RE.match(args.repository):
            raise ValueError("repository must match owner/repo")
        if not args.api_base_url.startswith(("http://", "https://")):
            raise ValueError("api-base-url must start with http:// or https://")
    if args.timeout <= 0:
        raise ValueError("timeout must be greater than zero")
    if args.retries < 0:
        raise ValueError("retries cannot be negative")
    if args.retry_backoff < 0:
        raise ValueError("retry-backoff cannot be negative")


def git_output(*args: str) -> str:
    return subprocess.check_output(["git", *args], text=True).strip()


def resolve_branch(explicit: str) -> str:
    for candidate in (explicit, os.environ.get("GITHUB_HEAD_REF", ""), os.environ.get("GITHUB_REF_NAME", "")):
        if candidate and candidate.strip():
            return candidate.strip()

    branch = git_output("rev-parse", "--abbrev-ref", "HEAD")
    if not branch or branch == "HEAD":
        raise RuntimeError("unable to determine branch name from a detached HEAD")
    return branch


def list_git_tags(pattern: str) -> list[str]:
    output = git_output("tag", "--list", "--merged", "HEAD", pattern)
    return [line.strip() for line in output.splitlines() if line.strip()]


def fetch_github_tags(
    *,
    api_base_url: str,
    repository: str,
    pattern: str,
    headers: dict[str, str],
    timeout: int,
    retries: int,
    retry_backoff: float,
    session: requests.Session | None = None,
) -> list[str]:
    created_session = session is None
    http = session or requests.Session()
    names: list[str] = []

    try:
        page = 1
        while True:
            response = request_with_retry(
                LOGGER,
                http,
                "GET",
                f"{api_base_url}/repos/{repository}/tags",
                headers=headers,
                params={"per_page": 100, "page": page},
                timeout=timeout,
                retries=retries,
                retry_backoff=retry_backoff,
            )
            payload = response.json()
            if not isinstance(payload, list):
                raise RuntimeError("GitHub tags response was not a list")
            names.extend(
                str(item["name"]) for item in payload if isinstance(item, dict) and item.get("name")
            )
            if len(payload) < 100:
                break
            page += 1
    finally:
        if created_session:
            http.close()

    return [name for name in names if fnmatch.fnmatchcase(name, pattern)]


def describe_version(formatter: BranchVersioningTagFormatter, branch: str, tags: list[str]) -> dict[str, str]:
    latest = latest_valid_tag(formatter, tags)
    major, minor, patch = formatter.parse(latest or "")
    return {
        "branch": branch,
        "tag_pattern": formatter.get_pattern(),
        "version_branch": "true" if formatter.constraint.active else "false",
        "latest_tag": latest or "",
        "major": str(major),
        "minor": str(minor),
        "patch": str(patch),
    }


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    configure_logging(args.log_level)

    try:
        validate_args(args)
        config = config_from_args(args)
    except ValueError as exc:
        log_event(LOGGER, logging.ERROR, "invalid_input", error=str(exc))
        return 1

    try:
        branch = resolve_branch(args.branch)
    except (subprocess.CalledProcessError, RuntimeError) as exc:
        log_event(LOGGER, logging.ERROR, "branch_lookup_failed", error=str(exc))
        return 1

    try:
        formatter = build_tag_formatter(config, branch)
    except ConfigurationError as exc:
        log_event(LOGGER, logging.ERROR, "invalid_configuration", branch=branch, error=str(exc))
        return 1

    pattern = formatter.get_pattern()
    try:
        if args.source == "github":
            tags = fetch_github_tags(
                api_base_url=args.api_base_url,
                repository=args.repository,
                pattern=pattern,
                headers=github_headers(args.github_token),
                timeout=args.timeout,
                retries=args.retries,
                retry_backoff=args.retry_backoff,
            )
        else:
            tags = list_git_tags(pattern)
    except (subprocess.CalledProcessError, requests.RequestException, RuntimeError) as exc:
        log_event(LOGGER, logging.ERROR, "tag_lookup_failed", source=args.source, pattern=pattern, error=str(exc))
        return 1

    outputs = describe_version(formatter, branch, tags)
    for key, value in outputs.items():
        print(f"{key}={value}")

    if args.github_output:
        try:
            write_github_output(Path(args.github_output), outputs)
        except OSError as exc:
            log_event(LOGGER, logging.ERROR, "github_output_write_failed", path=args.github_output, error=str(exc))
            return 1

    log_event(
        LOGGER,
        logging.INFO,
        "version_tag_resolved",
        branch=branch,
        pattern=pattern,
        tag_count=len(tags),
        latest_tag=outputs["latest_tag"],
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
