from __future__ import annotations

import argparse
import importlib.util
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Callable

import pytest
import requests


REPO_ROOT = Path(__file__).resolve().parents[1]


def load_script_module(module_name: str, relative_path: str) -> ModuleType:
    module_path = REPO_ROOT / relative_path
    scripts_dir = str(module_path.parent)
    if scripts_dir not in sys.path:
        sys.path.insert(0, scripts_dir)

    spec = importlib.util.spec_from_file_location(module_name, module_path)
    if spec is None or spec.loader is None:
        raise RuntimeError(f"unable to load module from {module_path}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class StubFormatter:
    """Base formatter double with canned answers, for decorator tests."""

    def __init__(
        self,
        *,
        pattern: str = "v*[0-9].*[0-9].*[0-9]",
        valid: bool = True,
        parsed: tuple[int, int, int] = (0, 0, 0),
    ) -> None:
        self.pattern = pattern
        self.valid = valid
        self.parsed = parsed
        self.calls: list[tuple[str, str]] = []

    def get_pattern(self) -> str:
        self.calls.append(("get_pattern", ""))
        return self.pattern

    def is_valid(self, tag: str) -> bool:
        self.calls.append(("is_valid", tag))
        return self.valid

    def parse(self, tag: str) -> tuple[int, int, int]:
        self.calls.append(("parse", tag))
        return self.parsed


@pytest.fixture
def stub_formatter_factory() -> Callable[..., StubFormatter]:
    return StubFormatter


@pytest.fixture
def config_namespace() -> Callable[..., argparse.Namespace]:
    def _factory(**kwargs: Any) -> argparse.Namespace:
        values = {"tag_prefix": "v", "namespace": "", "version_from_branch": "false"}
        values.update(kwargs)
        return argparse.Namespace(**values)

    return _factory


@pytest.fixture
def clean_github_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "GITHUB_HEAD_REF",
        "GITHUB_REF_NAME",
        "GITHUB_OUTPUT",
        "GITHUB_REPOSITORY",
        "GITHUB_TOKEN",
        "INPUT_TAG_PREFIX",
        "INPUT_NAMESPACE",
        "INPUT_VERSION_FROM_BRANCH",
    ):
        monkeypatch.delenv(name, raising=False)


class FakeResponse:
    def __init__(
        self,
        *,
        status_code: int,
        json_data: Any = None,
        text: str = "",
        headers: dict[str, str] | None = None,
    ):
        self.status_code = status_code
        self.headers = headers or {}
        self._json_data = json_data
        self.text = text

    def json(self) -> Any:
        return self._json_data

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            error = requests.HTTPError(f"HTTP {self.status_code}")
            error.response = self
            raise error


class RequestSequenceSession:
    def __init__(self, outcomes: list[object]):
        self._outcomes = list(outcomes)
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, *, method: str, url: str, timeout: int, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, "timeout": timeout, "kwargs": kwargs})
        outcome = self._outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def request_session_factory():
    return RequestSequenceSession


@pytest.fixture(scope="session")
def resolve_version_tag():
    return load_script_module("branchtag_resolve_version_tag", "scripts/resolve-version-tag.py")


@pytest.fixture(scope="session")
def validate_branch_tag():
    return load_script_module("branchtag_validate_branch_tag", "scripts/validate-branch-tag.py")
