"""Tag formatting, validation and branch-derived version constraints.

A tag formatter answers three questions about release tags: which glob
pattern future tags should match, whether a tag string is acceptable, and
what (major, minor, patch) a tag encodes. ``BranchVersioningTagFormatter``
wraps any formatter and narrows all three answers to the version embedded in
the current branch name (``release/2.5`` pins tags to ``2.5.x``).
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterable, Protocol

from shared import log_event

if TYPE_CHECKING:
    from action_config import ActionConfig


LOGGER = logging.getLogger("branchtag.tag_formatting")

VERSION_PLACEHOLDER = "*[0-9].*[0-9].*[0-9]"
NAMESPACE_SEPARATOR = "-"
DEFAULT_BRANCH_VERSION_RE = re.compile(r"[0-9]+\.[0-9]+\Z|[0-9]+\Z")
DELIMITED_PATTERN_RE = re.compile(r"/.+/[i]*")
VERSION_SEGMENT_RE = re.compile(r"[0-9]+")


class ConfigurationError(ValueError):
    """Branch name and version-from-branch pattern do not agree."""


class TagFormatter(Protocol):
    def get_pattern(self) -> str: ...

    def is_valid(self, tag: str) -> bool: ...

    def parse(self, tag: str) -> tuple[int, int, int]: ...


@dataclass(frozen=True)
class BranchConstraint:
    """Version pinned by the branch name; ``major is None`` means no pin."""

    major: int | None = None
    minor: int | None = None

    @property
    def active(self) -> bool:
        return self.major is not None


INACTIVE = BranchConstraint()


class DefaultTagFormatter:
    """Formats ``{prefix}M.m.p`` tags, optionally suffixed with ``-{namespace}``."""

    def __init__(self, tag_prefix: str = "v", namespace: str = "") -> None:
        self.tag_prefix = tag_prefix
        self.namespace = namespace
        suffix = f"{re.escape(NAMESPACE_SEPARATOR)}{re.escape(namespace)}" if namespace else ""
        self._valid_re = re.compile(rf"{re.escape(tag_prefix)}[0-9]+\.[0-9]+\.[0-9]+{suffix}")

    def _namespace_suffix(self) -> str:
        return f"{NAMESPACE_SEPARATOR}{self.namespace}" if self.namespace else ""

    def format(self, major: int, minor: int, patch: int) -> str:
        return f"{self.tag_prefix}{major}.{minor}.{patch}{self._namespace_suffix()}"

    def get_pattern(self) -> str:
        return f"{self.tag_prefix}{VERSION_PLACEHOLDER}{self._namespace_suffix()}"

    def is_valid(self, tag: str) -> bool:
        return self._valid_re.fullmatch(tag) is not None

    def parse(self, tag: str) -> tuple[int, int, int]:
        if tag == "":
            return (0, 0, 0)

        # Tags may arrive as ref paths (refs/tags/v1.2.3).
        version = tag.rsplit("/", 1)[-1]
        if self.tag_prefix and version.startswith(self.tag_prefix):
            version = version[len(self.tag_prefix):]
        suffix = self._namespace_suffix()
        if suffix and version.endswith(suffix):
            version = version[: -len(suffix)]

        values = version.split(".")
        if len(values) > 3 or not all(VERSION_SEGMENT_RE.fullmatch(value) for value in values):
            raise ValueError(f"invalid tag: {tag}")

        numbers = [int(value) for value in values] + [0] * (3 - len(values))
        return (numbers[0], numbers[1], numbers[2])


def compile_branch_pattern(pattern: str) -> re.Pattern[str]:
    """Compile ``/body/flags`` (flags limited to ``i``) or a bare regex body."""
    if DELIMITED_PATTERN_RE.fullmatch(pattern):
        end = pattern.rindex("/")
        flags = re.IGNORECASE if "i" in pattern[end + 1:] else 0
        return re.compile(pattern[1:end], flags)
    return re.compile(pattern)


def _parse_segment(segment: str, field: str, branch_name: str) -> int:
    if not VERSION_SEGMENT_RE.fullmatch(segment):
        raise ConfigurationError(
            f"The {field} version '{segment}' parsed from branch '{branch_name}' is invalid. "
            "It must be a number."
        )
    return int(segment)


def extract_branch_constraint(version_from_branch: bool | str, branch_name: str) -> BranchConstraint:
    """Derive the version pin from a branch name.

    ``version_from_branch`` is ``False`` to disable pinning, ``True`` for the
    default trailing ``M`` or ``M.m`` pattern, or a pattern string. A pattern may capture the version in
    one group; with no groups the whole match is used. A branch the pattern
    does not match is not an error, it simply yields ``INACTIVE``.

    Raises:
        ConfigurationError: the match is ambiguous or the captured text is
            not ``major`` or ``major.minor``.
        re.error: the pattern does not compile.
    """
    if version_from_branch is False:
        return INACTIVE
    if version_from_branch is True:
        pattern = DEFAULT_BRANCH_VERSION_RE
    else:
        pattern = compile_branch_pattern(str(version_from_branch))

    match = pattern.search(branch_name)
    if match is None:
        return INACTIVE

    if pattern.groups == 0:
        fragment = match.group(0)
    elif pattern.groups == 1 and match.group(1) is not None:
        fragment = match.group(1)
    else:
        raise ConfigurationError(
            f"Unable to parse version from branch named '{branch_name}' "
            f"using pattern '{pattern.pattern}'"
        )

    values = fragment.split(".")
    if len(values) > 2:
        raise ConfigurationError(
            f"The version string '{fragment}' parsed from branch '{branch_name}' is invalid. "
            "It must be in the format 'major.minor' or 'major'"
        )

    major = _parse_segment(values[0], "major", branch_name)
    minor = _parse_segment(values[1], "minor", branch_name) if len(values) > 1 else None
    return BranchConstraint(major=major, minor=minor)


class BranchVersioningTagFormatter:
    """Narrow a formatter to the version encoded in the branch name."""

    def __init__(self, base: TagFormatter, version_from_branch: bool | str, branch_name: str) -> None:
        self.base = base
        self.branch_name = branch_name
        self.constraint = extract_branch_constraint(version_from_branch, branch_name)
        log_event(
            LOGGER,
            logging.DEBUG,
            "branch_constraint_resolved",
            branch=branch_name,
            active=self.constraint.active,
            major=self.constraint.major,
            minor=self.constraint.minor,
        )

    def get_pattern(self) -> str:
        pattern = self.base.get_pattern()
        constraint = self.constraint
        if not constraint.active:
            return pattern

        if constraint.minor is None:
            return pattern.replace(VERSION_PLACEHOLDER, f"{constraint.major}.*[0-9].*[0-9]", 1)
        return pattern.replace(VERSION_PLACEHOLDER, f"{constraint.major}.{constraint.minor}.*[0-9]", 1)

    def is_valid(self, tag: str) -> bool:
        if not self.constraint.active:
            return self.base.is_valid(tag)
        if not self.base.is_valid(tag):
            return False

        major, minor, _ = self.base.parse(tag)
        if major != self.constraint.major:
            return False
        return self.constraint.minor is None or minor == self.constraint.minor

    def parse(self, tag: str) -> tuple[int, int, int]:
        parsed = self.base.parse(tag)
        constraint = self.constraint
        if not constraint.active:
            return parsed
        minor = parsed[1] if constraint.minor is None else constraint.minor
        return (constraint.major, minor, parsed[2])


def build_tag_formatter(config: ActionConfig, branch_name: str) -> BranchVersioningTagFormatter:
    """Wrap the default formatter; with version-from-branch off the constraint is inactive."""
    base = DefaultTagFormatter(tag_prefix=config.tag_prefix, namespace=config.namespace)
    return BranchVersioningTagFormatter(base, config.version_from_branch, branch_name)


def latest_valid_tag(formatter: TagFormatter, tags: Iterable[str]) -> str | None:
    """Return the highest tag the formatter accepts, or None."""
    valid = [tag for tag in tags if formatter.is_valid(tag)]
    if not valid:
        return None
    return max(valid, key=formatter.parse)
