"""Action inputs shared by the tag scripts."""

from __future__ import annotations

import argparse
import os
import re
from dataclasses import dataclass

from tag_formatting import compile_branch_pattern


FALSE_VALUES = frozenset({"", "false"})
TRUE_VALUES = frozenset({"true"})
WHITESPACE_RE = re.compile(r"\s")


@dataclass(frozen=True)
class ActionConfig:
    tag_prefix: str = "v"
    namespace: str = ""
    version_from_branch: bool | str = False


def parse_version_from_branch(raw: str) -> bool | str:
    """Map the version-from-branch input to False, True or a pattern string."""
    value = raw.strip()
    if value.lower() in FALSE_VALUES:
        return False
    if value.lower() in TRUE_VALUES:
        return True
    return value


def add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tag-prefix",
        default=os.environ.get("INPUT_TAG_PREFIX", "v"),
        help="Prefix placed before the version in tags (default: v).",
    )
    parser.add_argument(
        "--namespace",
        default=os.environ.get("INPUT_NAMESPACE", ""),
        help="Optional namespace appended to tags as -<namespace>.",
    )
    parser.add_argument(
        "--version-from-branch",
        default=os.environ.get("INPUT_VERSION_FROM_BRANCH", "false"),
        help=(
            "Derive a major or major.minor constraint from the branch name: "
            "'true' for the default pattern, a regex (optionally /pattern/i), or 'false'."
        ),
    )


def config_from_args(args: argparse.Namespace) -> ActionConfig:
    if WHITESPACE_RE.search(args.tag_prefix):
        raise ValueError("tag-prefix cannot contain whitespace")
    if WHITESPACE_RE.search(args.namespace) or "/" in args.namespace:
        raise ValueError("namespace cannot contain whitespace or '/'")

    version_from_branch = parse_version_from_branch(args.version_from_branch)
    if isinstance(version_from_branch, str):
        try:
            compile_branch_pattern(version_from_branch)
        except re.error as exc:
            raise ValueError(f"version-from-branch is not a valid pattern: {exc}") from exc

    return ActionConfig(
        tag_prefix=args.tag_prefix,
        namespace=args.namespace.strip(),
        version_from_branch=version_from_branch,
    )
