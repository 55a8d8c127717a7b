#!/usr/bin/env python3
"""Check that a candidate tag is allowed on a version branch."""

from __future__ import annotations

import argparse
import sys

from action_config import add_config_arguments, config_from_args
from tag_formatting import build_tag_formatter


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Validate a release tag against the branch version.")
    parser.add_argument("--tag", required=True, help="Candidate tag (e.g. v2.5.1).")
    parser.add_argument("--branch", required=True, help="Branch the tag would be created from.")
    add_config_arguments(parser)
    return parser.parse_args(argv)


def check_tag(tag: str, branch: str, args: argparse.Namespace) -> str:
    """Return ``major.minor.patch`` for an accepted tag; raise ValueError otherwise."""
    formatter = build_tag_formatter(config_from_args(args), branch)
    if not formatter.is_valid(tag):
        raise ValueError(f"tag '{tag}' does not match pattern '{formatter.get_pattern()}' for branch '{branch}'")
    major, minor, patch = formatter.parse(tag)
    return f"{major}.{minor}.{patch}"


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    try:
        version = check_tag(args.tag.strip(), args.branch.strip(), args)
    except ValueError as exc:
        print(f"::error::{exc}", file=sys.stderr)
        return 1

    print(version)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
