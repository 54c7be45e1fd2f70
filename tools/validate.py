#!/usr/bin/env python3
"""Check a Maplewood Lane world file before it ships.

Structural errors (bad ids, unknown requirement keys, broken dialogue links)
fail the run. Progression warnings (clues nothing awards, puzzles that can
never open, unreachable dialogue nodes) are reported and only fail the run
with ``--strict``.
"""

from __future__ import annotations

import argparse
import json
import re
import sys
from collections import defaultdict
from pathlib import Path
from typing import Dict, List, Sequence

REPO_ROOT = Path(__file__).resolve().parents[1]

if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from maplewood.content import DEFAULT_WORLD_PATH
from maplewood.world_schema import validate_world
from tools.softlock import analyze_softlocks

_SECTION = re.compile(r"^([A-Za-z_]+)")


def group_by_section(messages: Sequence[str]) -> Dict[str, List[str]]:
    """Bucket ``path: message`` lines by the world section they point at."""
    grouped: Dict[str, List[str]] = defaultdict(list)
    for message in messages:
        match = _SECTION.match(message)
        grouped[match.group(1) if match else "world"].append(message)
    return dict(grouped)


def print_report(heading: str, messages: Sequence[str]) -> None:
    print(f"{heading} ({len(messages)}):")
    for section, lines in sorted(group_by_section(messages).items()):
        print(f"  [{section}]")
        for line in lines:
            print(f"   - {line}")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check Maplewood Lane world content.")
    parser.add_argument(
        "world_path",
        nargs="?",
        default=str(DEFAULT_WORLD_PATH),
        help="World JSON file (defaults to the bundled Maplewood Lane world).",
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Fail when any progression warning is found.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str]) -> int:
    args = parse_args(argv[1:])
    world_path = Path(args.world_path).resolve()
    try:
        world = json.loads(world_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        print(f"No world file at {world_path}")
        return 1
    except json.JSONDecodeError as exc:
        print(f"{world_path} is not valid JSON: {exc}")
        return 1

    errors = validate_world(world)
    if errors:
        print_report(f"Structural errors in {world_path.name}", errors)
        return 1

    warnings = analyze_softlocks(world)
    if warnings:
        print_report("Progression warnings", warnings)
        if args.strict:
            print("Strict mode: progression warnings are fatal.")
            return 1

    print(f"World {world.get('title')!r} is consistent ({world_path}).")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
