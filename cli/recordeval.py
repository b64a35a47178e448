#!/usr/bin/env python3
"""
RecordEval CLI: JSON dataset + run profile → classification report.

Usage:
    python recordeval.py references/examples/students.json
    python recordeval.py data.json --profile by_city
    python recordeval.py data.json --script my_rules.evs --dump
    python recordeval.py --check my_rules.evs

Options:
    --profile NAME   Run profile (default: default_profile from the config)
    --config PATH    Run profile config (default: configs/run_profiles.yaml)
    --script FILE    Use this script instead of the profile's
    --simple         Force the simplified run variant
    --dump           Print the evaluated records as JSON
    --check FILE     Lint and statically check a script, then exit
    --verbose / -v   Debug logging
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path

# Ensure src/ is importable
_SCRIPT_DIR = Path(__file__).resolve().parent
_SRC_DIR = _SCRIPT_DIR.parent / "src"
if str(_SRC_DIR) not in sys.path:
    sys.path.insert(0, str(_SRC_DIR))

logger = logging.getLogger("recordeval")


def _check(script_path: Path) -> int:
    from errors import ScriptSyntaxError
    from script_checks import check_script
    from script_linter import lint_script
    from script_parser import parse_script

    lint_result = lint_script(script_path.read_text(), repair_structure=False)
    for c in lint_result.changes:
        print(f"  lint L{c.line} [{c.kind}] {c.original!r} -> {c.replacement!r}")
    try:
        ir = parse_script(lint_result.text)
    except ScriptSyntaxError as e:
        print(f"Error: {e}")
        return 1

    report = check_script(ir)
    print(f"{ir.statement_count()} statements, {report.summary()}")
    for finding in report.findings:
        print(f"  {finding!r}")
    return 1 if report.has_errors else 0


def _load_records(path: Path) -> list:
    with open(path) as f:
        data = json.load(f)
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON list of objects")
    return data


def main():
    parser = argparse.ArgumentParser(
        prog="recordeval",
        description="RecordEval: classify a dataset with an evaluation script",
    )
    parser.add_argument("data", nargs="?", default=None, help="JSON file holding a list of records")
    parser.add_argument("--profile", type=str, default=None, help="Run profile name")
    parser.add_argument("--config", type=str, default=None, help="Run profile YAML config")
    parser.add_argument("--script", type=str, default=None, help="Script file overriding the profile's")
    parser.add_argument("--simple", action="store_true", help="Use the simplified run variant")
    parser.add_argument("--dump", action="store_true", help="Print evaluated records as JSON")
    parser.add_argument("--check", type=str, default=None, metavar="FILE", help="Check a script and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.check:
        check_path = Path(args.check)
        if not check_path.exists():
            print(f"Error: File not found: {check_path}")
            sys.exit(1)
        sys.exit(_check(check_path))

    if not args.data:
        parser.print_usage()
        sys.exit(1)

    from errors import RecordEvalError
    from evaluator import Evaluator
    from record_shape import MappingIntrospector
    from run_profiles import execute_profile, get_profile

    data_path = Path(args.data)
    if not data_path.exists():
        print(f"Error: File not found: {data_path}")
        sys.exit(1)

    try:
        profile = get_profile(args.profile, args.config)
        records = _load_records(data_path)
        if args.simple:
            profile = replace(profile, mode="simple")
        script = Path(args.script).read_text() if args.script else None
        evaluator = Evaluator(dict, introspector=MappingIntrospector(records))
        outcome = execute_profile(evaluator, profile, records, script=script)
    except (OSError, ValueError, KeyError, RecordEvalError) as e:
        print(f"Error: {e}")
        sys.exit(1)

    logger.debug("fields: %s", ", ".join(evaluator.fields))

    if isinstance(outcome, str):
        ok, message = outcome == "Success", outcome
    else:
        ok, message = outcome.success, outcome.message

    if not ok:
        print(f"Error: {message}")
        sys.exit(1)

    print(message)
    print(evaluator.result_description, end="")

    if args.dump:
        print(json.dumps(records, indent=2, default=str))


if __name__ == "__main__":
    main()
