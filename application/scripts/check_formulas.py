#!/usr/bin/env python3
"""Validate service definition JSON files (one service or a list per file). Exit 1 on any issue."""

import json
import sys
from pathlib import Path

from quote_calculator.formula_engine import validate_service
from quote_calculator.models import Service


def check_file(path: Path) -> int:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        print(f"{path}: cannot read: {e}", file=sys.stderr)
        return 1

    problems = 0
    for raw in data if isinstance(data, list) else [data]:
        try:
            service = Service.from_dict(raw)
        except (ValueError, TypeError) as e:
            print(f"{path}: invalid service: {e}", file=sys.stderr)
            problems += 1
            continue
        for issue in validate_service(service):
            print(f"{path}: service {service.id} ({service.name}): {issue}")
            problems += 1
    return problems


def main():
    if len(sys.argv) < 2:
        print(f"usage: {Path(sys.argv[0]).name} SERVICE.json [...]", file=sys.stderr)
        sys.exit(2)
    problems = sum(check_file(Path(arg)) for arg in sys.argv[1:])
    if problems:
        print(f"{problems} problem(s) found.", file=sys.stderr)
        sys.exit(1)
    print("All formulas OK.")


if __name__ == "__main__":
    main()
