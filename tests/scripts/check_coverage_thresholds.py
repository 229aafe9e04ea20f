"""Fail CI when rotator packages drop below their coverage floor.

Usage: python tests/scripts/check_coverage_thresholds.py coverage.json
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

THRESHOLDS = {
    "rotator/core": 95.0,
    "rotator/services": 90.0,
    "rotator/clients": 85.0,
    "rotator/routers": 80.0,
}


def _covered(report: dict, prefix: str) -> tuple[int, int, int]:
    """Return (files, statements, covered lines) under a path prefix."""
    files = statements = covered = 0
    for file_path, payload in report.get("files", {}).items():
        if not file_path.replace("\\", "/").startswith(prefix):
            continue
        files += 1
        statements += int(payload["summary"]["num_statements"])
        covered += int(payload["summary"]["covered_lines"])
    return files, statements, covered


def main(argv: list[str] | None = None) -> int:
    """Print per-package coverage and return non-zero on any shortfall."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("report", type=Path, help="coverage JSON produced by `coverage json`")
    args = parser.parse_args(argv)

    if not args.report.exists():
        print(f"Coverage report not found: {args.report}")
        return 2
    report = json.loads(args.report.read_text(encoding="utf-8"))

    failures: list[str] = []
    for prefix, threshold in THRESHOLDS.items():
        files, statements, covered = _covered(report, prefix)
        if files == 0:
            failures.append(f"{prefix}: no files matched")
            continue
        percentage = 100.0 if statements == 0 else covered / statements * 100.0
        print(f"{prefix}: {percentage:.2f}% over {files} files (floor {threshold:.0f}%)")
        if percentage < threshold:
            failures.append(f"{prefix}: {percentage:.2f}% < {threshold:.0f}%")

    for failure in failures:
        print(f"FAIL {failure}")
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
