"""Fail when code reads the wall clock without going through TimeProvider.

Usage: python scripts/check_no_direct_datetime.py [PATH ...]
Defaults to the classbook package, the scripts folder and the root entry points.
"""

from __future__ import annotations

import re
import sys
from pathlib import Path
from typing import Iterable


ROOT = Path(__file__).resolve().parents[1]
DEFAULT_TARGETS = (
    ROOT / "classbook",
    ROOT / "scripts",
    ROOT / "bootstrap.py",
    ROOT / "healthcheck.py",
)
ALLOWED_FILES = {"classbook/core/time_provider.py", "scripts/check_no_direct_datetime.py"}

CLOCK_READ = re.compile(r"\b(?:datetime\.(?:now|utcnow|today)|date\.today|time\.time)\(")


def _python_files(targets: Iterable[Path]) -> Iterable[Path]:
    for target in targets:
        if target.is_dir():
            yield from sorted(target.rglob("*.py"))
        elif target.suffix == ".py" and target.exists():
            yield target


def find_violations(targets: Iterable[Path] = DEFAULT_TARGETS) -> list[tuple[str, int, str]]:
    violations: list[tuple[str, int, str]] = []
    for file_path in _python_files(targets):
        relative = file_path.resolve().relative_to(ROOT).as_posix()
        if relative in ALLOWED_FILES:
            continue
        for line_no, line in enumerate(file_path.read_text(encoding="utf-8").splitlines(), start=1):
            if CLOCK_READ.search(line):
                violations.append((relative, line_no, line.strip()))
    return violations


def main(argv: list[str]) -> int:
    targets = [Path(arg).resolve() for arg in argv] or list(DEFAULT_TARGETS)
    violations = find_violations(targets)
    if violations:
        print("Direct clock reads found; use TimeProvider instead:")
        for path, line_no, line in violations:
            print(f" - {path}:{line_no}: {line}")
        return 1
    print(f"No direct clock reads in {len(targets)} target(s).")
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
