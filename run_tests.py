#!/usr/bin/env python3
"""
Test runner for the GBP Dashboard
Wraps pytest with named suites
"""
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent

MODULES = [
    "config", "utils", "errors", "events", "rate_limit", "validation", "database",
    "google_client", "ai", "analytics", "accounts", "sync", "reviews", "questions",
    "posts", "auto_reply", "dashboard", "cli",
]

# suite name -> (extra pytest args, banner)
SUITES = {
    "all": ([], "Full suite"),
    "unit": (["-m", "unit"], "Unit tests"),
    "integration": (["-m", "integration"], "Service tests on an in-memory database"),
    "coverage": (
        ["--cov=src/gbp_dashboard", "--cov-report=term-missing", "--cov-report=html"],
        "Full suite with coverage",
    ),
}

USAGE = f"""
Usage: python run_tests.py <suite> [module]

Suites:
  {', '.join(SUITES)}
  module NAME   one test module ({', '.join(MODULES)})

Examples:
  python run_tests.py unit
  python run_tests.py module sync
"""


def pytest(args, banner) -> bool:
    """Run pytest from the project root; True when it passes"""
    print(f"\n{'=' * 60}\n  {banner}\n{'=' * 60}\n")
    try:
        returncode = subprocess.run(["pytest", "-v", *args], cwd=PROJECT_ROOT).returncode
    except FileNotFoundError:
        print("[ERROR] pytest is not installed: pip install -e '.[test]'")
        return False

    print(f"\n[{'PASS' if returncode == 0 else 'FAIL'}] {banner}")
    return returncode == 0


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    if not argv:
        print(USAGE)
        return 0

    suite = argv[0]
    if suite == "module":
        if len(argv) < 2 or argv[1] not in MODULES:
            print(f"[ERROR] Unknown module. Choose one of: {', '.join(MODULES)}")
            return 1
        return 0 if pytest([f"tests/test_{argv[1]}.py"], f"tests/test_{argv[1]}.py") else 1

    if suite not in SUITES:
        print(f"[ERROR] Unknown suite: {suite}")
        print(USAGE)
        return 1

    args, banner = SUITES[suite]
    passed = pytest(["tests/", *args], banner)
    if passed and suite == "coverage":
        print(f"Coverage report: {PROJECT_ROOT / 'htmlcov' / 'index.html'}")
    return 0 if passed else 1


if __name__ == "__main__":
    sys.exit(main())
