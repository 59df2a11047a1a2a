"""CLI wrapper: ruff lint and format check."""

from __future__ import annotations

import sys

from cli._runner import run


def main() -> None:
    run([sys.executable, "-m", "ruff", "check", "ticketing", "cli", "tests", *sys.argv[1:]])


def format_code() -> None:
    run([sys.executable, "-m", "ruff", "format", "ticketing", "cli", "tests", *sys.argv[1:]])
