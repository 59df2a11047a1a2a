"""
Process helper shared by the console scripts in pyproject.toml.
"""

from __future__ import annotations

import shlex
import subprocess
import sys
from collections.abc import Sequence


def run(cmd: Sequence[str]) -> None:
    """
    Echo the command, run it, and exit with its return code.

    A missing executable exits with 127 like a shell would.
    """
    print(f"$ {shlex.join(cmd)}", file=sys.stderr)
    try:
        result = subprocess.run(list(cmd), check=False)
    except FileNotFoundError:
        print(f"command not found: {cmd[0]}", file=sys.stderr)
        raise SystemExit(127)
    raise SystemExit(result.returncode)
