"""CLI wrapper: serve the API locally with auto-reload.

HOST and PORT override the bind address; extra arguments go to uvicorn.
"""

from __future__ import annotations

import os
import sys

from cli._runner import run


def main() -> None:
    host = os.getenv("HOST", "127.0.0.1")
    port = os.getenv("PORT", "8000")
    run(
        [
            sys.executable,
            "-m",
            "uvicorn",
            "ticketing.main:app",
            "--reload",
            "--reload-dir",
            "ticketing",
            "--host",
            host,
            "--port",
            port,
            *sys.argv[1:],
        ]
    )
