#!/usr/bin/env python3
"""
Run the release phase (migrations + first super admin), then exec gunicorn.

    PORT=8080 WEB_CONCURRENCY=2 python scripts/start.py

Extra gunicorn flags go in GUNICORN_CMD_ARGS, which gunicorn reads itself.
"""

from __future__ import annotations

import os
import sys
from collections.abc import Mapping
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


def gunicorn_argv(environ: Mapping[str, str]) -> list[str]:
    port = (environ.get("PORT") or "8080").strip()
    if not port.isdigit() or not 0 < int(port) < 65536:
        raise SystemExit(f"Invalid PORT value '{port}'.")
    workers = (environ.get("WEB_CONCURRENCY") or "2").strip()
    # --preload builds the app once in the master; app.ecclesia.db disposes the pool in each worker.
    return ["gunicorn", "app.wsgi:app", "--bind", f"0.0.0.0:{port}", "--workers", workers, "--preload",
            "--access-logfile", "-"]


def main() -> None:
    argv = gunicorn_argv(os.environ)
    from scripts.release import run_release

    run_release()
    os.execvp(argv[0], argv)


if __name__ == "__main__":
    main()
