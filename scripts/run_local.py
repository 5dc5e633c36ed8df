"""
Start the checker backend locally.

The definitions directory is validated first so a broken catalog fails here
instead of at server startup.

Usage:
    python scripts/run_local.py
    python scripts/run_local.py --port 5000 --data-path path/to/data
    python scripts/run_local.py --skip-validate
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path

from validate_programs import DEFAULT_DATA_PATH, main as validate_main

REPO_ROOT = Path(__file__).resolve().parents[1]
SERVER_SCRIPT = REPO_ROOT / "backend" / "server.py"


def _server_env(port: int | None, data_path: str) -> dict[str, str]:
    env = dict(os.environ)
    env["DATA_PATH"] = data_path
    if port is not None:
        env["PORT"] = str(port)
    return env


def run_local(port: int | None = None, data_path: str = DEFAULT_DATA_PATH, validate: bool = True) -> int:
    data_path = os.path.abspath(data_path)
    if validate and validate_main(["--all", "--path", data_path]) != 0:
        print(f"[run-local] Definitions under {data_path} failed validation; not starting.", file=sys.stderr, flush=True)
        return 1

    if not SERVER_SCRIPT.is_file():
        print(f"[run-local] Server script not found: {SERVER_SCRIPT}", file=sys.stderr, flush=True)
        return 1

    print(f"[run-local] Serving definitions from {data_path}", flush=True)
    try:
        completed = subprocess.run(
            [sys.executable, str(SERVER_SCRIPT)],
            cwd=str(REPO_ROOT),
            env=_server_env(port, data_path),
        )
    except KeyboardInterrupt:
        print("\n[run-local] Interrupted.", flush=True)
        return 130
    return completed.returncode


def main(args=None) -> int:
    parser = argparse.ArgumentParser(description="Run the program checker backend locally.")
    parser.add_argument("--port", type=int, default=None, help="HTTP port (default: PORT env or 8080).")
    parser.add_argument("--data-path", default=DEFAULT_DATA_PATH, help="Definitions directory (default: data/).")
    parser.add_argument("--skip-validate", action="store_true", help="Start without validating definitions.")
    parsed = parser.parse_args(args)
    return run_local(port=parsed.port, data_path=parsed.data_path, validate=not parsed.skip_validate)


if __name__ == "__main__":
    raise SystemExit(main())
