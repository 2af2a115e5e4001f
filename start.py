"""
Convenience launcher — starts the Crush Quest session engine.

Usage:
    python start.py             # engine on the configured host/port
    python start.py --port 9000
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys


def start_engine(port: int | None) -> subprocess.Popen:
    env = dict(os.environ)
    if port is not None:
        env["CQ_API_PORT"] = str(port)
    return subprocess.Popen(
        [sys.executable, "-m", "crushquest.main"],
        stdout=sys.stdout,
        stderr=sys.stderr,
        env=env,
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Start the Crush Quest session engine")
    parser.add_argument("--port", type=int, default=None, help="Override the API port")
    args = parser.parse_args()

    print("Starting Crush Quest session engine…")
    engine_proc = start_engine(args.port)

    print(f"\nEngine → http://127.0.0.1:{args.port or 8766}")
    print("Press Ctrl+C to stop.\n")

    try:
        engine_proc.wait()
    except KeyboardInterrupt:
        print("\nShutting down…")
        engine_proc.terminate()
        engine_proc.wait()


if __name__ == "__main__":
    main()
