"""
Session walkthrough — drives a running engine through one short doro so you
can watch the timer, the banner stream and the leaderboard refresh without
the web UI.

Usage:
    # Make sure the engine is running first:
    #   python start.py
    # Then in a separate terminal:
    python scripts/demo_session.py --viewer 1f0c... --seconds 10
    python scripts/demo_session.py --viewer 1f0c... --no-publish
"""

from __future__ import annotations

import argparse
import json
import time
import urllib.error
import urllib.request

API = "http://127.0.0.1:8766"


# ---------------------------------------------------------------------------
# Low-level HTTP helper
# ---------------------------------------------------------------------------

def _call(method: str, path: str, body: dict | None = None) -> dict | None:
    data = json.dumps(body).encode() if body is not None else None
    req = urllib.request.Request(
        f"{API}{path}",
        data=data,
        headers={"Content-Type": "application/json"},
        method=method,
    )
    try:
        with urllib.request.urlopen(req, timeout=10) as r:
            return json.loads(r.read())
    except urllib.error.HTTPError as e:
        print(f"  [!] {method} {path} → {e.code}: {e.read().decode()[:200]}")
        return None
    except (urllib.error.URLError, OSError) as e:
        print(f"  [!] Engine unreachable: {e}")
        return None


def _show(label: str, snap: dict | None) -> None:
    if snap:
        print(f"  {label:<10} {snap['phase']:<10} {snap['remaining_display']}  {snap['task']!r}")


# ---------------------------------------------------------------------------
# Walkthrough
# ---------------------------------------------------------------------------

def run(viewer: str, seconds: int, publish: bool) -> None:
    _call("PUT", "/identity", {"id": viewer, "display_name": "demo"})
    _show("mount", _call("POST", "/session/reconcile"))

    current = _call("GET", "/session")
    if current and current["phase"] != "idle":
        _show("discard", _call("POST", "/session/cancel"))

    _show("start", _call("POST", "/session/start", {
        "task": "Demo walkthrough", "duration_ms": seconds * 1000,
    }))
    time.sleep(min(2, seconds / 3))
    _show("pause", _call("POST", "/session/pause"))
    time.sleep(1)
    _show("resume", _call("POST", "/session/resume"))

    while True:
        snap = _call("GET", "/session")
        if snap is None:
            return
        _show("tick", snap)
        if snap["phase"] == "completed":
            break
        time.sleep(1)

    if not publish:
        _show("discard", _call("POST", "/session/cancel"))
        return

    _show("publish", _call("POST", "/session/publish", {"notes": "done"}))
    board = _call("GET", "/leaderboard")
    if board:
        print("\n  This week:")
        for e in board["global_entries"][:10]:
            print(f"    {e['completion_count']:>3}  {e['display_name']}")


def main() -> None:
    parser = argparse.ArgumentParser(description="Crush Quest session walkthrough")
    parser.add_argument("--viewer", required=True, help="User id to act as")
    parser.add_argument("--seconds", type=int, default=10, help="Session length")
    parser.add_argument("--no-publish", action="store_true", help="Discard instead of publishing")
    args = parser.parse_args()
    run(args.viewer, args.seconds, publish=not args.no_publish)


if __name__ == "__main__":
    main()
