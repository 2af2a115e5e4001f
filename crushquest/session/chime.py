"""
Chime Player — platform-aware, fire-and-forget playback of the session sounds.
"""

from __future__ import annotations

import logging
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

logger = logging.getLogger(__name__)


class ChimePlayer:
    """
    Plays a sound file without waiting for it to finish.

    play() returns False when nothing could be played; it never raises for
    platform failures. Callers still guard it, because playback must never
    block a session transition.
    """

    def __init__(self, sound: Optional[Path] = None, enabled: bool = True):
        self.sound = Path(sound) if sound else None
        self.enabled = enabled
        self._children: List[subprocess.Popen] = []

    def play(self, kind: str = "start") -> bool:
        self.reap()
        if not self.enabled:
            return False
        if self.sound is None or not self.sound.exists():
            logger.debug("Chime %s skipped: %s not found", kind, self.sound)
            return False
        command = self._command()
        if command is None:
            return False
        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
        except OSError as exc:
            logger.info("Chime %s failed: %s", kind, exc)
            return False
        self._children.append(process)
        return True

    def reap(self) -> int:
        """Collect players that have exited. Returns how many are still playing."""
        self._children = [p for p in self._children if p.poll() is None]
        return len(self._children)

    def close(self) -> None:
        """Wait briefly for running players, then kill any that remain."""
        for process in self._children:
            try:
                process.wait(timeout=2)
            except subprocess.TimeoutExpired:
                process.kill()
                process.wait()
        self._children = []

    # ------------------------------------------------------------------
    # Platform implementations
    # ------------------------------------------------------------------

    def _command(self) -> Optional[list[str]]:
        path = str(self.sound)
        if sys.platform == "win32":
            return [
                "powershell", "-Command",
                f"(New-Object Media.SoundPlayer '{path}').PlaySync()",
            ]
        if sys.platform == "darwin":
            return ["afplay", path]
        # PulseAudio / PipeWire
        return ["paplay", path]
