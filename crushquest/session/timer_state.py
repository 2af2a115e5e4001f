"""
Persisted Timer State — the durable record of an in-flight doro.

The record lives in a small JSON-file key/value store that plays the role of
the browser's localStorage: every engine instance (tab) pointing at the same
file shares it, and the last write wins. In-memory timer values are always
derived from this record, never the other way round.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)

TIMER_STATE_KEY = "timerState"


@dataclass
class TimerState:
    task: str
    launch_at: str                      # ISO-8601, never recomputed
    original_duration: int              # ms, configured length at launch
    is_paused: bool = False
    end_time: Optional[int] = None      # epoch ms, authoritative while running
    paused_time_left: Optional[int] = None  # ms, authoritative while paused

    def remaining_ms(self, now_ms: int) -> int:
        if self.is_paused:
            return self.paused_time_left or 0
        return (self.end_time or 0) - now_ms

    def to_json(self) -> str:
        payload: Dict[str, object] = {
            "isPaused": self.is_paused,
            "originalDuration": self.original_duration,
            "launchAt": self.launch_at,
            "task": self.task,
        }
        if self.is_paused:
            payload["pausedTimeLeft"] = self.paused_time_left
        else:
            payload["endTime"] = self.end_time
        return json.dumps(payload)

    @classmethod
    def from_json(cls, raw: str) -> "TimerState":
        """Parse the stored JSON. Raises ValueError on anything malformed."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"timer state is not JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise ValueError("timer state must be a JSON object")

        is_paused = data.get("isPaused")
        if not isinstance(is_paused, bool):
            raise ValueError("isPaused must be a boolean")

        end_time = _optional_int(data, "endTime")
        paused_left = _optional_int(data, "pausedTimeLeft")
        if is_paused and paused_left is None:
            raise ValueError("paused timer state has no pausedTimeLeft")
        if not is_paused and end_time is None:
            raise ValueError("running timer state has no endTime")

        return cls(
            task=str(data.get("task") or ""),
            launch_at=str(data.get("launchAt") or ""),
            original_duration=_optional_int(data, "originalDuration") or 0,
            is_paused=is_paused,
            end_time=None if is_paused else end_time,
            paused_time_left=paused_left if is_paused else None,
        )


def _optional_int(data: dict, key: str) -> Optional[int]:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"{key} must be a number")
    return int(value)


class LocalStorage:
    """
    String key/value store persisted as a single JSON object on disk.

    Every read goes back to the file so that writes made by another
    instance over the same path are observed.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = threading.Lock()

    def get_item(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._read().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text())
        except (OSError, ValueError):
            logger.warning("Unreadable storage file %s, treating as empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2))
        os.replace(tmp, self.path)


class TimerStore:
    """Reads and writes the single TimerState record under its fixed key."""

    def __init__(self, storage: LocalStorage, key: str = TIMER_STATE_KEY):
        self._storage = storage
        self._key = key

    def load(self) -> Optional[TimerState]:
        """Return the stored record, or None when absent or corrupt."""
        raw = self._storage.get_item(self._key)
        if raw is None:
            return None
        try:
            return TimerState.from_json(raw)
        except ValueError as exc:
            logger.warning("Ignoring malformed %s record: %s", self._key, exc)
            return None

    def save(self, state: TimerState) -> None:
        self._storage.set_item(self._key, state.to_json())

    def clear(self) -> None:
        self._storage.remove_item(self._key)
