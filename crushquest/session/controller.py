"""
Session Lifecycle Controller — start / pause / resume / complete / publish.

    idle ──start──▶ running ──pause──▶ paused
                      │  ◀──resume───────┘
                      │ tick reaches 0 (or reconcile finds it expired)
                      ▼
                  completed ──publish ok──▶ idle

cancel() drops any non-idle session back to idle without touching the server.

The durable TimerState record is the single source of truth: every
transition writes it before updating memory, and reconcile() rebuilds memory
from it on mount and whenever the UI becomes visible again.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from ..backend.interfaces import IdentityProvider, PublishedSession, SessionPersistence
from ..errors import BackendError, InvalidTransition, SessionValidationError
from ..settings import get_settings
from .chime import ChimePlayer
from .timer_state import TimerState, TimerStore

logger = logging.getLogger(__name__)

PUBLISH_FAILED_MESSAGE = "Failed to save pomodoro. Please try again."


class SessionPhase(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"


@dataclass(frozen=True)
class SessionSnapshot:
    phase: SessionPhase
    task: str
    launch_at: Optional[str]
    remaining_ms: int
    original_duration: int
    in_progress: bool
    publishing: bool
    error: Optional[str]


def wall_clock_ms() -> int:
    return int(time.time() * 1000)


def iso_from_ms(ms: int) -> str:
    moment = datetime.fromtimestamp(ms / 1000.0, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SessionController:
    """
    One controller per UI surface (tab). Several controllers may share a
    TimerStore; writes are last-write-wins and each controller recovers by
    reconciling.
    """

    def __init__(
        self,
        store: TimerStore,
        persistence: SessionPersistence,
        identity: IdentityProvider,
        chime: Optional[ChimePlayer] = None,
        clock: Callable[[], int] = wall_clock_ms,
    ):
        self._store = store
        self._persistence = persistence
        self._identity = identity
        self._chime = chime or ChimePlayer()
        self._clock = clock

        self._phase = SessionPhase.IDLE
        self._task = ""
        self._launch_at: Optional[str] = None
        self._original_duration = 0
        self._end_time: Optional[int] = None
        self._paused_left: Optional[int] = None
        self.in_progress = False
        self._publishing = False
        self._error: Optional[str] = None

        self._listeners: List[Callable[[SessionSnapshot], None]] = []
        self._publish_listeners: List[Callable[[], Awaitable[None]]] = []

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def phase(self) -> SessionPhase:
        return self._phase

    def snapshot(self) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self._phase,
            task=self._task,
            launch_at=self._launch_at,
            remaining_ms=self._remaining(self._clock()),
            original_duration=self._original_duration,
            in_progress=self.in_progress,
            publishing=self._publishing,
            error=self._error,
        )

    def subscribe(self, fn: Callable[[SessionSnapshot], None]) -> None:
        """Register a callback(snapshot) fired after every state change."""
        self._listeners.append(fn)

    def register_publish_listener(self, fn: Callable[[], Awaitable[None]]) -> None:
        """Register a coroutine function awaited after each successful publish."""
        self._publish_listeners.append(fn)

    # ------------------------------------------------------------------
    # User-driven transitions
    # ------------------------------------------------------------------

    def start(self, task: str, duration_ms: Optional[int] = None) -> SessionSnapshot:
        self._require("start", SessionPhase.IDLE)
        if duration_ms is None:
            duration_ms = int(get_settings()["session_minutes"]) * 60_000
        if duration_ms <= 0:
            raise SessionValidationError("Session length must be positive")

        now = self._clock()
        record = TimerState(
            task=task,
            launch_at=iso_from_ms(now),
            original_duration=duration_ms,
            is_paused=False,
            end_time=now + duration_ms,
        )
        self._store.save(record)
        self._adopt(record)
        self._phase = SessionPhase.RUNNING
        self.in_progress = True
        self._error = None
        self._play_chime("start")
        logger.info("Session started: %r for %d ms", task, duration_ms)
        return self._changed()

    def set_task(self, task: str) -> SessionSnapshot:
        if self._phase == SessionPhase.COMPLETED:
            raise InvalidTransition("edit the task", self._phase.value)
        self._task = task
        if self._phase in (SessionPhase.RUNNING, SessionPhase.PAUSED):
            record = self._store.load()
            if record is not None:
                record.task = task
                self._store.save(record)
        return self._changed()

    def pause(self) -> SessionSnapshot:
        self._require("pause", SessionPhase.RUNNING)
        now = self._clock()
        remaining = (self._end_time or now) - now
        if remaining <= 0:
            self._complete()
            return self._changed()

        record = TimerState(
            task=self._task,
            launch_at=self._launch_at or "",
            original_duration=self._persisted_duration(),
            is_paused=True,
            paused_time_left=remaining,
        )
        self._store.save(record)
        self._adopt(record)
        self._phase = SessionPhase.PAUSED
        logger.info("Session paused with %d ms left", remaining)
        return self._changed()

    def resume(self) -> SessionSnapshot:
        self._require("resume", SessionPhase.PAUSED)
        now = self._clock()
        record = TimerState(
            task=self._task,
            launch_at=self._launch_at or "",
            original_duration=self._persisted_duration(),
            is_paused=False,
            end_time=now + (self._paused_left or 0),
        )
        self._store.save(record)
        self._adopt(record)
        self._phase = SessionPhase.RUNNING
        logger.info("Session resumed, ends at %d", record.end_time)
        return self._changed()

    def cancel(self) -> SessionSnapshot:
        if self._phase == SessionPhase.IDLE:
            raise InvalidTransition("cancel", self._phase.value)
        self._store.clear()
        self._reset()
        logger.info("Session discarded")
        return self._changed()

    discard = cancel

    async def publish(self, notes: Optional[str] = None, image_ref: Optional[str] = None) -> bool:
        """
        Send the completed session to the persistence collaborator.

        Returns False (and sets snapshot.error) when the collaborator fails;
        the TimerState record is kept so publish can simply be retried.
        """
        # An expired running session completes first.
        self.tick()
        self._require("publish", SessionPhase.COMPLETED)
        if self._publishing:
            raise InvalidTransition("publish", "publishing")
        viewer = self._identity.current()
        if viewer is None or not self._task.strip():
            raise SessionValidationError("A task and a signed-in viewer are required to publish")

        session = PublishedSession(
            user_id=viewer.id,
            task=self._task,
            notes=notes or None,
            launch_at=self._launch_at or iso_from_ms(self._clock()),
            completed=True,
            image_ref=image_ref,
        )
        self._publishing = True
        self._error = None
        self._changed()

        try:
            await self._persistence.publish_session(session)
        except BackendError as exc:
            logger.error("Error saving pomodoro: %s", exc)
            self._publishing = False
            self._error = PUBLISH_FAILED_MESSAGE
            self._changed()
            return False

        self._publishing = False
        self._store.clear()
        self._reset()
        self._changed()
        logger.info("Session published for viewer %s", viewer.id)

        for listener in self._publish_listeners:
            try:
                await listener()
            except Exception:
                logger.exception("Publish listener failed")
        return True

    # ------------------------------------------------------------------
    # Clock-driven transitions
    # ------------------------------------------------------------------

    def tick(self) -> SessionSnapshot:
        """Advance the display; completes the session once time has run out."""
        if self._phase == SessionPhase.RUNNING and self._remaining(self._clock()) <= 0:
            self._complete()
            return self._changed()
        return self.snapshot()

    def reconcile(self) -> SessionSnapshot:
        """
        Rebuild in-memory state from the durable record.

        Safe to call any number of times; with no elapsed time the result is
        identical on every call.
        """
        before = self.snapshot()
        record = self._store.load()

        if record is None:
            if self._phase != SessionPhase.IDLE:
                self._reset()
        elif record.is_paused:
            self._adopt(record)
            self._phase = SessionPhase.PAUSED
            self.in_progress = True
        elif (record.end_time or 0) > self._clock():
            self._adopt(record)
            self._phase = SessionPhase.RUNNING
            self.in_progress = True
        else:
            self._adopt(record)
            if self._phase != SessionPhase.COMPLETED:
                self._complete()

        after = self.snapshot()
        if after != before:
            self._notify(after)
        return after

    def mount(self) -> SessionSnapshot:
        return self.reconcile()

    def on_visibility_change(self, visible: bool) -> SessionSnapshot:
        if visible:
            return self.reconcile()
        return self.snapshot()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _require(self, operation: str, phase: SessionPhase) -> None:
        if self._phase != phase:
            raise InvalidTransition(operation, self._phase.value)

    def _remaining(self, now: int) -> int:
        if self._phase == SessionPhase.RUNNING:
            return max(0, (self._end_time or now) - now)
        if self._phase == SessionPhase.PAUSED:
            return self._paused_left or 0
        return 0

    def _persisted_duration(self) -> int:
        # Always re-read before overwriting so the launch length survives.
        previous = self._store.load()
        if previous is not None and previous.original_duration:
            return previous.original_duration
        return self._original_duration

    def _adopt(self, record: TimerState) -> None:
        self._task = record.task
        self._launch_at = record.launch_at or None
        self._original_duration = record.original_duration
        self._end_time = record.end_time
        self._paused_left = record.paused_time_left

    def _complete(self) -> None:
        self._phase = SessionPhase.COMPLETED
        self._paused_left = None
        self.in_progress = False
        self._play_chime("complete")
        logger.info("Session completed: %r", self._task)

    def _reset(self) -> None:
        self._phase = SessionPhase.IDLE
        self._task = ""
        self._launch_at = None
        self._original_duration = 0
        self._end_time = None
        self._paused_left = None
        self.in_progress = False
        self._error = None

    def _play_chime(self, kind: str) -> None:
        if not get_settings()["chime_enabled"]:
            return
        try:
            self._chime.play(kind)
        except Exception as exc:
            logger.warning("Chime %s playback failed: %s", kind, exc)

    def _changed(self) -> SessionSnapshot:
        snap = self.snapshot()
        self._notify(snap)
        return snap

    def _notify(self, snap: SessionSnapshot) -> None:
        for listener in self._listeners:
            try:
                listener(snap)
            except Exception:
                logger.exception("Session listener failed")
