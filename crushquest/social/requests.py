"""
Pending follow-request monitor.

The count is polled on a fixed interval as a freshness floor, and refreshed
immediately whenever notify() is called (approve / reject fire it themselves)
so a direct action never waits for the next poll.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, List, Optional

from ..backend.interfaces import IdentityProvider, SocialGraphStore
from ..errors import BackendError, NotSignedIn

logger = logging.getLogger(__name__)


class PendingRequestMonitor:

    def __init__(
        self,
        graph: SocialGraphStore,
        identity: IdentityProvider,
        interval_s: float = 30.0,
    ):
        self._graph = graph
        self._identity = identity
        self.interval_s = interval_s
        self.count = 0
        self._signal = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Callable[[int], None]] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None

    def register_listener(self, fn: Callable[[int], None]) -> None:
        self._listeners.append(fn)

    # ------------------------------------------------------------------
    # Refresh
    # ------------------------------------------------------------------

    def notify(self) -> None:
        """Ask the poll loop to refresh now instead of at the next interval."""
        self._signal.set()

    async def refresh(self) -> int:
        viewer = self._identity.current()
        if viewer is None:
            self._set_count(0)
            return 0
        try:
            count = await self._graph.get_pending_request_count(viewer.id)
        except BackendError as exc:
            logger.error("Error loading follow request count: %s", exc)
            return self.count
        self._set_count(count)
        return count

    async def approve(self, request_id: str) -> None:
        viewer = self._require_viewer()
        await self._graph.approve_follow_request(request_id, viewer)
        self.notify()

    async def reject(self, request_id: str) -> None:
        viewer = self._require_viewer()
        await self._graph.reject_follow_request(request_id, viewer)
        self.notify()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while True:
            self._signal.clear()
            try:
                await self.refresh()
            except Exception:
                logger.exception("Follow request poll failed")
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._signal.wait(), timeout=self.interval_s)

    def _require_viewer(self) -> str:
        viewer = self._identity.current()
        if viewer is None:
            raise NotSignedIn("Sign in to manage follow requests")
        return viewer.id

    def _set_count(self, count: int) -> None:
        if count == self.count:
            return
        self.count = count
        for listener in self._listeners:
            try:
                listener(count)
            except Exception:
                logger.exception("Request count listener failed")
