"""
Leaderboard Cache — weekly global and friends boards for the current viewer.

Fetches are coalesced: while one is in flight for a viewer, further refresh
calls for that viewer are no-ops, and once data is present the cache stays
put until invalidate() is called. A viewer change always refetches and wipes
the previous viewer's rows before anything else happens.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..backend.interfaces import IdentityProvider, LeaderboardStore, Viewer
from .entries import LeaderboardEntry, normalize_entries, week_bounds

logger = logging.getLogger(__name__)

_NEVER = object()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LeaderboardView:
    viewer_id: Optional[str]
    global_entries: List[LeaderboardEntry]
    friends_entries: List[LeaderboardEntry]
    loading: bool
    week_start: datetime
    week_end: datetime


class LeaderboardCache:

    def __init__(
        self,
        store: LeaderboardStore,
        identity: IdentityProvider,
        now: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._identity = identity
        self._now = now
        self.global_entries: List[LeaderboardEntry] = []
        self.friends_entries: List[LeaderboardEntry] = []
        self.loading = False

        self._last_viewer: Any = _NEVER
        self._has_data = False
        self._in_flight = False
        self._generation = 0
        self._stale = False
        self._background: Optional[asyncio.Task] = None

        identity.register_listener(self._on_identity_change)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def view(self) -> LeaderboardView:
        """Current rows plus the Monday-to-Monday week they count."""
        week_start, week_end = week_bounds(self._now())
        return LeaderboardView(
            viewer_id=self._viewer_id(),
            global_entries=list(self.global_entries),
            friends_entries=list(self.friends_entries),
            loading=self.loading,
            week_start=week_start,
            week_end=week_end,
        )

    async def refresh(self) -> bool:
        """Fetch both boards unless a fetch is running or data is fresh. Returns True if fetched."""
        viewer_id = self._viewer_id()

        if viewer_id == self._last_viewer:
            if self._in_flight or self._has_data:
                return False
        else:
            self._clear()

        self._generation += 1
        generation = self._generation
        self._in_flight = True
        self._last_viewer = viewer_id
        self._has_data = False
        self.loading = True

        try:
            global_rows, friends_rows = await asyncio.gather(
                self._store.get_global_weekly(viewer_id),
                self._friends(viewer_id),
                return_exceptions=True,
            )
        finally:
            if generation == self._generation:
                self._in_flight = False
                self.loading = False

        if generation != self._generation:
            logger.debug("Dropping leaderboard response for superseded viewer %s", viewer_id)
            return False

        global_entries = self._normalize("global", global_rows)
        if global_entries is not None:
            self.global_entries = global_entries
            self._has_data = True
        friends_entries = self._normalize("friends", friends_rows)
        if friends_entries is not None:
            self.friends_entries = friends_entries

        if self._stale:
            self._stale = False
            self._has_data = False
            await self.refresh()
        return True

    async def invalidate(self) -> None:
        """Mark both boards stale and refetch them for the current viewer."""
        self._has_data = False
        if self._in_flight:
            # The running fetch may predate the write; fetch once more after it.
            self._stale = True
            return
        await self.refresh()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _viewer_id(self) -> Optional[str]:
        viewer = self._identity.current()
        return viewer.id if viewer else None

    async def _friends(self, viewer_id: Optional[str]) -> List[Dict[str, Any]]:
        if viewer_id is None:
            return []
        return await self._store.get_friends_weekly(viewer_id)

    def _normalize(self, scope: str, result: Any) -> Optional[List[LeaderboardEntry]]:
        if isinstance(result, BaseException):
            if not isinstance(result, Exception):
                raise result
            logger.error("Error fetching %s leaderboard: %s", scope, result)
            return None
        try:
            return normalize_entries(result or [])
        except (TypeError, ValueError) as exc:
            logger.error("Malformed %s leaderboard rows: %s", scope, exc)
            return None

    def _clear(self) -> None:
        self.global_entries = []
        self.friends_entries = []
        self._has_data = False
        self._stale = False

    def _on_identity_change(self, viewer: Optional[Viewer]) -> None:
        new_id = viewer.id if viewer else None
        if new_id == self._last_viewer:
            return
        self._clear()
        # Any fetch still running belongs to the previous viewer.
        self._generation += 1
        self._in_flight = False
        self.loading = False
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return  # next refresh() call fetches for the new viewer
        self._background = loop.create_task(self.refresh())
