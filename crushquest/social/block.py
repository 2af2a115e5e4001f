"""
Blocking — the block/unblock control and the follower roster it prunes.

A follow control never polls for blocks. When the viewer blocks someone from
a list, the roster drops that row, which is what makes the follow control
for that user disappear.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, Iterable, List, Optional

from ..backend.interfaces import BlockStatus, SocialGraphStore
from ..errors import BackendError
from .follow import FollowControl, FollowView

logger = logging.getLogger(__name__)


class BlockControl:

    def __init__(
        self,
        graph: SocialGraphStore,
        viewer_id: Optional[str],
        target_id: str,
        on_changed: Optional[Callable[[BlockStatus], None]] = None,
    ):
        self._graph = graph
        self.viewer_id = viewer_id
        self.target_id = target_id
        self._on_changed = on_changed
        self.status = BlockStatus()
        self.busy = False

    @property
    def visible(self) -> bool:
        return bool(self.viewer_id) and self.viewer_id != self.target_id

    async def load(self) -> BlockStatus:
        if self.visible:
            self.status = await self._graph.get_block_status(self.viewer_id, self.target_id)
        return self.status

    async def block(self) -> BlockStatus:
        return await self._set(True)

    async def unblock(self) -> BlockStatus:
        return await self._set(False)

    async def _set(self, blocked: bool) -> BlockStatus:
        if not self.visible or self.busy:
            return self.status
        self.busy = True
        try:
            if blocked:
                await self._graph.block_user(self.viewer_id, self.target_id)
            else:
                await self._graph.unblock_user(self.viewer_id, self.target_id)
        finally:
            self.busy = False
        self.status = BlockStatus(
            viewer_blocked_target=blocked,
            target_blocked_viewer=self.status.target_blocked_viewer,
        )
        logger.info("%s %s", "Blocked" if blocked else "Unblocked", self.target_id)
        if self._on_changed is not None:
            self._on_changed(self.status)
        return self.status


class FollowRoster:
    """A followers/following list: one follow control per row."""

    def __init__(self, graph: SocialGraphStore, viewer_id: Optional[str]):
        self._graph = graph
        self.viewer_id = viewer_id
        self._rows: Dict[str, FollowControl] = {}

    def add(self, target_id: str, known_following: Optional[bool] = None) -> FollowControl:
        control = FollowControl(self._graph, self.viewer_id, target_id, known_following)
        self._rows[target_id] = control
        return control

    async def load(self, target_ids: Iterable[str], known_following: Optional[bool] = None) -> List[FollowView]:
        controls = [self.add(t, known_following) for t in target_ids]
        return list(await asyncio.gather(*(c.load() for c in controls)))

    def get(self, target_id: str) -> Optional[FollowControl]:
        return self._rows.get(target_id)

    def rows(self) -> List[FollowView]:
        return [c.view() for c in self._rows.values()]

    async def block(self, target_id: str) -> Optional[BlockStatus]:
        """Block *target_id* and drop its row. Returns None if the block failed."""
        control = BlockControl(
            self._graph, self.viewer_id, target_id,
            on_changed=lambda status: self._on_block_changed(target_id, status),
        )
        try:
            await control.load()
            await control.block()
        except BackendError as exc:
            logger.error("Error blocking %s: %s", target_id, exc)
            return None
        return control.status

    def _on_block_changed(self, target_id: str, status: BlockStatus) -> None:
        if status.either:
            self._rows.pop(target_id, None)
