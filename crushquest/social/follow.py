"""
Follow control — the relationship between the viewer and one target user.

State is only ever set from an authoritative read (load) or from a mutation
the server has confirmed (toggle). Errors are logged and surfaced but the
displayed state is not rolled back or re-read.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from ..backend.interfaces import BlockStatus, SocialGraphStore
from ..errors import BackendError

logger = logging.getLogger(__name__)

TOGGLE_FAILED_MESSAGE = "Could not update follow status. Please try again."


class FollowState(str, Enum):
    NOT_FOLLOWING = "not-following"
    FOLLOWING = "following"
    REQUESTED = "requested"


@dataclass(frozen=True)
class FollowView:
    target_id: str
    state: FollowState
    visible: bool
    busy: bool
    can_toggle: bool
    requires_approval: Optional[bool]
    blocked: bool
    error: Optional[str]


def resolve_state(following: bool, pending_request: bool) -> FollowState:
    # An unresolved request is the more restrictive state, so it wins.
    if pending_request:
        return FollowState.REQUESTED
    if following:
        return FollowState.FOLLOWING
    return FollowState.NOT_FOLLOWING


class FollowControl:

    def __init__(
        self,
        graph: SocialGraphStore,
        viewer_id: Optional[str],
        target_id: str,
        known_following: Optional[bool] = None,
        on_follow_change: Optional[Callable[[bool], None]] = None,
    ):
        self._graph = graph
        self.viewer_id = viewer_id
        self.target_id = target_id
        self._hint = known_following
        self._on_follow_change = on_follow_change

        # A hint is displayed straight away; load() still checks the rest.
        self.state = (
            resolve_state(bool(known_following), False)
            if known_following is not None else FollowState.NOT_FOLLOWING
        )
        self.requires_approval: Optional[bool] = None
        self.block_status = BlockStatus()
        self.loaded = False
        self.busy = False
        self.error: Optional[str] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def is_self(self) -> bool:
        return self.viewer_id == self.target_id

    @property
    def visible(self) -> bool:
        if not self.viewer_id or self.is_self or self.block_status.either:
            return False
        return self.loaded or self._hint is not None

    @property
    def can_toggle(self) -> bool:
        if not self.visible or self.busy:
            return False
        # Following vs. requesting is unknown until the target's privacy is read.
        if self.state == FollowState.NOT_FOLLOWING and self.requires_approval is None:
            return False
        return True

    def view(self) -> FollowView:
        return FollowView(
            target_id=self.target_id,
            state=self.state,
            visible=self.visible,
            busy=self.busy,
            can_toggle=self.can_toggle,
            requires_approval=self.requires_approval,
            blocked=self.block_status.either,
            error=self.error,
        )

    async def load(self) -> FollowView:
        if not self.viewer_id or self.is_self:
            self.loaded = True
            return self.view()

        if self._hint is not None:
            _, _, pending = await asyncio.gather(
                self.refresh_block_status(),
                self._load_approval(),
                self._read(self._graph.get_pending_request(self.viewer_id, self.target_id)),
            )
            if pending is not None:
                self.state = resolve_state(self._hint, bool(pending))
        else:
            following, _, _ = await asyncio.gather(
                self._read(self._graph.is_following(self.viewer_id, self.target_id)),
                self.refresh_block_status(),
                self._load_approval(),
            )
            pending = None
            if not following:
                pending = await self._read(
                    self._graph.get_pending_request(self.viewer_id, self.target_id)
                )
            self.state = resolve_state(bool(following), bool(pending))

        self.loaded = True
        return self.view()

    async def refresh_block_status(self) -> BlockStatus:
        if not self.viewer_id or self.is_self:
            return self.block_status
        status = await self._read(self._graph.get_block_status(self.viewer_id, self.target_id))
        if status is not None:
            self.block_status = status
        return self.block_status

    # ------------------------------------------------------------------
    # Toggle
    # ------------------------------------------------------------------

    async def toggle(self) -> FollowView:
        if not self.can_toggle:
            logger.debug("Ignoring follow toggle for %s in state %s", self.target_id, self.state)
            return self.view()

        viewer, target = self.viewer_id, self.target_id
        if viewer is None:
            return self.view()
        self.busy = True
        self.error = None
        try:
            if self.state == FollowState.FOLLOWING:
                await self._graph.remove_follow_edge(viewer, target)
                self.state = FollowState.NOT_FOLLOWING
                self._emit_follow_change(False)
            elif self.state == FollowState.REQUESTED:
                await self._graph.cancel_follow_request(viewer, target)
                self.state = FollowState.NOT_FOLLOWING
            elif self.requires_approval:
                await self._graph.create_follow_request(viewer, target)
                self.state = FollowState.REQUESTED
            else:
                await self._graph.create_follow_edge(viewer, target)
                self.state = FollowState.FOLLOWING
                self._emit_follow_change(True)
        except BackendError as exc:
            # Known gap: no rollback and no re-read after a failed mutation.
            logger.error("Error toggling follow for %s: %s", target, exc)
            self.error = TOGGLE_FAILED_MESSAGE
        finally:
            self.busy = False
        return self.view()

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _load_approval(self) -> None:
        if self.requires_approval is not None:
            return
        value = await self._read(self._graph.get_target_approval_requirement(self.target_id))
        if value is not None:
            self.requires_approval = bool(value)

    async def _read(self, call):
        try:
            return await call
        except BackendError as exc:
            logger.error("Follow status read for %s failed: %s", self.target_id, exc)
            return None

    def _emit_follow_change(self, following: bool) -> None:
        if self._on_follow_change is None:
            return
        try:
            self._on_follow_change(following)
        except Exception:
            logger.exception("on_follow_change callback failed")
