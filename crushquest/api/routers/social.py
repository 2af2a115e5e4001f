"""
/social — follow and block controls for one target user.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from ...api.schemas import BlockOut, FollowOut
from ...errors import BackendError
from ...social.block import BlockControl
from ...social.follow import FollowView

router = APIRouter(prefix="/social", tags=["social"])


def _get_roster(request: Request):
    return request.app.state.services["roster"]


def _follow_out(view: FollowView) -> FollowOut:
    return FollowOut(
        target_id=view.target_id,
        state=view.state.value,
        visible=view.visible,
        busy=view.busy,
        can_toggle=view.can_toggle,
        requires_approval=view.requires_approval,
        blocked=view.blocked,
        error=view.error,
    )


def _block_out(control: BlockControl) -> BlockOut:
    return BlockOut(
        target_id=control.target_id,
        viewer_blocked_target=control.status.viewer_blocked_target,
        target_blocked_viewer=control.status.target_blocked_viewer,
    )


async def _control(roster, target_id: str, known_following: Optional[bool] = None):
    control = roster.get(target_id)
    if control is None:
        control = roster.add(target_id, known_following)
        await control.load()
    return control


@router.get("/{target_id}", response_model=FollowOut)
async def get_follow(
    target_id: str,
    known_following: Optional[bool] = Query(
        default=None, description="Follow state the caller already knows, shown immediately"
    ),
    roster=Depends(_get_roster),
):
    control = await _control(roster, target_id, known_following)
    return _follow_out(control.view())


@router.post("/{target_id}/toggle", response_model=FollowOut)
async def toggle_follow(target_id: str, roster=Depends(_get_roster)):
    """Follow, unfollow, request or cancel a request depending on the current state."""
    control = await _control(roster, target_id)
    view = await control.toggle()
    return _follow_out(view)


@router.get("/{target_id}/block", response_model=BlockOut)
async def get_block(target_id: str, request: Request, roster=Depends(_get_roster)):
    control = BlockControl(request.app.state.backend, roster.viewer_id, target_id)
    try:
        await control.load()
    except BackendError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return _block_out(control)


@router.post("/{target_id}/block", response_model=BlockOut)
async def block_user(target_id: str, roster=Depends(_get_roster)):
    """Block the target; its follow row is dropped from the roster."""
    if not roster.viewer_id or roster.viewer_id == target_id:
        raise HTTPException(status_code=409, detail="Cannot block this user")
    status = await roster.block(target_id)
    if status is None:
        raise HTTPException(status_code=502, detail="Could not block this user")
    return BlockOut(
        target_id=target_id,
        viewer_blocked_target=status.viewer_blocked_target,
        target_blocked_viewer=status.target_blocked_viewer,
    )


@router.delete("/{target_id}/block", response_model=BlockOut)
async def unblock_user(target_id: str, request: Request, roster=Depends(_get_roster)):
    control = BlockControl(request.app.state.backend, roster.viewer_id, target_id)
    if not control.visible:
        raise HTTPException(status_code=409, detail="Cannot unblock this user")
    try:
        await control.load()
        await control.unblock()
    except BackendError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return _block_out(control)
