"""
/leaderboard — weekly global and friends boards for the signed-in viewer.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...api.schemas import LeaderboardEntryOut, LeaderboardOut

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


def _get_cache(request: Request):
    return request.app.state.services["leaderboard"]


def _leaderboard_out(view) -> LeaderboardOut:
    return LeaderboardOut(
        viewer_id=view.viewer_id,
        global_entries=[LeaderboardEntryOut(**e.__dict__) for e in view.global_entries],
        friends_entries=[LeaderboardEntryOut(**e.__dict__) for e in view.friends_entries],
        loading=view.loading,
        week_start=view.week_start,
        week_end=view.week_end,
    )


@router.get("", response_model=LeaderboardOut)
async def get_leaderboard(cache=Depends(_get_cache)):
    """Cached boards; fetched on first use and after every published session."""
    await cache.refresh()
    return _leaderboard_out(cache.view())


@router.post("/refresh", response_model=LeaderboardOut)
async def refresh_leaderboard(cache=Depends(_get_cache)):
    """Force a refetch of both boards for the current viewer."""
    await cache.invalidate()
    return _leaderboard_out(cache.view())
