"""
Leaderboard entries — one shape for both the global and the friends board.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple


@dataclass(frozen=True)
class LeaderboardEntry:
    user_id: str
    display_name: str
    avatar_url: Optional[str]
    completion_count: int


def normalize_entry(raw: Dict[str, Any]) -> LeaderboardEntry:
    """
    Map a raw row from either leaderboard RPC to a LeaderboardEntry.

    The friends RPC adds columns (e.g. is_following) and older rows use `id`
    instead of `user_id`; extra columns are dropped.
    """
    user_id = raw.get("user_id", raw.get("id"))
    if user_id is None:
        raise ValueError(f"leaderboard row has no user id: {raw!r}")
    name = raw.get("user_name", raw.get("display_name")) or ""
    count = int(raw.get("completion_count") or 0)
    return LeaderboardEntry(
        user_id=str(user_id),
        display_name=str(name),
        avatar_url=raw.get("avatar_url") or None,
        completion_count=max(0, count),
    )


def normalize_entries(rows: Iterable[Dict[str, Any]]) -> List[LeaderboardEntry]:
    return [normalize_entry(r) for r in rows]


def week_bounds(moment: datetime) -> Tuple[datetime, datetime]:
    """Return [start, end) of the ISO week (Monday 00:00) containing *moment*."""
    day_start = moment.replace(hour=0, minute=0, second=0, microsecond=0)
    start = day_start - timedelta(days=day_start.weekday())
    return start, start + timedelta(days=7)
