"""
Pydantic schemas for the FastAPI local API.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

# ── Identity ───────────────────────────────────────────────────────────────

class ViewerIn(BaseModel):
    id: str = Field(..., min_length=1)
    display_name: str = ""
    avatar_ref: Optional[str] = None
    access_token: Optional[str] = Field(None, description="Bearer token for the remote backend")


class ViewerOut(BaseModel):
    signed_in: bool
    id: Optional[str] = None
    display_name: Optional[str] = None
    avatar_ref: Optional[str] = None


# ── Session ────────────────────────────────────────────────────────────────

class SessionStartIn(BaseModel):
    task: str = ""
    duration_ms: Optional[int] = Field(None, gt=0, description="Defaults to the session_minutes setting")


class TaskIn(BaseModel):
    task: str


class PublishIn(BaseModel):
    notes: Optional[str] = None
    image_ref: Optional[str] = Field(None, description="Defaults to the uploaded attachment")


class SessionOut(BaseModel):
    phase: str
    task: str
    launch_at: Optional[str]
    remaining_ms: int = Field(..., ge=0)
    remaining_display: str
    original_duration: int
    in_progress: bool
    publishing: bool
    error: Optional[str]


class AttachmentOut(BaseModel):
    loading: bool
    image_ref: Optional[str]
    error: Optional[str]


# ── Social ─────────────────────────────────────────────────────────────────

class FollowOut(BaseModel):
    target_id: str
    state: str = Field(..., description="not-following | following | requested")
    visible: bool
    busy: bool
    can_toggle: bool
    requires_approval: Optional[bool]
    blocked: bool
    error: Optional[str]


class BlockOut(BaseModel):
    target_id: str
    viewer_blocked_target: bool
    target_blocked_viewer: bool


class RequestCountOut(BaseModel):
    count: int = Field(..., ge=0)


# ── Leaderboard ────────────────────────────────────────────────────────────

class LeaderboardEntryOut(BaseModel):
    user_id: str
    display_name: str
    avatar_url: Optional[str]
    completion_count: int = Field(..., ge=0)


class LeaderboardOut(BaseModel):
    viewer_id: Optional[str]
    global_entries: List[LeaderboardEntryOut]
    friends_entries: List[LeaderboardEntryOut]
    loading: bool
    week_start: datetime
    week_end: datetime
