"""
/settings — read and update user-tunable runtime settings.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ...settings import DEFAULTS, get_settings, update_settings

router = APIRouter(prefix="/settings", tags=["settings"])


class SettingsPatch(BaseModel):
    session_minutes:      Optional[int]  = Field(None, ge=1,  le=180)
    chime_enabled:        Optional[bool] = None
    request_poll_seconds: Optional[int]  = Field(None, ge=5,  le=600)


@router.get("")
def read_settings():
    """Return current settings with their defaults for reference."""
    current = get_settings()
    return {"settings": current, "defaults": DEFAULTS}


@router.put("")
def write_settings(patch: SettingsPatch, request: Request):
    """Apply a partial update; unknown keys are ignored. Persists to data/settings.json."""
    data = {k: v for k, v in patch.model_dump().items() if v is not None}
    updated = update_settings(data)
    if "request_poll_seconds" in data:
        monitor = request.app.state.services["requests"]
        monitor.interval_s = float(updated["request_poll_seconds"])
    return {"settings": updated}
