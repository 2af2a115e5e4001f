"""
/requests — pending follow requests addressed to the viewer.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from ...api.schemas import RequestCountOut
from ...errors import BackendError, NotSignedIn

router = APIRouter(prefix="/requests", tags=["requests"])


def _get_monitor(request: Request):
    return request.app.state.services["requests"]


@router.get("/count", response_model=RequestCountOut)
def get_request_count(monitor=Depends(_get_monitor)):
    """Last polled count; refreshed every interval and right after approve/reject."""
    return RequestCountOut(count=monitor.count)


async def _resolve(action, request_id: str) -> dict:
    try:
        await action(request_id)
    except NotSignedIn as exc:
        raise HTTPException(status_code=401, detail=str(exc))
    except BackendError as exc:
        raise HTTPException(status_code=exc.status_code or 502, detail=str(exc))
    return {"status": "ok"}


@router.post("/{request_id}/approve")
async def approve_request(request_id: str, monitor=Depends(_get_monitor)):
    return await _resolve(monitor.approve, request_id)


@router.post("/{request_id}/reject")
async def reject_request(request_id: str, monitor=Depends(_get_monitor)):
    return await _resolve(monitor.reject, request_id)
