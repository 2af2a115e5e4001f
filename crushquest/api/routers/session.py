"""
/session — the focus timer: start, pause, resume, cancel, reconcile, publish.
"""

from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, HTTPException, Query, Request, WebSocket, WebSocketDisconnect

from ...api.schemas import AttachmentOut, PublishIn, SessionOut, SessionStartIn, TaskIn
from ...errors import InvalidTransition, SessionValidationError, UploadError, UploadTimeout
from ...session.controller import SessionSnapshot

router = APIRouter(prefix="/session", tags=["session"])


def _get_services(request: Request):
    return request.app.state.services


def format_remaining(ms: int) -> str:
    seconds = max(0, ms) // 1000
    return f"{(seconds // 60) % 60:02d}:{seconds % 60:02d}"


def _session_out(snap: SessionSnapshot) -> SessionOut:
    return SessionOut(
        phase=snap.phase.value,
        task=snap.task,
        launch_at=snap.launch_at,
        remaining_ms=snap.remaining_ms,
        remaining_display=format_remaining(snap.remaining_ms),
        original_duration=snap.original_duration,
        in_progress=snap.in_progress,
        publishing=snap.publishing,
        error=snap.error,
    )


def _attachment_out(attachment) -> AttachmentOut:
    s = attachment.state
    return AttachmentOut(loading=s.loading, image_ref=s.image_ref, error=s.error)


def _apply(fn, *args):
    try:
        return _session_out(fn(*args))
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except SessionValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))


# ── Timer ───────────────────────────────────────────────────────────────────

@router.get("", response_model=SessionOut)
async def get_session(services=Depends(_get_services)):
    """Current snapshot; also ticks, so an expired timer completes here."""
    return _session_out(services["session"].tick())


@router.post("/start", response_model=SessionOut)
async def start_session(req: SessionStartIn, services=Depends(_get_services)):
    return _apply(services["session"].start, req.task, req.duration_ms)


@router.put("/task", response_model=SessionOut)
async def set_task(req: TaskIn, services=Depends(_get_services)):
    return _apply(services["session"].set_task, req.task)


@router.post("/pause", response_model=SessionOut)
async def pause_session(services=Depends(_get_services)):
    return _apply(services["session"].pause)


@router.post("/resume", response_model=SessionOut)
async def resume_session(services=Depends(_get_services)):
    return _apply(services["session"].resume)


@router.post("/cancel", response_model=SessionOut)
async def cancel_session(services=Depends(_get_services)):
    snap = _apply(services["session"].cancel)
    services["attachment"].clear()
    return snap


@router.post("/reconcile", response_model=SessionOut)
async def reconcile_session(
    visible: bool = Query(default=True, description="Visibility reported by the UI"),
    services=Depends(_get_services),
):
    """Called on mount and whenever the page becomes visible again."""
    return _session_out(services["session"].on_visibility_change(visible))


# ── Publish ─────────────────────────────────────────────────────────────────

@router.post("/attachment", response_model=AttachmentOut)
async def upload_attachment(
    request: Request,
    filename: str = Query(default="photo.jpg"),
    services=Depends(_get_services),
):
    """Upload the raw image body; the returned reference is used by /publish."""
    attachment = services["attachment"]
    viewer = request.app.state.identity.current()
    content_type = request.headers.get("content-type", "")
    data = await request.body()
    try:
        await attachment.upload(viewer.id if viewer else None, filename, content_type, data)
    except UploadTimeout as exc:
        raise HTTPException(status_code=504, detail=str(exc))
    except UploadError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return _attachment_out(attachment)


@router.delete("/attachment", response_model=AttachmentOut)
async def clear_attachment(services=Depends(_get_services)):
    services["attachment"].clear()
    return _attachment_out(services["attachment"])


@router.post("/publish", response_model=SessionOut)
async def publish_session(req: PublishIn, services=Depends(_get_services)):
    controller = services["session"]
    attachment = services["attachment"]
    image_ref = req.image_ref or attachment.state.image_ref
    try:
        published = await controller.publish(req.notes, image_ref)
    except InvalidTransition as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except SessionValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    if not published:
        raise HTTPException(status_code=502, detail=controller.snapshot().error)
    attachment.clear()
    return _session_out(controller.snapshot())


# ── Stream ──────────────────────────────────────────────────────────────────

@router.websocket("/ws")
async def session_websocket(websocket: WebSocket):
    """
    WebSocket stream — pushes the session snapshot every second.
    The timer banner subscribes to this for the live countdown.
    """
    await websocket.accept()
    controller = websocket.app.state.services["session"]
    try:
        while True:
            payload = _session_out(controller.tick()).model_dump()
            await websocket.send_json(payload)
            await asyncio.sleep(1)
    except WebSocketDisconnect:
        pass
