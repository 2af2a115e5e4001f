"""
/identity — tell the engine who is signed in.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ...api.schemas import ViewerIn, ViewerOut
from ...backend.interfaces import Viewer

router = APIRouter(prefix="/identity", tags=["identity"])


def _get_identity(request: Request):
    return request.app.state.identity


def _viewer_out(viewer) -> ViewerOut:
    if viewer is None:
        return ViewerOut(signed_in=False)
    return ViewerOut(
        signed_in=True,
        id=viewer.id,
        display_name=viewer.display_name,
        avatar_ref=viewer.avatar_ref,
    )


@router.get("", response_model=ViewerOut)
def get_viewer(identity=Depends(_get_identity)):
    return _viewer_out(identity.current())


@router.put("", response_model=ViewerOut)
async def sign_in(body: ViewerIn, request: Request, identity=Depends(_get_identity)):
    """Switch the engine to *body*'s viewer; identity-keyed caches are reset."""
    backend = request.app.state.backend
    if body.access_token and hasattr(backend, "set_access_token"):
        backend.set_access_token(body.access_token)
    identity.sign_in(Viewer(id=body.id, display_name=body.display_name, avatar_ref=body.avatar_ref))
    return _viewer_out(identity.current())


@router.delete("", response_model=ViewerOut)
async def sign_out(identity=Depends(_get_identity)):
    identity.sign_out()
    return _viewer_out(None)
