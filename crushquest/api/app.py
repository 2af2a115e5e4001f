"""
FastAPI application — local session engine API for the Crush Quest UI.
Runs on http://127.0.0.1:8766 by default.

Singletons (timer store, controller, caches, backend) live on app.state so
that each call to create_app() produces a fully independent instance with no
shared module-level globals. This makes test isolation straightforward.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..backend.remote import RemoteBackend
from ..config import config
from ..identity import ViewerIdentity
from ..leaderboard.cache import LeaderboardCache
from ..session.attachment import PhotoAttachment
from ..session.chime import ChimePlayer
from ..session.controller import SessionController, wall_clock_ms
from ..session.timer_state import LocalStorage, TimerStore
from ..settings import get_settings
from ..social.block import FollowRoster
from ..social.requests import PendingRequestMonitor

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Background tick loop
# ---------------------------------------------------------------------------

async def _tick_loop(controller: SessionController, chime: ChimePlayer, interval_ms: int) -> None:
    while True:
        await asyncio.sleep(interval_ms / 1000.0)
        try:
            controller.tick()
            chime.reap()
        except Exception:
            logger.exception("Session tick failed")


# ---------------------------------------------------------------------------
# App factory
# ---------------------------------------------------------------------------

def create_app(
    backend: Any = None,
    storage_path: Optional[Path] = None,
    clock: Callable[[], int] = wall_clock_ms,
    tick_interval_ms: Optional[int] = None,
) -> FastAPI:
    """
    Build the app. *backend* must implement every collaborator protocol;
    when omitted a RemoteBackend is created from config at startup.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned_backend = backend is None
        remote = backend or RemoteBackend(
            config.backend_url,
            api_key=config.backend_api_key,
            access_token=config.backend_access_token,
            timeout_s=config.http_timeout_s,
        )
        identity = ViewerIdentity()
        store = TimerStore(LocalStorage(storage_path or config.storage_path))
        chime = ChimePlayer(Path(config.chime_sound) if config.chime_sound else None)

        session = SessionController(store, remote, identity, chime=chime, clock=clock)
        leaderboard = LeaderboardCache(remote, identity)
        session.register_publish_listener(leaderboard.invalidate)
        requests = PendingRequestMonitor(
            remote, identity, interval_s=float(get_settings()["request_poll_seconds"])
        )

        app.state.identity = identity
        app.state.backend = remote
        app.state.services = {
            "session": session,
            "attachment": PhotoAttachment(remote, timeout_s=config.upload_timeout_s),
            "leaderboard": leaderboard,
            "requests": requests,
            "roster": FollowRoster(remote, None),
        }

        def _on_viewer(viewer):
            # Follow rows belong to one viewer; start over for the next one.
            app.state.services["roster"] = FollowRoster(remote, viewer.id if viewer else None)
            requests.notify()

        identity.register_listener(_on_viewer)

        session.mount()
        requests.start()
        tick_task = asyncio.create_task(
            _tick_loop(session, chime, tick_interval_ms or config.tick_interval_ms)
        )
        logger.info("Session engine ready (phase=%s)", session.phase.value)

        yield

        tick_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await tick_task
        await requests.stop()
        chime.close()
        if owned_backend:
            await remote.aclose()

    app = FastAPI(
        title="Crush Quest Session Engine",
        description="Local-first focus session, social graph and leaderboard state for the Crush Quest UI",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://localhost:3000", "null"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from .routers import identity, leaderboard, requests, session, settings, social

    app.include_router(identity.router)
    app.include_router(session.router)
    app.include_router(social.router)
    app.include_router(leaderboard.router)
    app.include_router(requests.router)
    app.include_router(settings.router)

    @app.get("/health")
    def health():
        return {"status": "ok", "version": "0.1.0"}

    return app


app = create_app()
