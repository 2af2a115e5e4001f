"""
Shared pytest fixtures and configuration.
"""

from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

import crushquest.settings as settings_mod
from crushquest.api.app import create_app
from crushquest.identity import ViewerIdentity
from crushquest.session.controller import SessionController
from crushquest.session.timer_state import LocalStorage, TimerStore

from fakes import ALICE, FakeBackend, FakeChime, FakeClock


@pytest.fixture(autouse=True)
def tmp_settings_file(tmp_path: Path, monkeypatch):
    """Point the settings store at a fresh temp file and reset its cache."""
    fake_file = tmp_path / "settings.json"
    monkeypatch.setattr(settings_mod, "_FILE", fake_file)
    monkeypatch.setattr(settings_mod, "_current", {})
    yield fake_file
    monkeypatch.setattr(settings_mod, "_current", {})


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def backend():
    return FakeBackend()


@pytest.fixture()
def identity():
    return ViewerIdentity(ALICE)


@pytest.fixture()
def storage_path(tmp_path: Path) -> Path:
    return tmp_path / "local_storage.json"


@pytest.fixture()
def store(storage_path):
    return TimerStore(LocalStorage(storage_path))


@pytest.fixture()
def chime():
    return FakeChime()


@pytest.fixture()
def controller(store, backend, identity, chime, clock):
    return SessionController(store, backend, identity, chime=chime, clock=clock)


@pytest.fixture()
def app(backend, storage_path, clock):
    """Create a fresh app instance per test, wired to the in-memory backend."""
    return create_app(backend=backend, storage_path=storage_path, clock=clock, tick_interval_ms=50)


@pytest_asyncio.fixture()
async def client(app):
    """Async HTTP client wired directly to the ASGI app (no server needed)."""
    async with app.router.lifespan_context(app):
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
