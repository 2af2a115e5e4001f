"""
Tests for the settings store (crushquest/settings.py) and the /settings API endpoints.
The settings file is redirected to a temp path by the autouse fixture in conftest.py.
"""

from __future__ import annotations

import json

import crushquest.settings as settings_mod
from crushquest.settings import DEFAULTS, get_settings, update_settings


# ── Unit tests: settings store ────────────────────────────────────────────────

class TestSettingsDefaults:
    def test_get_settings_returns_all_defaults(self):
        s = get_settings()
        for key, val in DEFAULTS.items():
            assert s[key] == val

    def test_get_settings_returns_copy(self):
        s1 = get_settings()
        s1["session_minutes"] = 9999
        assert get_settings()["session_minutes"] == DEFAULTS["session_minutes"]

    def test_defaults_contain_expected_keys(self):
        assert set(DEFAULTS.keys()) == {"session_minutes", "chime_enabled", "request_poll_seconds"}


class TestUpdateSettings:
    def test_update_persists_to_disk(self, tmp_settings_file):
        update_settings({"session_minutes": 50})
        saved = json.loads(tmp_settings_file.read_text())
        assert saved["session_minutes"] == 50

    def test_unknown_keys_are_ignored(self):
        update_settings({"unknown_key": "surprise", "session_minutes": 30})
        s = get_settings()
        assert "unknown_key" not in s
        assert s["session_minutes"] == 30

    def test_update_coerces_type(self):
        update_settings({"session_minutes": 20.7})
        assert get_settings()["session_minutes"] == 20

    def test_bool_strings(self):
        update_settings({"chime_enabled": "off"})
        assert get_settings()["chime_enabled"] is False
        update_settings({"chime_enabled": "yes"})
        assert get_settings()["chime_enabled"] is True

    def test_load_from_existing_file(self, tmp_settings_file):
        tmp_settings_file.write_text(json.dumps({"request_poll_seconds": 90}))
        settings_mod._current.clear()
        s = get_settings()
        assert s["request_poll_seconds"] == 90
        assert s["session_minutes"] == DEFAULTS["session_minutes"]

    def test_malformed_file_falls_back_to_defaults(self, tmp_settings_file):
        tmp_settings_file.write_text("not valid json{{")
        settings_mod._current.clear()
        assert get_settings() == DEFAULTS


# ── API integration tests ────────────────────────────────────────────────────

class TestSettingsEndpoint:
    async def test_get_settings_response_shape(self, client):
        r = await client.get("/settings")
        assert r.status_code == 200
        body = r.json()
        assert body["defaults"] == DEFAULTS
        assert set(body["settings"]) == set(DEFAULTS)

    async def test_put_partial_patch_preserves_other_keys(self, client):
        await client.put("/settings", json={"chime_enabled": False})
        r = await client.put("/settings", json={"session_minutes": 45})
        s = r.json()["settings"]
        assert s["chime_enabled"] is False
        assert s["session_minutes"] == 45

    async def test_put_empty_body_returns_200(self, client):
        r = await client.put("/settings", json={})
        assert r.status_code == 200

    async def test_poll_seconds_below_minimum_returns_422(self, client):
        r = await client.put("/settings", json={"request_poll_seconds": 1})
        assert r.status_code == 422

    async def test_session_minutes_above_maximum_returns_422(self, client):
        r = await client.put("/settings", json={"session_minutes": 600})
        assert r.status_code == 422
