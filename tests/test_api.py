"""
Integration tests for the FastAPI application.
Uses httpx.AsyncClient with the ASGI transport (no running server needed).
Fixtures are provided by tests/conftest.py.
"""

from __future__ import annotations

import asyncio

from crushquest.api.routers.session import format_remaining
from crushquest.session.timer_state import LocalStorage, TimerState, TimerStore

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32


async def _sign_in(client, user_id="alice"):
    r = await client.put("/identity", json={"id": user_id, "display_name": user_id.title()})
    assert r.status_code == 200
    return r.json()


class TestHealth:
    async def test_health_ok(self, client):
        r = await client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "ok"


class TestIdentity:
    async def test_signed_out_by_default(self, client):
        r = await client.get("/identity")
        assert r.json() == {"signed_in": False, "id": None, "display_name": None, "avatar_ref": None}

    async def test_sign_in_and_out(self, client):
        body = await _sign_in(client)
        assert body["signed_in"] is True
        assert body["id"] == "alice"
        r = await client.delete("/identity")
        assert r.json()["signed_in"] is False

    async def test_empty_id_rejected(self, client):
        r = await client.put("/identity", json={"id": ""})
        assert r.status_code == 422


class TestSessionEndpoints:
    async def test_idle_snapshot(self, client):
        r = await client.get("/session")
        assert r.status_code == 200
        body = r.json()
        assert body["phase"] == "idle"
        assert body["remaining_display"] == "00:00"

    async def test_full_round_trip(self, client, clock, backend):
        await _sign_in(client)
        t = clock.now

        r = await client.post("/session/start", json={"task": "Write spec", "duration_ms": 1_500_000})
        assert r.status_code == 200
        assert r.json()["remaining_display"] == "25:00"

        clock.now = t + 300_000
        r = await client.post("/session/pause")
        assert r.json()["phase"] == "paused"
        assert r.json()["remaining_ms"] == 1_200_000

        clock.now = t + 310_000
        r = await client.post("/session/resume")
        assert r.json()["phase"] == "running"

        clock.now = t + 1_510_000
        r = await client.get("/session")
        assert r.json()["phase"] == "completed"

        r = await client.post("/session/publish", json={"notes": "done"})
        assert r.status_code == 200
        assert r.json()["phase"] == "idle"
        assert backend.published[0].notes == "done"
        assert backend.count("get_friends_weekly") >= 1

    async def test_default_duration_from_settings(self, client):
        await client.put("/settings", json={"session_minutes": 5})
        r = await client.post("/session/start", json={"task": "quick"})
        assert r.json()["original_duration"] == 300_000

    async def test_invalid_transition_is_409(self, client):
        r = await client.post("/session/pause")
        assert r.status_code == 409
        assert "pause" in r.json()["detail"]

    async def test_non_positive_duration_is_422(self, client):
        r = await client.post("/session/start", json={"task": "x", "duration_ms": 0})
        assert r.status_code == 422

    async def test_set_task_and_cancel(self, client, storage_path):
        await client.post("/session/start", json={"task": "draft", "duration_ms": 60_000})
        r = await client.put("/session/task", json={"task": "final"})
        assert r.json()["task"] == "final"
        assert TimerStore(LocalStorage(storage_path)).load().task == "final"

        r = await client.post("/session/cancel")
        assert r.json()["phase"] == "idle"
        assert TimerStore(LocalStorage(storage_path)).load() is None

    async def test_reconcile_picks_up_other_tab(self, client, clock, storage_path):
        TimerStore(LocalStorage(storage_path)).save(TimerState(
            task="from another tab", launch_at="2024-03-04T09:00:00.000Z",
            original_duration=60_000, is_paused=True, paused_time_left=30_000,
        ))
        r = await client.post("/session/reconcile", params={"visible": "true"})
        body = r.json()
        assert body["phase"] == "paused"
        assert body["task"] == "from another tab"
        assert body["remaining_display"] == "00:30"

    async def test_publish_failure_is_502_and_keeps_session(self, client, clock, backend):
        await _sign_in(client)
        await client.post("/session/start", json={"task": "x", "duration_ms": 1_000})
        clock.advance(1_000)
        backend.fail.add("publish_session")

        r = await client.post("/session/publish", json={})
        assert r.status_code == 502
        r = await client.get("/session")
        assert r.json()["phase"] == "completed"
        assert r.json()["error"]

    async def test_publish_without_viewer_is_422(self, client, clock):
        await client.post("/session/start", json={"task": "x", "duration_ms": 1_000})
        clock.advance(1_000)
        r = await client.post("/session/publish", json={})
        assert r.status_code == 422

    async def test_concurrent_starts_accept_one(self, client, storage_path):
        responses = await asyncio.gather(
            client.post("/session/start", json={"task": "first", "duration_ms": 60_000}),
            client.post("/session/start", json={"task": "second", "duration_ms": 60_000}),
        )
        codes = sorted(r.status_code for r in responses)
        assert codes == [200, 409]

        winner = next(r for r in responses if r.status_code == 200).json()["task"]
        assert TimerStore(LocalStorage(storage_path)).load().task == winner
        r = await client.get("/session")
        assert r.json()["task"] == winner

    async def test_tick_loop_completes_in_background(self, app, client, clock):
        await client.post("/session/start", json={"task": "x", "duration_ms": 1_000})
        clock.advance(5_000)
        await asyncio.sleep(0.2)
        assert app.state.services["session"].phase.value == "completed"


class TestAttachment:
    async def test_upload_then_publish_uses_ref(self, client, clock, backend):
        await _sign_in(client)
        r = await client.post(
            "/session/attachment", params={"filename": "desk.png"},
            content=PNG, headers={"Content-Type": "image/png"},
        )
        assert r.status_code == 200
        ref = r.json()["image_ref"]
        assert ref == "alice/1.png"

        await client.post("/session/start", json={"task": "x", "duration_ms": 1_000})
        clock.advance(1_000)
        await client.post("/session/publish", json={})
        assert backend.published[0].image_ref == ref

    async def test_upload_requires_sign_in(self, client):
        r = await client.post("/session/attachment", content=PNG, headers={"Content-Type": "image/png"})
        assert r.status_code == 422

    async def test_unsupported_type(self, client):
        await _sign_in(client)
        r = await client.post("/session/attachment", content=b"%PDF", headers={"Content-Type": "application/pdf"})
        assert r.status_code == 422
        assert "not supported" in r.json()["detail"]

    async def test_clear(self, client):
        r = await client.delete("/session/attachment")
        assert r.json() == {"loading": False, "image_ref": None, "error": None}


class TestSocialEndpoints:
    async def test_follow_then_unfollow(self, client, backend):
        await _sign_in(client)
        r = await client.get("/social/bob")
        assert r.json()["state"] == "not-following"
        assert r.json()["can_toggle"] is True

        r = await client.post("/social/bob/toggle")
        assert r.json()["state"] == "following"
        assert ("alice", "bob") in backend.follows

        r = await client.post("/social/bob/toggle")
        assert r.json()["state"] == "not-following"

    async def test_private_target_gets_request(self, client, backend):
        backend.approval["bob"] = True
        await _sign_in(client)
        r = await client.post("/social/bob/toggle")
        assert r.json()["state"] == "requested"

    async def test_self_is_hidden(self, client):
        await _sign_in(client)
        r = await client.get("/social/alice")
        assert r.json()["visible"] is False

    async def test_block_hides_follow(self, client, backend):
        await _sign_in(client)
        await client.get("/social/bob", params={"known_following": "true"})
        r = await client.post("/social/bob/block")
        assert r.status_code == 200
        assert r.json()["viewer_blocked_target"] is True

        r = await client.get("/social/bob")
        assert r.json()["visible"] is False
        assert r.json()["blocked"] is True

        r = await client.delete("/social/bob/block")
        assert r.json()["viewer_blocked_target"] is False

    async def test_block_reports_target_block(self, client, backend):
        backend.blocks.add(("bob", "alice"))
        await _sign_in(client)
        r = await client.post("/social/bob/block")
        assert r.json()["viewer_blocked_target"] is True
        assert r.json()["target_blocked_viewer"] is True

    async def test_block_self_is_409(self, client):
        await _sign_in(client)
        r = await client.post("/social/alice/block")
        assert r.status_code == 409

    async def test_failed_toggle_reports_error(self, client, backend):
        await _sign_in(client)
        await client.get("/social/bob")
        backend.fail.add("create_follow_edge")
        r = await client.post("/social/bob/toggle")
        assert r.status_code == 200
        assert r.json()["state"] == "not-following"
        assert r.json()["error"]


class TestLeaderboardEndpoints:
    async def test_anonymous_board(self, client, backend):
        backend.global_rows[None] = [{"user_id": "carol", "user_name": "Carol", "completion_count": 4}]
        r = await client.get("/leaderboard")
        body = r.json()
        assert body["viewer_id"] is None
        assert body["global_entries"][0]["display_name"] == "Carol"
        assert body["friends_entries"] == []
        assert body["week_start"] < body["week_end"]

    async def test_signed_in_board_is_cached(self, client, backend):
        backend.friends_rows["alice"] = [{"user_id": "bob", "user_name": "Bob",
                                          "completion_count": 2, "is_following": True}]
        await _sign_in(client)
        await client.get("/leaderboard")
        await asyncio.sleep(0.05)
        r = await client.get("/leaderboard")
        assert r.json()["friends_entries"][0]["user_id"] == "bob"
        assert backend.count("get_friends_weekly") == 1

        await client.post("/leaderboard/refresh")
        assert backend.count("get_friends_weekly") == 2


class TestRequestEndpoints:
    async def test_approve_and_count(self, client, backend):
        request_id = backend.add_request("bob", "alice")
        await _sign_in(client)
        r = await client.post(f"/requests/{request_id}/approve")
        assert r.json() == {"status": "ok"}
        assert ("bob", "alice") in backend.follows

        await asyncio.sleep(0.05)
        r = await client.get("/requests/count")
        assert r.json()["count"] == 0

    async def test_unknown_request_is_404(self, client):
        await _sign_in(client)
        r = await client.post("/requests/req-99/reject")
        assert r.status_code == 404

    async def test_signed_out_is_401(self, client):
        r = await client.post("/requests/req-1/approve")
        assert r.status_code == 401

    async def test_count_refreshes_after_sign_in(self, client, backend):
        backend.add_request("bob", "alice")
        backend.add_request("carol", "alice")
        await _sign_in(client)
        await asyncio.sleep(0.05)
        r = await client.get("/requests/count")
        assert r.json()["count"] == 2


class TestSettingsEndpoints:
    async def test_read(self, client):
        r = await client.get("/settings")
        assert r.json()["settings"]["session_minutes"] == 25

    async def test_poll_interval_applied_to_monitor(self, app, client):
        r = await client.put("/settings", json={"request_poll_seconds": 60})
        assert r.json()["settings"]["request_poll_seconds"] == 60
        assert app.state.services["requests"].interval_s == 60.0

    async def test_out_of_range_rejected(self, client):
        r = await client.put("/settings", json={"session_minutes": 0})
        assert r.status_code == 422


class TestFormatting:
    def test_format_remaining(self):
        assert format_remaining(1_500_000) == "25:00"
        assert format_remaining(61_999) == "01:01"
        assert format_remaining(-5) == "00:00"

