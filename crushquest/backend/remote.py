"""
Remote backend — the hosted PostgREST / RPC / storage API over httpx.

Implements every collaborator protocol the engine consumes. Transport errors
and non-2xx responses are raised as BackendError so callers only ever catch
one exception type.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..errors import BackendError
from .interfaces import BlockStatus, PublishedSession

logger = logging.getLogger(__name__)

IMAGE_BUCKET = "pomodoro-images"


class RemoteBackend:

    def __init__(
        self,
        base_url: str,
        api_key: str = "",
        access_token: str = "",
        timeout_s: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._api_key = api_key
        self._access_token = access_token
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout_s,
            transport=transport,
        )

    def set_access_token(self, token: str) -> None:
        self._access_token = token

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------------
    # Follows
    # ------------------------------------------------------------------

    async def is_following(self, viewer_id: str, target_id: str) -> bool:
        rows = await self._select(
            "follows", "id", follower_id=viewer_id, following_id=target_id
        )
        return bool(rows)

    async def create_follow_edge(self, viewer_id: str, target_id: str) -> None:
        status = await self.get_block_status(viewer_id, target_id)
        if status.viewer_blocked_target:
            raise BackendError("You have blocked this user", status_code=403)
        if status.target_blocked_viewer:
            raise BackendError("You are blocked by this user", status_code=403)
        await self._insert("follows", {"follower_id": viewer_id, "following_id": target_id})

    async def remove_follow_edge(self, viewer_id: str, target_id: str) -> None:
        await self._delete("follows", follower_id=viewer_id, following_id=target_id)

    # ------------------------------------------------------------------
    # Follow requests
    # ------------------------------------------------------------------

    async def get_pending_request(self, viewer_id: str, target_id: str) -> Optional[str]:
        rows = await self._select(
            "follow_requests", "id,status",
            requester_id=viewer_id, target_id=target_id, status="pending",
        )
        return str(rows[0]["id"]) if rows else None

    async def create_follow_request(self, viewer_id: str, target_id: str) -> None:
        blocked = await self._select("blocks", "id", blocker_id=target_id, blocked_id=viewer_id)
        if blocked:
            raise BackendError("You are blocked by this user", status_code=403)
        await self._insert(
            "follow_requests",
            {"requester_id": viewer_id, "target_id": target_id, "status": "pending"},
        )

    async def cancel_follow_request(self, viewer_id: str, target_id: str) -> None:
        await self._delete(
            "follow_requests", requester_id=viewer_id, target_id=target_id, status="pending"
        )

    async def get_pending_request_count(self, viewer_id: str) -> int:
        data = await self._rpc("get_pending_follow_requests_count", {"user_id": viewer_id})
        return int(data or 0)

    async def approve_follow_request(self, request_id: str, viewer_id: str) -> None:
        data = await self._rpc(
            "approve_follow_request",
            {"p_request_id": request_id, "p_approver_id": viewer_id},
        )
        if isinstance(data, dict) and data.get("error"):
            raise BackendError(str(data["error"]))

    async def reject_follow_request(self, request_id: str, viewer_id: str) -> None:
        rows = await self._select(
            "follow_requests", "id,status",
            id=request_id, target_id=viewer_id, status="pending",
        )
        if not rows:
            raise BackendError("Request not found or already processed", status_code=404)
        await self._delete("follow_requests", id=request_id, target_id=viewer_id)

    # ------------------------------------------------------------------
    # Blocks and privacy
    # ------------------------------------------------------------------

    async def get_block_status(self, viewer_id: str, target_id: str) -> BlockStatus:
        mine, theirs = await asyncio.gather(
            self._select("blocks", "id", blocker_id=viewer_id, blocked_id=target_id),
            self._select("blocks", "id", blocker_id=target_id, blocked_id=viewer_id),
        )
        return BlockStatus(viewer_blocked_target=bool(mine), target_blocked_viewer=bool(theirs))

    async def get_target_approval_requirement(self, target_id: str) -> bool:
        rows = await self._select("users", "require_follow_approval", id=target_id)
        if not rows:
            raise BackendError(f"User {target_id} not found", status_code=404)
        return bool(rows[0].get("require_follow_approval"))

    async def block_user(self, viewer_id: str, target_id: str) -> None:
        existing = await self._select("blocks", "id", blocker_id=viewer_id, blocked_id=target_id)
        if existing:
            return

        # Tear down requests and follows in both directions; failures here
        # do not stop the block itself.
        cleanup = [
            ("follow_requests", {"target_id": viewer_id, "requester_id": target_id, "status": "pending"}),
            ("follow_requests", {"requester_id": viewer_id, "target_id": target_id, "status": "pending"}),
            ("follows", {"follower_id": viewer_id, "following_id": target_id}),
            ("follows", {"follower_id": target_id, "following_id": viewer_id}),
        ]
        for table, filters in cleanup:
            try:
                await self._delete(table, **filters)
            except BackendError as exc:
                logger.warning("Error cleaning up %s before block: %s", table, exc)

        await self._insert("blocks", {"blocker_id": viewer_id, "blocked_id": target_id})

    async def unblock_user(self, viewer_id: str, target_id: str) -> None:
        await self._delete("blocks", blocker_id=viewer_id, blocked_id=target_id)

    # ------------------------------------------------------------------
    # Leaderboards
    # ------------------------------------------------------------------

    async def get_global_weekly(self, viewer_id: Optional[str] = None) -> List[Dict[str, Any]]:
        data = await self._rpc("get_global_leaderboard", {"p_current_user_id": viewer_id})
        return list(data or [])

    async def get_friends_weekly(self, viewer_id: str) -> List[Dict[str, Any]]:
        data = await self._rpc("get_friends_leaderboard", {"p_user_id": viewer_id})
        return list(data or [])

    # ------------------------------------------------------------------
    # Sessions and media
    # ------------------------------------------------------------------

    async def publish_session(self, session: PublishedSession) -> None:
        await self._insert("pomodoros", {
            "user_id": session.user_id,
            "launch_at": session.launch_at,
            "task": session.task,
            "notes": session.notes,
            "completed": session.completed,
            "image_url": session.image_ref,  # the storage path, not a signed URL
        })

    async def upload_image(
        self, owner_id: str, filename: str, content_type: str, data: bytes
    ) -> str:
        ext = filename.rsplit(".", 1)[-1] if "." in filename else "jpg"
        path = f"{owner_id}/{int(time.time() * 1000)}.{ext}"
        await self._send(
            "POST", f"/storage/v1/object/{IMAGE_BUCKET}/{path}",
            content=data, headers={"Content-Type": content_type},
        )
        return path

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"apikey": self._api_key} if self._api_key else {}
        token = self._access_token or self._api_key
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    async def _send(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise BackendError(f"{method} {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise BackendError(
                f"{method} {url} returned {response.status_code}: {response.text[:200]}",
                status_code=response.status_code,
            )
        return response

    async def _select(self, table: str, columns: str, **filters: str) -> List[Dict[str, Any]]:
        params = {"select": columns, **{k: f"eq.{v}" for k, v in filters.items()}}
        response = await self._send("GET", f"/rest/v1/{table}", params=params)
        return _json(response)

    async def _insert(self, table: str, row: Dict[str, Any]) -> None:
        await self._send(
            "POST", f"/rest/v1/{table}", json=row,
            headers={"Prefer": "return=minimal"},
        )

    async def _delete(self, table: str, **filters: str) -> None:
        params = {k: f"eq.{v}" for k, v in filters.items()}
        await self._send("DELETE", f"/rest/v1/{table}", params=params)

    async def _rpc(self, name: str, args: Dict[str, Any]) -> Any:
        response = await self._send("POST", f"/rest/v1/rpc/{name}", json=args)
        if not response.content:
            return None
        return _json(response)


def _json(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        raise BackendError(f"Malformed response from {response.request.url}: {exc}") from exc
