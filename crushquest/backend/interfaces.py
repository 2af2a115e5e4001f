"""
Collaborator interfaces consumed by the session engine.

Authentication, the relational store and media storage are black boxes; the
engine only ever talks to them through these protocols. Every method raises
BackendError on failure.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Protocol


@dataclass(frozen=True)
class Viewer:
    id: str
    display_name: str = ""
    avatar_ref: Optional[str] = None


@dataclass(frozen=True)
class BlockStatus:
    viewer_blocked_target: bool = False
    target_blocked_viewer: bool = False

    @property
    def either(self) -> bool:
        return self.viewer_blocked_target or self.target_blocked_viewer


@dataclass(frozen=True)
class PublishedSession:
    user_id: str
    task: str
    notes: Optional[str]
    launch_at: str
    completed: bool
    image_ref: Optional[str] = None


class IdentityProvider(Protocol):
    def current(self) -> Optional[Viewer]: ...

    def register_listener(self, fn: Callable[[Optional[Viewer]], None]) -> None: ...


class SocialGraphStore(Protocol):
    async def is_following(self, viewer_id: str, target_id: str) -> bool: ...

    async def create_follow_edge(self, viewer_id: str, target_id: str) -> None: ...

    async def remove_follow_edge(self, viewer_id: str, target_id: str) -> None: ...

    async def get_pending_request(self, viewer_id: str, target_id: str) -> Optional[str]: ...

    async def create_follow_request(self, viewer_id: str, target_id: str) -> None: ...

    async def cancel_follow_request(self, viewer_id: str, target_id: str) -> None: ...

    async def get_block_status(self, viewer_id: str, target_id: str) -> BlockStatus: ...

    async def get_target_approval_requirement(self, target_id: str) -> bool: ...

    async def block_user(self, viewer_id: str, target_id: str) -> None: ...

    async def unblock_user(self, viewer_id: str, target_id: str) -> None: ...

    async def get_pending_request_count(self, viewer_id: str) -> int: ...

    async def approve_follow_request(self, request_id: str, viewer_id: str) -> None: ...

    async def reject_follow_request(self, request_id: str, viewer_id: str) -> None: ...


class LeaderboardStore(Protocol):
    async def get_global_weekly(self, viewer_id: Optional[str] = None) -> List[Dict[str, Any]]: ...

    async def get_friends_weekly(self, viewer_id: str) -> List[Dict[str, Any]]: ...


class SessionPersistence(Protocol):
    async def publish_session(self, session: PublishedSession) -> None: ...


class MediaStore(Protocol):
    async def upload_image(
        self, owner_id: str, filename: str, content_type: str, data: bytes
    ) -> str: ...
