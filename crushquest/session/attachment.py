"""
Photo attachment for a completed doro.

Validates the file the same way the storage bucket does, then uploads it
through the media collaborator under a watchdog so a hung upload cannot
leave the form stuck in its loading state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from ..backend.interfaces import MediaStore
from ..errors import BackendError, UploadError, UploadTimeout

logger = logging.getLogger(__name__)

SUPPORTED_IMAGE_TYPES = (
    "image/png",
    "image/jpeg",
    "image/jpg",
    "image/gif",
    "image/webp",
    "image/heic",
)
MAX_FILE_SIZE = 5_242_880  # 5 MiB, same as the bucket limit

TYPE_ERROR = "File type not supported. Please use PNG, JPEG, GIF, WebP, or HEIC."
SIZE_ERROR = "File too large. Maximum size is 5MB."
TIMEOUT_ERROR = "Upload took too long. Please try again."
UPLOAD_FAILED_ERROR = "Sorry, that image did not work. Please try a different image."


def validate_image(content_type: str, size: int) -> Optional[str]:
    """Return an error message for an unacceptable file, or None."""
    if content_type.lower() not in SUPPORTED_IMAGE_TYPES:
        return TYPE_ERROR
    if size > MAX_FILE_SIZE:
        return SIZE_ERROR
    return None


@dataclass
class AttachmentState:
    loading: bool = False
    image_ref: Optional[str] = None
    error: Optional[str] = None


class PhotoAttachment:

    def __init__(self, media: MediaStore, timeout_s: float = 30.0):
        self._media = media
        self._timeout_s = timeout_s
        self.state = AttachmentState()

    async def upload(
        self, owner_id: Optional[str], filename: str, content_type: str, data: bytes
    ) -> str:
        """Upload *data* and remember the returned image reference."""
        self.state.error = None
        if not owner_id:
            raise self._fail(UploadError("You must be logged in to upload images"))
        problem = validate_image(content_type, len(data))
        if problem:
            raise self._fail(UploadError(problem))

        self.state.loading = True
        try:
            ref = await asyncio.wait_for(
                self._media.upload_image(owner_id, filename, content_type, data),
                timeout=self._timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("Image upload exceeded %.0fs watchdog", self._timeout_s)
            raise self._fail(UploadTimeout(TIMEOUT_ERROR))
        except BackendError as exc:
            logger.error("Upload failed: %s", exc)
            raise self._fail(UploadError(UPLOAD_FAILED_ERROR)) from exc
        finally:
            self.state.loading = False

        self.state.image_ref = ref
        return ref

    def clear(self) -> None:
        self.state = AttachmentState()

    def _fail(self, exc: UploadError) -> UploadError:
        self.state.error = str(exc)
        return exc
