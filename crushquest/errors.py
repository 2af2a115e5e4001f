"""
Exception hierarchy for the session engine.

Collaborator failures are always raised as BackendError so callers can catch
a single type at the call site; state-machine misuse raises InvalidTransition.
"""

from __future__ import annotations

from typing import Optional


class CrushQuestError(Exception):
    """Base class for every error raised by the engine."""


class InvalidTransition(CrushQuestError):
    """An operation was requested from a phase that does not allow it."""

    def __init__(self, operation: str, phase: str):
        super().__init__(f"Cannot {operation} while {phase}")
        self.operation = operation
        self.phase = phase


class SessionValidationError(CrushQuestError):
    """User input is missing or invalid (e.g. publishing without a task)."""


class BackendError(CrushQuestError):
    """A remote collaborator call failed (transport error or error response)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class UploadError(CrushQuestError):
    """The attached photo was rejected or could not be stored."""


class UploadTimeout(UploadError):
    """The media collaborator did not answer before the watchdog fired."""


class NotSignedIn(CrushQuestError):
    """The operation needs a signed-in viewer and there is none."""
