"""
Viewer identity — who the engine is acting for.

Authentication happens elsewhere; the UI hands the signed-in viewer to the
engine and every component reads it from here. Listeners are told about
every change so caches keyed by identity can drop stale data.
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from .backend.interfaces import Viewer

logger = logging.getLogger(__name__)


class ViewerIdentity:

    def __init__(self, viewer: Optional[Viewer] = None):
        self._viewer = viewer
        self._listeners: List[Callable[[Optional[Viewer]], None]] = []

    def current(self) -> Optional[Viewer]:
        return self._viewer

    @property
    def viewer_id(self) -> Optional[str]:
        return self._viewer.id if self._viewer else None

    def sign_in(self, viewer: Viewer) -> None:
        self._set(viewer)

    def sign_out(self) -> None:
        self._set(None)

    def register_listener(self, fn: Callable[[Optional[Viewer]], None]) -> None:
        """Register a callback(viewer) called whenever the viewer changes."""
        self._listeners.append(fn)

    def _set(self, viewer: Optional[Viewer]) -> None:
        if viewer == self._viewer:
            return
        self._viewer = viewer
        for listener in self._listeners:
            try:
                listener(viewer)
            except Exception:
                logger.exception("Identity listener failed")
