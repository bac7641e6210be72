"""
==============================================================================
Rendering Surface Module
==============================================================================

Preview targets that decoding engines draw into, and the registry that hands
each one to a single scan session at a time.

This module implements:
- PreviewSurface: latest annotated preview frame for one surface
- SurfaceRegistry: process-wide owner table (one session per surface)

==============================================================================
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional, Set

import cv2
import numpy as np

from app.core import exceptions

if TYPE_CHECKING:
    from app.scanner.session import CameraScanSession


# Module logger
logger = logging.getLogger(__name__)


class PreviewSurface:
    """
    Rendering surface holding the most recent preview frame as JPEG.

    Engines publish frames from their capture thread; API handlers read them
    from request threads, so access is serialized by a lock.

    Attributes:
        surface_id: Identifier the view mounted the surface under
    """

    def __init__(self, surface_id: str, jpeg_quality: int = 80) -> None:
        self.surface_id = surface_id
        self._jpeg_quality = jpeg_quality
        self._lock = threading.Lock()
        self._jpeg: Optional[bytes] = None
        self._updated_at: Optional[datetime] = None

    def publish(self, frame: np.ndarray) -> bool:
        """
        Encode and store a preview frame.

        Args:
            frame: BGR image

        Returns:
            True if the frame was stored
        """
        if frame is None or frame.size == 0:
            return False

        ok, buffer = cv2.imencode(
            ".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), self._jpeg_quality]
        )
        if not ok:
            logger.debug(f"Preview encode failed for surface {self.surface_id}")
            return False

        with self._lock:
            self._jpeg = buffer.tobytes()
            self._updated_at = datetime.now(timezone.utc)
        return True

    def latest_jpeg(self) -> Optional[bytes]:
        """Get the latest preview frame, if any."""
        with self._lock:
            return self._jpeg

    @property
    def updated_at(self) -> Optional[datetime]:
        with self._lock:
            return self._updated_at

    @property
    def has_frame(self) -> bool:
        with self._lock:
            return self._jpeg is not None

    def clear(self) -> None:
        """Drop the stored preview frame."""
        with self._lock:
            self._jpeg = None
            self._updated_at = None


class SurfaceRegistry:
    """
    Registry of claimed rendering surfaces and their scan sessions.

    A surface can be claimed by one owner at a time; a second claim fails
    with SURFACE_BUSY until the first owner releases it.

    Example:
        >>> registry = SurfaceRegistry()
        >>> surface = registry.claim("qr-reader")
        >>> registry.attach("qr-reader", session)
        >>> registry.release("qr-reader")
    """

    _instance: Optional[SurfaceRegistry] = None

    def __new__(cls) -> SurfaceRegistry:
        """Singleton pattern."""
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if getattr(self, "_initialized", False):
            return

        self._lock = threading.Lock()
        self._surfaces: Dict[str, PreviewSurface] = {}
        self._sessions: Dict[str, CameraScanSession] = {}
        self._initialized = True

    def claim(self, surface_id: str, jpeg_quality: int = 80) -> PreviewSurface:
        """
        Claim a surface for exclusive use.

        Raises:
            AppException: SURFACE_BUSY if the surface is already claimed
        """
        with self._lock:
            if surface_id in self._surfaces:
                raise exceptions.surface_busy(surface_id)

            surface = PreviewSurface(surface_id, jpeg_quality=jpeg_quality)
            self._surfaces[surface_id] = surface

        logger.info(f"🖼️ Surface claimed: {surface_id}")
        return surface

    def attach(self, surface_id: str, session: CameraScanSession) -> None:
        """Associate a scan session with a claimed surface."""
        with self._lock:
            if surface_id not in self._surfaces:
                raise exceptions.surface_not_found(surface_id)
            self._sessions[surface_id] = session

    def release(self, surface_id: str) -> None:
        """Release a surface; unknown ids are ignored."""
        with self._lock:
            surface = self._surfaces.pop(surface_id, None)
            self._sessions.pop(surface_id, None)

        if surface is not None:
            surface.clear()
            logger.info(f"🖼️ Surface released: {surface_id}")

    def get_surface(self, surface_id: str) -> Optional[PreviewSurface]:
        with self._lock:
            return self._surfaces.get(surface_id)

    def get_session(self, surface_id: str) -> Optional[CameraScanSession]:
        with self._lock:
            return self._sessions.get(surface_id)

    def held_device_ids(self) -> Set[str]:
        """Cameras currently captured by attached sessions."""
        with self._lock:
            sessions = list(self._sessions.values())

        return {
            session.active_device_id
            for session in sessions
            if session.active_device_id is not None
        }

    def snapshot(self) -> List[dict]:
        """Describe every claimed surface and its session state."""
        with self._lock:
            items = [
                (surface_id, surface, self._sessions.get(surface_id))
                for surface_id, surface in self._surfaces.items()
            ]

        return [
            self._describe(surface_id, surface, session)
            for surface_id, surface, session in items
        ]

    def describe(self, surface_id: str) -> Optional[dict]:
        """Describe one claimed surface, or None if unknown."""
        with self._lock:
            surface = self._surfaces.get(surface_id)
            session = self._sessions.get(surface_id)

        if surface is None:
            return None
        return self._describe(surface_id, surface, session)

    @staticmethod
    def _describe(
        surface_id: str,
        surface: PreviewSurface,
        session: Optional[CameraScanSession]
    ) -> dict:
        updated_at = surface.updated_at
        return {
            "surface_id": surface_id,
            "status": session.status.value if session else None,
            "active_device_id": session.active_device_id if session else None,
            "has_preview": surface.has_frame,
            "preview_updated_at": updated_at.isoformat() if updated_at else None,
        }

    def dispose_all(self) -> None:
        """Dispose every attached session and release all surfaces."""
        with self._lock:
            sessions = list(self._sessions.values())
            surface_ids = list(self._surfaces)

        for session in sessions:
            session.dispose()

        for surface_id in surface_ids:
            self.release(surface_id)

        if surface_ids:
            logger.info(f"🛑 Released {len(surface_ids)} surfaces")

    def __len__(self) -> int:
        with self._lock:
            return len(self._surfaces)
