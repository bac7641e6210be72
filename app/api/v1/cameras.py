"""
==============================================================================
Camera Endpoints
==============================================================================

Enumeration of cameras available to scan sessions.

==============================================================================
"""

import asyncio
import logging

from fastapi import APIRouter, Depends

from app.core import exceptions
from app.core.dependencies import EngineFactory, get_engine_factory
from app.core.exceptions import AppException
from app.scanner.models import select_preferred_device
from app.schemas.scanner import CameraDeviceResponse, CameraListResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cameras", tags=["Cameras"])


class CameraController:
    """Controller for camera enumeration."""

    def __init__(self, engine_factory: EngineFactory):
        self._engine_factory = engine_factory

    def list_cameras(self) -> CameraListResponse:
        """Enumerate cameras with a throwaway engine."""
        engine = self._engine_factory(None)
        try:
            devices = engine.list_devices()
        except AppException:
            raise
        except Exception as e:
            logger.error(f"Camera enumeration failed: {e}")
            raise exceptions.engine_error(f"Camera enumeration failed: {e}")
        finally:
            engine.release()

        preferred = select_preferred_device(devices)
        return CameraListResponse(
            total=len(devices),
            preferred_id=preferred.id if preferred else None,
            cameras=[CameraDeviceResponse.from_device(d) for d in devices],
        )


@router.get("", response_model=CameraListResponse)
async def list_cameras(engine_factory: EngineFactory = Depends(get_engine_factory)):
    """
    List cameras.

    ``preferred_id`` is the camera a scan session would pick: the first
    rear-facing camera, else the first one listed.
    """
    controller = CameraController(engine_factory)
    return await asyncio.to_thread(controller.list_cameras)
