"""
==============================================================================
FastAPI Dependencies Module
==============================================================================

Dependency injection for the scanner service.

Dependencies:
-------------
- get_engine_factory: builds a decoding engine for a rendering surface
- get_registry: process-wide SurfaceRegistry
- get_scan_logger: process-wide ScanLogger

Tests swap the engine factory through ``app.dependency_overrides`` to run
without camera hardware.

Usage Examples:
--------------
    @router.get("/cameras")
    async def list_cameras(factory: EngineFactory = Depends(get_engine_factory)):
        engine = factory(None)
        ...

==============================================================================
"""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Callable, Optional

from app.scanner.engine import DecodingEngine, OpenCVDecodingEngine
from app.scanner.surface import PreviewSurface, SurfaceRegistry
from app.utils.scan_logger import ScanLogger


# Module logger
logger = logging.getLogger(__name__)


EngineFactory = Callable[[Optional[PreviewSurface]], DecodingEngine]


def create_opencv_engine(surface: Optional[PreviewSurface] = None) -> DecodingEngine:
    """Build the production OpenCV/pyzbar engine for a surface."""
    return OpenCVDecodingEngine(surface)


def get_engine_factory() -> EngineFactory:
    """Dependency returning the decoding engine factory."""
    return create_opencv_engine


def get_registry() -> SurfaceRegistry:
    """Dependency returning the surface registry singleton."""
    return SurfaceRegistry()


@lru_cache(maxsize=1)
def get_scan_logger() -> ScanLogger:
    """Dependency returning the shared scan logger."""
    logger.debug("Creating scan logger")
    return ScanLogger()
