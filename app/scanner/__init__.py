"""
==============================================================================
Scanner Package - Camera QR Scanning
==============================================================================

Camera scan sessions, rendering surfaces and shared scanner models.

Classes:
--------
- CameraScanSession: start/stop/switch/dispose lifecycle over an engine
- PreviewSurface / SurfaceRegistry: rendering surfaces and their owners
- CameraDevice, ScanConfig, ScanStatus: shared models

Decoding engines live in ``app.scanner.engine`` and are imported from there.

==============================================================================
"""

from .models import (
    CameraDevice,
    ScanConfig,
    ScanStatus,
    next_device,
    select_preferred_device,
)
from .session import CameraScanSession
from .surface import PreviewSurface, SurfaceRegistry

__all__ = [
    "CameraDevice",
    "ScanConfig",
    "ScanStatus",
    "next_device",
    "select_preferred_device",
    "CameraScanSession",
    "PreviewSurface",
    "SurfaceRegistry",
]
