"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Response schemas using Pydantic for validation.

This package provides:
- Common: Shared response schemas
- Scanner: Camera, surface and scan history schemas

==============================================================================
"""

from .common import SuccessResponse
from .scanner import (
    CameraDeviceResponse,
    CameraListResponse,
    SurfaceInfo,
    SurfaceListResponse,
    SurfaceDetailResponse,
    RecentScansResponse,
)

__all__ = [
    # Common
    "SuccessResponse",
    # Scanner
    "CameraDeviceResponse",
    "CameraListResponse",
    "SurfaceInfo",
    "SurfaceListResponse",
    "SurfaceDetailResponse",
    "RecentScansResponse",
]
