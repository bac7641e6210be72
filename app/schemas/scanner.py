"""
==============================================================================
Scanner Schemas Module
==============================================================================

Response schemas for camera, surface and scan history endpoints.

==============================================================================
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field

from app.scanner.models import CameraDevice
from app.schemas.common import SuccessResponse
from app.utils.scan_logger import ScanRecord


# =============================================================================
# CAMERA SCHEMAS
# =============================================================================

class CameraDeviceResponse(BaseModel):
    """Camera as listed by the API."""
    id: str
    label: str
    rear_facing: bool = False

    @classmethod
    def from_device(cls, device: CameraDevice) -> "CameraDeviceResponse":
        """Create response from CameraDevice model."""
        return cls(id=device.id, label=device.label, rear_facing=device.is_rear_facing)


class CameraListResponse(SuccessResponse):
    """Enumerated cameras and the one a scan would prefer."""
    total: int = Field(ge=0)
    preferred_id: Optional[str] = None
    cameras: List[CameraDeviceResponse]


# =============================================================================
# SURFACE SCHEMAS
# =============================================================================

class SurfaceInfo(BaseModel):
    """Claimed rendering surface and its session state."""
    surface_id: str
    status: Optional[str] = None
    active_device_id: Optional[str] = None
    has_preview: bool = False
    preview_updated_at: Optional[datetime] = None


class SurfaceListResponse(SuccessResponse):
    total: int = Field(ge=0)
    surfaces: List[SurfaceInfo]


class SurfaceDetailResponse(SuccessResponse):
    surface: SurfaceInfo


# =============================================================================
# SCAN HISTORY SCHEMAS
# =============================================================================

class RecentScansResponse(SuccessResponse):
    """Most recent completed scans, newest first."""
    total: int = Field(ge=0)
    scans: List[ScanRecord]
