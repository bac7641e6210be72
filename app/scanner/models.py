"""
==============================================================================
Scanner Models Module
==============================================================================

Pydantic models and enums shared by the scan session and decoding engines.

==============================================================================
"""

from __future__ import annotations

import enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import Settings, get_settings
from app.config.settings import CSS_LENGTH_PATTERN


# Label keywords identifying a rear-facing camera
REAR_CAMERA_KEYWORDS = ("back", "rear")


class ScanStatus(str, enum.Enum):
    """
    Scan session status enumeration.

    State machine:

        IDLE -> STARTING -> SCANNING -> STOPPING -> STOPPED
                   |            |
                   +-> FAILED <-+

    STOPPED and FAILED may re-enter STARTING on the next start().
    The enum inherits from str to enable JSON serialization.
    """

    IDLE = "idle"
    STARTING = "starting"
    SCANNING = "scanning"
    STOPPING = "stopping"
    STOPPED = "stopped"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        """Check if the camera is (or is about to be) held."""
        return self in (ScanStatus.STARTING, ScanStatus.SCANNING)

    @property
    def can_start(self) -> bool:
        """Check if start() is allowed from this status."""
        return self in (ScanStatus.IDLE, ScanStatus.STOPPED, ScanStatus.FAILED)


class CameraDevice(BaseModel):
    """
    Camera reported by a decoding engine's enumeration.

    Attributes:
        id: Opaque device identifier
        label: Human-readable device label
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Opaque device identifier")
    label: str = Field(default="", description="Human-readable label")

    @property
    def is_rear_facing(self) -> bool:
        """Check if the label names a rear-facing camera."""
        label = self.label.lower()
        return any(keyword in label for keyword in REAR_CAMERA_KEYWORDS)


class ScanConfig(BaseModel):
    """
    Tunable decode loop and render surface configuration.

    Attributes:
        fps: Frames decoded per second
        qrbox_width: Scan region width in pixels
        qrbox_height: Scan region height in pixels
        aspect_ratio: Viewfinder aspect ratio (width / height)
        render_width: Render surface width as a CSS length
        render_height: Render surface height as a CSS length
    """

    model_config = ConfigDict(frozen=True)

    fps: int = Field(default=10, ge=1, le=60)
    qrbox_width: int = Field(default=250, ge=1)
    qrbox_height: int = Field(default=250, ge=1)
    aspect_ratio: float = Field(default=1.0, gt=0)
    render_width: str = Field(default="100%")
    render_height: str = Field(default="300px")

    @field_validator("render_width", "render_height")
    @classmethod
    def validate_css_length(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not CSS_LENGTH_PATTERN.match(normalized):
            raise ValueError(f"Invalid render dimension: {value}")
        return normalized

    @property
    def frame_interval(self) -> float:
        """Seconds between decode attempts."""
        return 1.0 / self.fps

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ScanConfig":
        """Build the default configuration from application settings."""
        settings = settings or get_settings()
        return cls(
            fps=settings.scanner_fps,
            qrbox_width=settings.scanner_qrbox_width,
            qrbox_height=settings.scanner_qrbox_height,
            aspect_ratio=settings.scanner_aspect_ratio,
            render_width=settings.scanner_render_width,
            render_height=settings.scanner_render_height,
        )


def select_preferred_device(
    devices: List[CameraDevice],
    device_id: Optional[str] = None
) -> Optional[CameraDevice]:
    """
    Pick the camera a scan should run on.

    An explicitly requested device wins when it is present. Otherwise the
    first rear-facing camera is chosen, falling back to the first device.

    Args:
        devices: Devices in enumeration order
        device_id: Explicitly requested device (optional)

    Returns:
        Selected device, or None for an empty list
    """
    if not devices:
        return None

    if device_id is not None:
        for device in devices:
            if device.id == device_id:
                return device

    for device in devices:
        if device.is_rear_facing:
            return device

    return devices[0]


def next_device(
    devices: List[CameraDevice],
    current_id: Optional[str]
) -> Optional[CameraDevice]:
    """
    Get the device after ``current_id`` in enumeration order, wrapping.

    An unknown current device restarts at the first device.
    """
    if not devices:
        return None

    ids = [device.id for device in devices]
    current_index = ids.index(current_id) if current_id in ids else -1
    return devices[(current_index + 1) % len(devices)]
