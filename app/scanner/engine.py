"""
==============================================================================
Decoding Engine Module
==============================================================================

Camera enumeration and continuous QR decoding for scan sessions.

Contract:
---------
    list_devices() -> List[CameraDevice]
    start(device_id, config, on_decode, on_frame_miss, on_failure=None)
    stop()
    release()

Engine failures raise AppException with code ENGINE_ERROR.

OpenCVDecodingEngine:
---------------------
- Devices from /dev/video* nodes (fallback: probe a fixed index range),
  confirmed by opening them with cv2.VideoCapture
- Labels from /sys/class/video4linux/videoN/name
- Capture loop on a daemon thread paced to the configured frame rate
- Frames centre-cropped to the aspect ratio; only the centred scan region
  is decoded (pyzbar, QR symbols only)
- Annotated preview frames published to an attached PreviewSurface

==============================================================================
"""

from __future__ import annotations

import glob
import logging
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import cv2
import numpy as np
from pyzbar.pyzbar import ZBarSymbol, decode

from app.config import Settings, get_settings
from app.core import exceptions
from app.scanner.models import CameraDevice, ScanConfig
from app.scanner.surface import PreviewSurface, SurfaceRegistry


# Module logger
logger = logging.getLogger(__name__)


DecodeCallback = Callable[[str], None]
FrameMissCallback = Callable[[str], None]
FailureCallback = Callable[[Exception], None]


# BGR colors for the preview overlay
REGION_COLOR = (0, 255, 0)
SHADE_COLOR = (0, 0, 0)


class DecodingEngine(ABC):
    """Capability interface a scan session drives."""

    @abstractmethod
    def list_devices(self) -> List[CameraDevice]:
        """Enumerate available cameras."""

    @abstractmethod
    def start(
        self,
        device_id: str,
        config: ScanConfig,
        on_decode: DecodeCallback,
        on_frame_miss: FrameMissCallback,
        on_failure: Optional[FailureCallback] = None
    ) -> None:
        """Acquire the camera and attach the continuous decode loop."""

    @abstractmethod
    def stop(self) -> None:
        """Halt capture and release the camera."""

    def release(self) -> None:
        """Release engine resources once the owning session is disposed."""


# =============================================================================
# FRAME GEOMETRY HELPERS
# =============================================================================

def crop_to_aspect(frame: np.ndarray, aspect_ratio: float) -> np.ndarray:
    """
    Centre-crop a frame to the given width / height ratio.

    Args:
        frame: Image array (H x W [x C])
        aspect_ratio: Target width divided by height

    Returns:
        View of the cropped frame
    """
    height, width = frame.shape[:2]
    if height == 0 or width == 0:
        return frame

    current = width / height
    if abs(current - aspect_ratio) < 1e-3:
        return frame

    if current > aspect_ratio:
        new_width = max(1, int(round(height * aspect_ratio)))
        left = (width - new_width) // 2
        return frame[:, left:left + new_width]

    new_height = max(1, int(round(width / aspect_ratio)))
    top = (height - new_height) // 2
    return frame[top:top + new_height, :]


def scan_region_bounds(
    frame_shape: Tuple[int, ...],
    box_width: int,
    box_height: int
) -> Tuple[int, int, int, int]:
    """
    Compute the centred scan region, clamped to the frame.

    Returns:
        (x, y, width, height)
    """
    height, width = frame_shape[:2]
    region_width = min(box_width, width)
    region_height = min(box_height, height)
    x = (width - region_width) // 2
    y = (height - region_height) // 2
    return x, y, region_width, region_height


def extract_scan_region(frame: np.ndarray, config: ScanConfig) -> np.ndarray:
    """Crop a frame to the viewfinder aspect ratio and then to the scan region."""
    viewfinder = crop_to_aspect(frame, config.aspect_ratio)
    x, y, w, h = scan_region_bounds(
        viewfinder.shape, config.qrbox_width, config.qrbox_height
    )
    return viewfinder[y:y + h, x:x + w]


def decode_region(region: np.ndarray) -> Optional[str]:
    """
    Decode the first QR code in a region.

    Returns:
        Decoded payload, or None when nothing was found
    """
    if region is None or region.size == 0:
        return None

    if region.ndim == 3:
        region = cv2.cvtColor(region, cv2.COLOR_BGR2GRAY)

    barcodes = decode(region, symbols=[ZBarSymbol.QRCODE])
    for barcode in barcodes:
        return barcode.data.decode("utf-8", errors="replace")
    return None


def draw_scan_region(frame: np.ndarray, config: ScanConfig) -> np.ndarray:
    """
    Build the annotated preview: viewfinder with the scan region outlined
    and everything outside it shaded.
    """
    preview = crop_to_aspect(frame, config.aspect_ratio).copy()
    x, y, w, h = scan_region_bounds(
        preview.shape, config.qrbox_width, config.qrbox_height
    )

    shade = np.full_like(preview, SHADE_COLOR)
    shaded = cv2.addWeighted(preview, 0.5, shade, 0.5, 0)
    shaded[y:y + h, x:x + w] = preview[y:y + h, x:x + w]

    cv2.rectangle(shaded, (x, y), (x + w, y + h), REGION_COLOR, 2)
    return shaded


# =============================================================================
# OPENCV ENGINE
# =============================================================================

class OpenCVDecodingEngine(DecodingEngine):
    """
    Decoding engine backed by OpenCV capture and pyzbar.

    One instance serves one rendering surface. ``stop()`` may be called from
    the decode callback itself (capture thread): the camera is then released
    immediately and the loop exits once the callback returns.

    Example:
        >>> engine = OpenCVDecodingEngine(surface)
        >>> devices = engine.list_devices()
        >>> engine.start(devices[0].id, ScanConfig(), print, lambda _: None)
        >>> engine.stop()
    """

    SYSFS_ROOT = Path("/sys/class/video4linux")

    def __init__(
        self,
        surface: Optional[PreviewSurface] = None,
        settings: Optional[Settings] = None,
        registry: Optional[SurfaceRegistry] = None
    ) -> None:
        """
        Initialize engine.

        Args:
            surface: Rendering surface for preview frames (optional)
            settings: Application settings (uses global settings if None)
            registry: Surface registry naming cameras other sessions hold
        """
        self._settings = settings or get_settings()
        self._registry = registry if registry is not None else SurfaceRegistry()
        self._surface = surface if self._settings.preview_enabled else None
        self._lock = threading.Lock()
        self._cap: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._device_id: Optional[str] = None

    # =========================================================================
    # ENUMERATION
    # =========================================================================

    def list_devices(self) -> List[CameraDevice]:
        """
        Enumerate cameras that deliver video.

        Cameras held by this engine or by another surface's session are
        listed without being re-opened; a busy V4L2 node fails to open.
        """
        held = self._registry.held_device_ids()
        with self._lock:
            if self._cap is not None and self._device_id is not None:
                held.add(self._device_id)

        devices = []
        for index in self._candidate_indices():
            device_id = str(index)
            if device_id not in held and not self._probe(index):
                continue
            devices.append(CameraDevice(id=device_id, label=self._read_label(index)))

        logger.debug(f"Enumerated {len(devices)} cameras: {[d.id for d in devices]}")
        return devices

    def _candidate_indices(self) -> List[int]:
        indices = []
        for path in glob.glob("/dev/video*"):
            suffix = Path(path).name.replace("video", "")
            if suffix.isdigit():
                indices.append(int(suffix))

        if not indices:
            indices = list(range(self._settings.camera_probe_limit))

        return sorted(indices)

    @staticmethod
    def _probe(index: int) -> bool:
        cap = cv2.VideoCapture(index)
        try:
            return cap.isOpened()
        finally:
            cap.release()

    def _read_label(self, index: int) -> str:
        """Best-effort friendly name from sysfs."""
        sys_name = self.SYSFS_ROOT / f"video{index}" / "name"
        try:
            if sys_name.exists():
                text = sys_name.read_text(encoding="utf-8").strip()
                if text:
                    return text
        except OSError as e:
            logger.debug(f"Could not read camera label for {index}: {e}")
        return f"Camera {index}"

    # =========================================================================
    # CAPTURE LIFECYCLE
    # =========================================================================

    def start(
        self,
        device_id: str,
        config: ScanConfig,
        on_decode: DecodeCallback,
        on_frame_miss: FrameMissCallback,
        on_failure: Optional[FailureCallback] = None
    ) -> None:
        """
        Open the camera and start the capture thread.

        Raises:
            AppException: ENGINE_ERROR if already running or the camera
                cannot be opened
        """
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                raise exceptions.engine_error("Engine is already capturing", device_id)

        try:
            index = int(device_id)
        except ValueError:
            raise exceptions.engine_error(f"Invalid camera id: {device_id}", device_id)

        cap = cv2.VideoCapture(index)
        if not cap.isOpened():
            cap.release()
            raise exceptions.engine_error(f"Cannot open camera {device_id}", device_id)

        self._stop_event = threading.Event()
        thread = threading.Thread(
            target=self._capture_loop,
            args=(cap, config, on_decode, on_frame_miss, on_failure, self._stop_event),
            name=f"qr-capture-{device_id}",
            daemon=True,
        )

        with self._lock:
            self._cap = cap
            self._device_id = device_id
            self._thread = thread

        thread.start()
        logger.info(f"📷 Capture started on camera {device_id} ({config.fps} fps)")

    def stop(self) -> None:
        """
        Halt capture and release the camera. Safe to call repeatedly.
        """
        self._stop_event.set()

        with self._lock:
            thread = self._thread
            self._thread = None

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
            if thread.is_alive():
                logger.warning("Capture thread did not exit within 5s")

        self._release_capture()

    def release(self) -> None:
        """Stop capture and detach the preview surface."""
        self.stop()
        if self._surface is not None:
            self._surface.clear()
        self._surface = None

    def _release_capture(self, expected: Optional[cv2.VideoCapture] = None) -> None:
        with self._lock:
            if expected is not None and self._cap is not expected:
                return
            cap = self._cap
            device_id = self._device_id
            self._cap = None
            self._device_id = None

        if cap is not None:
            cap.release()
            logger.info(f"📷 Camera {device_id} released")

    # =========================================================================
    # CAPTURE LOOP
    # =========================================================================

    def _capture_loop(
        self,
        cap: cv2.VideoCapture,
        config: ScanConfig,
        on_decode: DecodeCallback,
        on_frame_miss: FrameMissCallback,
        on_failure: Optional[FailureCallback],
        stop_event: threading.Event
    ) -> None:
        """Read, decode and preview frames until stopped."""
        failures = 0
        max_failures = self._settings.camera_max_read_failures

        while not stop_event.is_set():
            started = time.monotonic()

            with self._lock:
                ok, frame = cap.read() if self._cap is cap else (False, None)

            if stop_event.is_set():
                break

            if not ok or frame is None:
                failures += 1
                if failures >= max_failures:
                    logger.error(f"Capture lost after {failures} failed reads")
                    self._release_capture(expected=cap)
                    if on_failure is not None:
                        on_failure(exceptions.engine_error("Camera stopped delivering frames"))
                    break
                stop_event.wait(config.frame_interval)
                continue

            failures = 0

            if self._surface is not None:
                self._surface.publish(draw_scan_region(frame, config))

            try:
                payload = decode_region(extract_scan_region(frame, config))
            except Exception as e:
                logger.error(f"Decode error: {e}")
                payload = None

            if payload is not None:
                on_decode(payload)
            else:
                on_frame_miss("No QR code found in scan region")

            elapsed = time.monotonic() - started
            stop_event.wait(max(0.0, config.frame_interval - elapsed))

        logger.debug("Capture loop exited")
