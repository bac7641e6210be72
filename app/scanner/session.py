"""
==============================================================================
Camera Scan Session Module
==============================================================================

Lifecycle of one camera scan on one rendering surface.

State Machine:
--------------
    IDLE -> STARTING -> SCANNING -> STOPPING -> STOPPED
               |            |
               +-> FAILED <-+

- start() is a no-op while STARTING or SCANNING
- a successful decode stops the session before the caller is notified
- decode callbacks received while not SCANNING are discarded
- errors go to the on_error hook; nothing is raised across the session

Threading:
----------
Decode callbacks arrive on the engine's capture thread while start/stop are
called from the owning view. Status is guarded by a lock and is the source
of truth; engine calls are never made while holding it.

==============================================================================
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Callable, Optional

from app.core import exceptions
from app.core.exceptions import AppException
from app.scanner.models import (
    ScanConfig,
    ScanStatus,
    next_device,
    select_preferred_device,
)
from app.scanner.surface import PreviewSurface

if TYPE_CHECKING:
    from app.scanner.engine import DecodingEngine


# Module logger
logger = logging.getLogger(__name__)


ScanCompleteCallback = Callable[[str], None]
ErrorCallback = Callable[[AppException], None]
StatusCallback = Callable[[ScanStatus, Optional[str]], None]


class CameraScanSession:
    """
    Camera scan session bound to a single rendering surface.

    Exposes the imperative handle the owning view drives:
    start(), stop(), switch_camera() and dispose().

    Attributes:
        status: Current ScanStatus
        active_device_id: Device being scanned (set only while SCANNING)
        surface: Rendering surface owned by this session

    Example:
        >>> session = CameraScanSession(engine, surface, on_scan_complete=print)
        >>> session.start()
        >>> session.status
        <ScanStatus.SCANNING: 'scanning'>
        >>> session.dispose()
    """

    def __init__(
        self,
        engine: DecodingEngine,
        surface: Optional[PreviewSurface] = None,
        config: Optional[ScanConfig] = None,
        on_scan_complete: Optional[ScanCompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_status: Optional[StatusCallback] = None
    ) -> None:
        """
        Initialize session in the IDLE state.

        Args:
            engine: Decoding engine providing cameras and decode loop
            surface: Rendering surface the engine draws into (optional)
            config: Decode loop configuration (defaults from settings)
            on_scan_complete: Called with the payload of each completed scan
            on_error: Error observation hook
            on_status: Called after every status transition
        """
        self._engine: Optional[DecodingEngine] = engine
        self._surface = surface
        self._config = config or ScanConfig.from_settings()
        self._on_scan_complete = on_scan_complete
        self._on_error = on_error
        self._on_status = on_status

        self._lock = threading.RLock()
        self._status = ScanStatus.IDLE
        self._active_device_id: Optional[str] = None
        self._last_device_id: Optional[str] = None
        self._delivered = False
        self._disposed = False

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def status(self) -> ScanStatus:
        with self._lock:
            return self._status

    @property
    def active_device_id(self) -> Optional[str]:
        with self._lock:
            return self._active_device_id

    @property
    def last_device_id(self) -> Optional[str]:
        """Device used by the most recent start attempt."""
        with self._lock:
            return self._last_device_id

    @property
    def surface(self) -> Optional[PreviewSurface]:
        return self._surface

    @property
    def config(self) -> ScanConfig:
        return self._config

    @property
    def is_active(self) -> bool:
        return self.status.is_active

    @property
    def is_disposed(self) -> bool:
        with self._lock:
            return self._disposed

    # =========================================================================
    # OPERATIONS
    # =========================================================================

    def start(self, device_id: Optional[str] = None) -> None:
        """
        Acquire a camera and begin continuous decoding.

        Prefers a rear-facing camera unless ``device_id`` names an
        enumerated device. No-op while STARTING or SCANNING.

        Args:
            device_id: Camera to use instead of the rear preference (optional)
        """
        with self._lock:
            if self._disposed:
                logger.warning("start() ignored: session disposed")
                return
            if not self._status.can_start:
                logger.debug(f"start() ignored while {self._status.value}")
                return
            engine = self._engine
            self._set_status(ScanStatus.STARTING)

        try:
            devices = engine.list_devices()
        except Exception as e:
            logger.error(f"Camera enumeration failed: {e}")
            self._fail(exceptions.engine_start_failure(str(e)))
            return

        device = select_preferred_device(devices, device_id)
        if device is None:
            logger.error("No cameras found")
            self._fail(exceptions.no_device_found())
            return

        with self._lock:
            self._last_device_id = device.id
            self._delivered = False

        logger.info(f"📷 Starting scan on {device.label or device.id} ({device.id})")

        try:
            engine.start(
                device.id,
                self._config,
                self._handle_decode,
                self._handle_frame_miss,
                self._handle_engine_failure,
            )
        except Exception as e:
            logger.error(f"Error starting scanner: {e}")
            self._fail(exceptions.engine_start_failure(str(e), device.id))
            return

        with self._lock:
            if self._status is ScanStatus.STARTING:
                self._active_device_id = device.id
                self._set_status(ScanStatus.SCANNING)
                return

        # stop() arrived while the engine was starting
        logger.info("Stop requested during start, releasing camera")
        self._halt_engine(engine)
        with self._lock:
            self._set_status(ScanStatus.STOPPED)

    def stop(self) -> None:
        """
        Halt scanning and release the camera.

        Safe from any state. Engine stop errors are reported but the
        session always ends STOPPED.
        """
        with self._lock:
            if self._status is ScanStatus.STARTING:
                # start() finishes the transition once the engine returns
                self._set_status(ScanStatus.STOPPING)
                return
            if self._status is not ScanStatus.SCANNING:
                logger.debug(f"stop() ignored while {self._status.value}")
                return
            engine = self._engine
            self._active_device_id = None
            self._set_status(ScanStatus.STOPPING)

        self._halt_engine(engine)

        with self._lock:
            self._set_status(ScanStatus.STOPPED)

    def switch_camera(self) -> None:
        """
        Move scanning to the next camera in enumeration order.

        No-op before the first start(), while a start or stop is in progress,
        or when fewer than two cameras exist.
        """
        with self._lock:
            if self._disposed or self._last_device_id is None:
                logger.debug("switch_camera() ignored: session never started")
                return
            if self._status in (ScanStatus.STARTING, ScanStatus.STOPPING):
                logger.debug(f"switch_camera() ignored while {self._status.value}")
                return
            engine = self._engine
            current_id = self._last_device_id

        try:
            devices = engine.list_devices()
        except Exception as e:
            logger.error(f"Error switching camera: {e}")
            self._report(exceptions.engine_start_failure(str(e)))
            return

        if len(devices) < 2:
            logger.info("Only one camera available, not switching")
            return

        with self._lock:
            if self._status in (ScanStatus.STARTING, ScanStatus.STOPPING):
                logger.debug(f"switch_camera() abandoned while {self._status.value}")
                return

        target = next_device(devices, current_id)
        logger.info(f"🔄 Switching camera {current_id} -> {target.id}")

        self.stop()
        self.start(device_id=target.id)

    def dispose(self) -> None:
        """
        Stop scanning and release the engine and surface.

        Idempotent; safe when never started or already failed.
        """
        with self._lock:
            if self._disposed:
                return

        self.stop()

        with self._lock:
            if self._disposed:
                return
            self._disposed = True
            engine = self._engine
            self._engine = None
            self._surface = None

        if engine is not None:
            try:
                engine.release()
            except Exception as e:
                logger.error(f"Error releasing scanner: {e}")
                self._report(exceptions.engine_stop_failure(str(e)))

        logger.info("✅ Scan session disposed")

    # =========================================================================
    # ENGINE CALLBACKS
    # =========================================================================

    def _handle_decode(self, payload: str) -> None:
        """Engine decode callback; delivers at most once per attempt."""
        with self._lock:
            if self._status is not ScanStatus.SCANNING or self._delivered:
                late = exceptions.decode_after_stop()
                logger.debug(f"{late.code}: {late.message}, discarded")
                return
            self._delivered = True

        logger.info(f"✅ QR code decoded ({len(payload)} chars)")

        self.stop()

        if self._on_scan_complete is None:
            return
        try:
            self._on_scan_complete(payload)
        except Exception as e:
            logger.error(f"Scan complete handler failed: {e}")

    def _handle_frame_miss(self, reason: str) -> None:
        logger.debug(f"QR scanning in progress: {reason}")

    def _handle_engine_failure(self, error: Exception) -> None:
        """Engine reported capture loss while running."""
        with self._lock:
            if self._status is not ScanStatus.SCANNING:
                logger.debug(f"Engine failure ignored while {self._status.value}: {error}")
                return
            device_id = self._active_device_id
            engine = self._engine
            self._active_device_id = None
            self._set_status(ScanStatus.FAILED)

        logger.error(f"❌ Capture failed on camera {device_id}: {error}")
        self._halt_engine(engine, report=False)
        self._report(exceptions.capture_failure(str(error), device_id))

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _fail(self, error: AppException) -> None:
        with self._lock:
            self._active_device_id = None
            self._set_status(ScanStatus.FAILED)
        self._report(error)

    def _halt_engine(self, engine: Optional[DecodingEngine], report: bool = True) -> None:
        if engine is None:
            return
        try:
            engine.stop()
        except Exception as e:
            logger.error(f"Error stopping scanner: {e}")
            if report:
                self._report(exceptions.engine_stop_failure(str(e)))

    def _set_status(self, status: ScanStatus) -> None:
        """Record a transition; caller holds the lock."""
        previous = self._status
        self._status = status
        logger.debug(f"Scan status {previous.value} -> {status.value}")

        if self._on_status is None:
            return
        try:
            self._on_status(status, self._active_device_id)
        except Exception as e:
            logger.error(f"Status handler failed: {e}")

    def _report(self, error: AppException) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.error(f"Error handler failed: {e}")

    def __repr__(self) -> str:
        return (
            f"CameraScanSession(status={self.status.value!r}, "
            f"active_device_id={self.active_device_id!r})"
        )
