"""
==============================================================================
Scanner WebSocket Module
==============================================================================

Camera QR scanning driven over a WebSocket connection.

The connection is the view owning a rendering surface: connecting mounts a
scan session on the surface, disconnecting disposes it and frees the camera.

Protocol:
---------
    /ws/scan?surface=<id>&auto_start=<bool>&continuous=<bool>

Messages (Client → Server):
---------------------------
- {"type": "start"}                    → Start scanning
- {"type": "stop"}                     → Stop scanning
- {"type": "switch_camera"}            → Move to the next camera
- {"type": "status"}                   → Report current status
- {"type": "manual", "code": "..."}    → Submit a typed/handheld code

Messages (Server → Client):
---------------------------
- {"type": "ready", "surface": "...", "config": {...}, "continuous": false}
- {"type": "status", "status": "scanning", "device_id": "0"}
- {"type": "scan_complete", "payload": "...", "source": "camera", ...}
- {"type": "error", "code": "...", "message": "...", "details": {...}}

==============================================================================
"""

import asyncio
import json
import logging
from typing import Any, Callable, Dict, Optional, Set

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect

from app.config import get_settings
from app.core import exceptions
from app.core.dependencies import (
    EngineFactory,
    get_engine_factory,
    get_registry,
    get_scan_logger,
)
from app.core.exceptions import AppException
from app.scanner import CameraScanSession, ScanConfig, ScanStatus, SurfaceRegistry
from app.utils.scan_logger import ScanLogger
from app.utils.validators import ScanPayloadValidator


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class ScannerWebSocketHandler:
    """
    Handler for one camera scanning WebSocket connection.

    Manages the lifecycle of a scanning session including:
    - Surface claim and release
    - Session creation (mount) and disposal (unmount)
    - Command dispatch from the client
    - Event delivery from capture threads back to the client
    """

    def __init__(
        self,
        websocket: WebSocket,
        surface_id: str,
        engine_factory: EngineFactory,
        registry: SurfaceRegistry,
        scan_logger: ScanLogger,
        auto_start: bool = True,
        continuous: bool = False
    ):
        self._websocket = websocket
        self._surface_id = surface_id
        self._engine_factory = engine_factory
        self._registry = registry
        self._scan_logger = scan_logger
        self._auto_start = auto_start
        self._continuous = continuous

        self._settings = get_settings()
        self._validator = ScanPayloadValidator(self._settings.manual_code_max_length)
        self._config = ScanConfig.from_settings(self._settings)

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._events: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._tasks: Set[asyncio.Task] = set()
        self._pending_start: Optional[asyncio.Task] = None
        self._session: Optional[CameraScanSession] = None
        self._closed = False

    # =========================================================================
    # OUTGOING EVENTS
    # =========================================================================

    def _emit(self, message: Dict[str, Any]) -> None:
        """Queue a message for the client; callable from any thread."""
        if self._closed or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._events.put_nowait, message)

    @staticmethod
    def _error_message(error: AppException) -> Dict[str, Any]:
        return {
            "type": "error",
            "code": error.code,
            "message": error.message,
            "details": error.details,
        }

    async def _send_events(self) -> None:
        """Drain queued events to the client in order."""
        while True:
            message = await self._events.get()
            await self._websocket.send_json(message)

    # =========================================================================
    # SESSION HOOKS (capture / worker threads)
    # =========================================================================

    def _on_scan_complete(self, payload: str) -> None:
        device_id = self._session.last_device_id if self._session else None
        self._deliver(payload, "camera", device_id)

        if self._continuous and self._loop is not None and not self._closed:
            self._loop.call_soon_threadsafe(self._schedule_restart)

    def _on_error(self, error: AppException) -> None:
        self._emit(self._error_message(error))

    def _on_status(self, status: ScanStatus, device_id: Optional[str]) -> None:
        self._emit({"type": "status", "status": status.value, "device_id": device_id})

    def _deliver(self, payload: str, source: str, device_id: Optional[str]) -> None:
        record = self._scan_logger.record(
            self._surface_id, payload, source=source, device_id=device_id
        )
        self._emit({
            "type": "scan_complete",
            "payload": record.payload,
            "source": record.source,
            "device_id": record.device_id,
            "scanned_at": record.scanned_at.isoformat(),
        })

    # =========================================================================
    # BACKGROUND TASKS
    # =========================================================================

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_later(self, delay: float, func: Callable[[], None]) -> None:
        await asyncio.sleep(delay)
        await asyncio.to_thread(func)

    def _schedule_start(self, delay: float) -> None:
        """Start the session after a delay; replaces any pending start."""
        if self._closed or self._session is None:
            return
        self._cancel_pending_start()
        self._pending_start = self._spawn(self._run_later(delay, self._session.start))

    def _cancel_pending_start(self) -> None:
        """Drop a delayed start the client has overridden."""
        task = self._pending_start
        self._pending_start = None
        if task is not None and not task.done():
            task.cancel()
            logger.debug("Pending scan start cancelled")

    def _schedule_restart(self) -> None:
        logger.debug(f"Restarting scan in {self._settings.rescan_delay_seconds}s")
        self._schedule_start(self._settings.rescan_delay_seconds)

    # =========================================================================
    # COMMANDS
    # =========================================================================

    async def handle_command(self, data: Dict[str, Any]) -> None:
        """Dispatch one client command."""
        command = data.get("type")
        session = self._session

        if command == "start":
            self._cancel_pending_start()
            await asyncio.to_thread(session.start)
        elif command == "stop":
            self._cancel_pending_start()
            await asyncio.to_thread(session.stop)
        elif command == "switch_camera":
            self._cancel_pending_start()
            await asyncio.to_thread(session.switch_camera)
        elif command == "status":
            self._on_status(session.status, session.active_device_id)
        elif command == "manual":
            await self.handle_manual(data)
        else:
            self._emit({
                "type": "error",
                "code": "UNKNOWN_COMMAND",
                "message": f"Unknown command: {command}",
                "details": {},
            })

    async def handle_manual(self, data: Dict[str, Any]) -> None:
        """Accept a typed or handheld-scanner code in place of the camera."""
        is_valid, code, error = self._validator.validate(data.get("code"))
        if not is_valid:
            self._emit(self._error_message(exceptions.invalid_scan_payload(error)))
            return

        self._cancel_pending_start()
        if self._session.is_active:
            await asyncio.to_thread(self._session.stop)

        await asyncio.to_thread(self._deliver, code, "manual", None)

    # =========================================================================
    # CONNECTION LIFECYCLE
    # =========================================================================

    async def _receive(self) -> Optional[Dict[str, Any]]:
        text = await self._websocket.receive_text()
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None

        if not isinstance(data, dict):
            self._emit({
                "type": "error",
                "code": "INVALID_MESSAGE",
                "message": "Messages must be JSON objects",
                "details": {},
            })
            return None
        return data

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info(f"📱 Scanner WebSocket connected (surface={self._surface_id})")

        try:
            surface = self._registry.claim(
                self._surface_id, jpeg_quality=self._settings.preview_jpeg_quality
            )
        except AppException as e:
            logger.warning(f"Surface claim rejected: {e.message}")
            await self._websocket.send_json(self._error_message(e))
            await self._websocket.close()
            return

        self._loop = asyncio.get_running_loop()
        self._session = CameraScanSession(
            self._engine_factory(surface),
            surface,
            config=self._config,
            on_scan_complete=self._on_scan_complete,
            on_error=self._on_error,
            on_status=self._on_status,
        )
        self._registry.attach(self._surface_id, self._session)
        sender = asyncio.create_task(self._send_events())

        try:
            self._emit({
                "type": "ready",
                "surface": self._surface_id,
                "config": self._config.model_dump(),
                "continuous": self._continuous,
            })

            if self._auto_start:
                self._schedule_start(self._settings.auto_start_delay_seconds)

            while True:
                data = await self._receive()
                if data is None:
                    continue
                try:
                    await self.handle_command(data)
                except Exception as e:
                    logger.error(f"Command {data.get('type')} failed: {e}")
                    self._emit(self._error_message(exceptions.internal_error(str(e))))

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        except Exception as e:
            logger.error(f"WebSocket error: {e}")
        finally:
            self._closed = True
            for task in list(self._tasks):
                task.cancel()
            sender.cancel()

            try:
                await asyncio.to_thread(self._session.dispose)
            finally:
                self._registry.release(self._surface_id)
                logger.info("✅ Scanner WebSocket closed")


@router.websocket("/ws/scan")
async def websocket_scan(
    websocket: WebSocket,
    surface: str = Query("qr-reader", min_length=1, max_length=64),
    auto_start: bool = Query(True),
    continuous: bool = Query(False),
    engine_factory: EngineFactory = Depends(get_engine_factory),
    registry: SurfaceRegistry = Depends(get_registry),
    scan_logger: ScanLogger = Depends(get_scan_logger)
):
    """Camera QR scanning bound to a rendering surface."""
    handler = ScannerWebSocketHandler(
        websocket,
        surface,
        engine_factory,
        registry,
        scan_logger,
        auto_start=auto_start,
        continuous=continuous,
    )
    await handler.run()
