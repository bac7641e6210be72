"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides an in-memory decoding engine, session, client and scan logger
fixtures. No camera hardware is touched.

==============================================================================
"""

import pytest
from typing import Callable, Generator, List, Optional
from fastapi.testclient import TestClient

from app.config import get_settings
from app.scanner.models import CameraDevice, ScanConfig
from app.scanner.session import CameraScanSession
from app.scanner.surface import SurfaceRegistry
from app.utils.scan_logger import ScanLogger


# ============================================================================
# FAKE ENGINE
# ============================================================================

class FakeDecodingEngine:
    """
    In-memory decoding engine.

    Records every call and lets tests fire decode, frame miss and capture
    failure callbacks the way a capture thread would.
    """

    def __init__(self, devices: Optional[List[CameraDevice]] = None, surface=None):
        self.devices = list(devices or [])
        self.surface = surface

        self.start_calls: List[str] = []
        self.stop_calls = 0
        self.release_calls = 0

        self.list_error: Optional[Exception] = None
        self.start_error: Optional[Exception] = None
        self.stop_error: Optional[Exception] = None
        self.release_error: Optional[Exception] = None
        self.during_start: Optional[Callable[[], None]] = None

        self.running_device: Optional[str] = None
        self._on_decode = None
        self._on_frame_miss = None
        self._on_failure = None

    def list_devices(self) -> List[CameraDevice]:
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices)

    def start(self, device_id, config, on_decode, on_frame_miss, on_failure=None) -> None:
        self.start_calls.append(device_id)
        if self.start_error is not None:
            raise self.start_error

        self._on_decode = on_decode
        self._on_frame_miss = on_frame_miss
        self._on_failure = on_failure
        self.running_device = device_id

        if self.during_start is not None:
            self.during_start()

    def stop(self) -> None:
        self.stop_calls += 1
        self.running_device = None
        if self.stop_error is not None:
            raise self.stop_error

    def release(self) -> None:
        self.release_calls += 1
        if self.release_error is not None:
            raise self.release_error

    # Callbacks stay wired after stop() so late events can be simulated
    def emit_decode(self, payload: str) -> None:
        self._on_decode(payload)

    def emit_frame_miss(self, reason: str = "No QR code found in scan region") -> None:
        self._on_frame_miss(reason)

    def emit_failure(self, error: Exception) -> None:
        self._on_failure(error)


class SessionEvents:
    """Recorder for session hooks."""

    def __init__(self):
        self.scans: List[str] = []
        self.errors = []
        self.statuses = []

    def on_scan_complete(self, payload: str) -> None:
        self.scans.append(payload)

    def on_error(self, error) -> None:
        self.errors.append(error)

    def on_status(self, status, device_id) -> None:
        self.statuses.append((status, device_id))

    @property
    def error_codes(self) -> List[str]:
        return [error.code for error in self.errors]


# ============================================================================
# ENVIRONMENT FIXTURES
# ============================================================================

@pytest.fixture(autouse=True)
def test_settings(tmp_path, monkeypatch):
    """Point file output at a temp dir and remove session delays."""
    monkeypatch.setenv("SCAN_LOG_DIRECTORY", str(tmp_path / "logs"))
    monkeypatch.setenv("AUTO_START_DELAY_MS", "0")
    monkeypatch.setenv("RESCAN_DELAY_MS", "0")
    monkeypatch.setenv("DEBUG", "false")
    get_settings.cache_clear()

    yield get_settings()

    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def clean_registry() -> Generator[SurfaceRegistry, None, None]:
    """Release every surface a test left claimed."""
    registry = SurfaceRegistry()
    yield registry
    registry.dispose_all()


# ============================================================================
# ENGINE & SESSION FIXTURES
# ============================================================================

@pytest.fixture
def camera_devices() -> List[CameraDevice]:
    """A front and a rear camera, front enumerated first."""
    return [
        CameraDevice(id="0", label="Integrated Front Camera"),
        CameraDevice(id="1", label="USB Back Camera"),
    ]


@pytest.fixture
def fake_engine(camera_devices: List[CameraDevice]) -> FakeDecodingEngine:
    return FakeDecodingEngine(camera_devices)


@pytest.fixture
def events() -> SessionEvents:
    return SessionEvents()


@pytest.fixture
def make_session(events: SessionEvents) -> Callable[..., CameraScanSession]:
    """Build sessions over a given engine with recording hooks."""

    def factory(engine, surface=None) -> CameraScanSession:
        return CameraScanSession(
            engine,
            surface,
            config=ScanConfig(),
            on_scan_complete=events.on_scan_complete,
            on_error=events.on_error,
            on_status=events.on_status,
        )

    return factory


@pytest.fixture
def session(make_session, fake_engine: FakeDecodingEngine) -> CameraScanSession:
    return make_session(fake_engine)


# ============================================================================
# APPLICATION FIXTURES
# ============================================================================

@pytest.fixture
def scan_logger(tmp_path) -> ScanLogger:
    """Scan logger writing into a temp directory."""
    return ScanLogger(log_dir=tmp_path / "scans", limit=10, write_files=True)


@pytest.fixture
def engines() -> List[FakeDecodingEngine]:
    """Engines created by the app's engine factory, in creation order."""
    return []


@pytest.fixture
def client(
    camera_devices: List[CameraDevice],
    engines: List[FakeDecodingEngine],
    scan_logger: ScanLogger
) -> Generator[TestClient, None, None]:
    """Create test client with the fake engine and temp scan logger."""
    from app.main import app
    from app.core.dependencies import get_engine_factory, get_scan_logger

    def engine_factory(surface=None):
        engine = FakeDecodingEngine(camera_devices, surface)
        engines.append(engine)
        return engine

    app.dependency_overrides[get_engine_factory] = lambda: engine_factory
    app.dependency_overrides[get_scan_logger] = lambda: scan_logger

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
