"""
==============================================================================
Camera Scan Session Tests
==============================================================================

Tests for the scan session lifecycle over an in-memory engine.

==============================================================================
"""

import pytest

from app.scanner.models import CameraDevice, ScanStatus
from app.scanner.session import CameraScanSession

from tests.conftest import FakeDecodingEngine, SessionEvents


class TestDeviceSelection:
    """Tests for camera selection on start."""

    def test_rear_camera_preferred(self, make_session):
        """Test the back camera wins over an earlier front camera."""
        engine = FakeDecodingEngine([
            CameraDevice(id="a", label="Front Camera"),
            CameraDevice(id="b", label="Back Camera"),
        ])
        session = make_session(engine)

        session.start()

        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "b"
        assert engine.start_calls == ["b"]

    def test_rear_keyword_case_insensitive(self, make_session):
        """Test 'REAR' in any case marks the preferred camera."""
        engine = FakeDecodingEngine([
            CameraDevice(id="a", label="Webcam"),
            CameraDevice(id="b", label="Webcam"),
            CameraDevice(id="c", label="REAR Sensor"),
        ])
        session = make_session(engine)

        session.start()

        assert session.active_device_id == "c"

    def test_single_camera_selected(self, make_session):
        """Test the only camera is used when none is rear-facing."""
        engine = FakeDecodingEngine([CameraDevice(id="x", label="USB Cam")])
        session = make_session(engine)

        session.start()

        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "x"

    def test_first_camera_without_rear_label(self, make_session):
        """Test fallback to the first enumerated camera."""
        engine = FakeDecodingEngine([
            CameraDevice(id="x", label="USB Cam"),
            CameraDevice(id="y", label="Other Cam"),
        ])
        session = make_session(engine)

        session.start()

        assert session.active_device_id == "x"

    def test_no_cameras_fails(self, make_session, events: SessionEvents):
        """Test an empty device list fails with NO_DEVICE_FOUND."""
        engine = FakeDecodingEngine([])
        session = make_session(engine)

        session.start()

        assert session.status is ScanStatus.FAILED
        assert session.active_device_id is None
        assert events.error_codes == ["NO_DEVICE_FOUND"]
        assert engine.start_calls == []
        assert ScanStatus.SCANNING not in [status for status, _ in events.statuses]

    def test_explicit_device_honoured(self, session: CameraScanSession, fake_engine):
        """Test an enumerated device_id overrides the rear preference."""
        session.start(device_id="0")

        assert session.active_device_id == "0"
        assert fake_engine.start_calls == ["0"]

    def test_unknown_explicit_device_falls_back(self, session: CameraScanSession):
        """Test an unknown device_id falls back to the rear camera."""
        session.start(device_id="missing")

        assert session.active_device_id == "1"


class TestStart:
    """Tests for start()."""

    def test_start_while_scanning_is_noop(self, session: CameraScanSession, fake_engine):
        """Test a second start() changes nothing."""
        session.start()
        session.start()

        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "1"
        assert fake_engine.start_calls == ["1"]

    def test_status_transitions(self, session: CameraScanSession, events: SessionEvents):
        """Test the status hook sees every transition."""
        session.start()
        session.stop()

        assert events.statuses == [
            (ScanStatus.STARTING, None),
            (ScanStatus.SCANNING, "1"),
            (ScanStatus.STOPPING, None),
            (ScanStatus.STOPPED, None),
        ]

    def test_enumeration_error_fails(self, session, fake_engine, events):
        """Test an enumeration error reports ENGINE_START_FAILURE."""
        fake_engine.list_error = RuntimeError("permission denied")

        session.start()

        assert session.status is ScanStatus.FAILED
        assert events.error_codes == ["ENGINE_START_FAILURE"]
        assert events.errors[0].details["reason"] == "permission denied"

    def test_engine_rejection_fails(self, session, fake_engine, events):
        """Test an engine start error is reported, not raised."""
        fake_engine.start_error = RuntimeError("device busy")

        session.start()

        assert session.status is ScanStatus.FAILED
        assert session.active_device_id is None
        assert events.error_codes == ["ENGINE_START_FAILURE"]
        assert events.errors[0].details["device_id"] == "1"

    def test_restart_after_failure(self, session, fake_engine):
        """Test start() is allowed again from FAILED."""
        fake_engine.start_error = RuntimeError("device busy")
        session.start()

        fake_engine.start_error = None
        session.start()

        assert session.status is ScanStatus.SCANNING
        assert fake_engine.start_calls == ["1", "1"]

    def test_restart_after_stop(self, session, fake_engine):
        """Test start() is allowed again from STOPPED."""
        session.start()
        session.stop()
        session.start()

        assert session.status is ScanStatus.SCANNING
        assert fake_engine.start_calls == ["1", "1"]

    def test_stop_during_start(self, session, fake_engine):
        """Test stop() while STARTING ends STOPPED with the camera released."""
        fake_engine.during_start = session.stop

        session.start()

        assert session.status is ScanStatus.STOPPED
        assert session.active_device_id is None
        assert fake_engine.stop_calls == 1


class TestDecoding:
    """Tests for decode callbacks."""

    def test_decode_completes_once(self, session, fake_engine, events):
        """Test a double-fired decode is delivered exactly once."""
        session.start()

        fake_engine.emit_decode("REG-0042")
        fake_engine.emit_decode("REG-0042")

        assert events.scans == ["REG-0042"]
        assert session.status is ScanStatus.STOPPED
        assert fake_engine.stop_calls == 1

    def test_camera_released_before_callback(self, make_session, fake_engine):
        """Test the engine is stopped before on_scan_complete runs."""
        seen = []

        def on_scan_complete(payload):
            seen.append((payload, fake_engine.stop_calls, session.status))

        session = CameraScanSession(fake_engine, on_scan_complete=on_scan_complete)
        session.start()
        fake_engine.emit_decode("ABC")

        assert seen == [("ABC", 1, ScanStatus.STOPPED)]

    def test_next_attempt_delivers_again(self, session, fake_engine, events):
        """Test a new start() allows a new delivery."""
        session.start()
        fake_engine.emit_decode("first")
        session.start()
        fake_engine.emit_decode("second")

        assert events.scans == ["first", "second"]

    def test_decode_after_stop_discarded(self, session, fake_engine, events):
        """Test late decodes are dropped without an error report."""
        session.start()
        session.stop()

        fake_engine.emit_decode("late")

        assert events.scans == []
        assert events.errors == []

    def test_frame_miss_is_not_an_error(self, session, fake_engine, events):
        """Test per-frame non-detection leaves state untouched."""
        session.start()
        fake_engine.emit_frame_miss()

        assert session.status is ScanStatus.SCANNING
        assert events.errors == []

    def test_failing_callback_contained(self, fake_engine):
        """Test an exception in on_scan_complete does not escape."""
        def on_scan_complete(payload):
            raise ValueError("downstream failure")

        session = CameraScanSession(fake_engine, on_scan_complete=on_scan_complete)
        session.start()
        fake_engine.emit_decode("ABC")

        assert session.status is ScanStatus.STOPPED


class TestStop:
    """Tests for stop()."""

    def test_stop_when_idle(self, session, fake_engine, events):
        """Test stop() before start() is a silent no-op."""
        session.stop()

        assert session.status is ScanStatus.IDLE
        assert fake_engine.stop_calls == 0
        assert events.statuses == []

    def test_double_stop(self, session, fake_engine):
        """Test a second stop() does not reach the engine."""
        session.start()
        session.stop()
        session.stop()

        assert session.status is ScanStatus.STOPPED
        assert fake_engine.stop_calls == 1

    def test_stop_failure_reported(self, session, fake_engine, events):
        """Test engine stop errors are reported and the session still stops."""
        session.start()
        fake_engine.stop_error = RuntimeError("driver hung")

        session.stop()

        assert session.status is ScanStatus.STOPPED
        assert session.active_device_id is None
        assert events.error_codes == ["ENGINE_STOP_FAILURE"]

    def test_capture_failure(self, session, fake_engine, events):
        """Test capture loss while scanning fails the session."""
        session.start()

        fake_engine.emit_failure(RuntimeError("Camera stopped delivering frames"))

        assert session.status is ScanStatus.FAILED
        assert session.active_device_id is None
        assert events.error_codes == ["CAPTURE_FAILURE"]
        assert events.errors[0].details["device_id"] == "1"
        assert fake_engine.stop_calls == 1

    def test_capture_failure_after_stop_ignored(self, session, fake_engine, events):
        """Test a late capture failure is ignored."""
        session.start()
        session.stop()

        fake_engine.emit_failure(RuntimeError("late"))

        assert session.status is ScanStatus.STOPPED
        assert events.errors == []


class TestSwitchCamera:
    """Tests for switch_camera()."""

    def test_switch_before_start_is_noop(self, session, fake_engine):
        """Test switch_camera() does nothing before the first start()."""
        session.switch_camera()

        assert session.status is ScanStatus.IDLE
        assert fake_engine.start_calls == []

    def test_switch_with_one_camera_is_noop(self, make_session):
        """Test a single camera keeps scanning on the same device."""
        engine = FakeDecodingEngine([CameraDevice(id="x", label="USB Cam")])
        session = make_session(engine)
        session.start()

        session.switch_camera()

        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "x"
        assert engine.start_calls == ["x"]
        assert engine.stop_calls == 0

    def test_switch_moves_to_next_and_wraps(self, session, fake_engine):
        """Test switching advances in enumeration order and wraps."""
        session.start()
        assert session.active_device_id == "1"

        session.switch_camera()
        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "0"

        session.switch_camera()
        assert session.active_device_id == "1"

        assert fake_engine.start_calls == ["1", "0", "1"]
        assert fake_engine.stop_calls == 2

    def test_switch_during_start_is_noop(self, session, fake_engine):
        """Test switching while a start is in flight leaves that start alone."""
        fake_engine.during_start = session.switch_camera

        session.start()

        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "1"
        assert fake_engine.start_calls == ["1"]
        assert fake_engine.stop_calls == 0

    def test_switch_after_device_vanished(self, make_session):
        """Test a vanished current device restarts at the first device."""
        engine = FakeDecodingEngine([
            CameraDevice(id="a", label="Cam A"),
            CameraDevice(id="b", label="Cam B"),
            CameraDevice(id="c", label="Cam C"),
        ])
        session = make_session(engine)
        session.start()

        engine.devices = engine.devices[1:]
        session.switch_camera()

        assert session.active_device_id == "b"

    def test_switch_from_stopped(self, session, fake_engine):
        """Test switching after a stop starts on the next camera."""
        session.start()
        session.stop()

        session.switch_camera()

        assert session.status is ScanStatus.SCANNING
        assert session.active_device_id == "0"

    def test_switch_enumeration_error(self, session, fake_engine, events):
        """Test an enumeration error leaves the current scan running."""
        session.start()
        fake_engine.list_error = RuntimeError("bus reset")

        session.switch_camera()

        assert session.status is ScanStatus.SCANNING
        assert events.error_codes == ["ENGINE_START_FAILURE"]


class TestDispose:
    """Tests for dispose()."""

    def test_dispose_while_scanning(self, session, fake_engine):
        """Test dispose stops the engine exactly once and releases it."""
        session.start()

        session.dispose()

        assert session.status is ScanStatus.STOPPED
        assert session.is_disposed
        assert session.surface is None
        assert fake_engine.stop_calls == 1
        assert fake_engine.release_calls == 1

    def test_dispose_is_idempotent(self, session, fake_engine):
        """Test repeated dispose releases once."""
        session.start()
        session.dispose()
        session.dispose()

        assert fake_engine.stop_calls == 1
        assert fake_engine.release_calls == 1

    def test_dispose_never_started(self, session, fake_engine):
        """Test dispose from IDLE does not stop the engine."""
        session.dispose()

        assert session.status is ScanStatus.IDLE
        assert fake_engine.stop_calls == 0
        assert fake_engine.release_calls == 1

    def test_dispose_after_failure(self, make_session, events):
        """Test dispose is safe after a failed start."""
        engine = FakeDecodingEngine([])
        session = make_session(engine)
        session.start()

        session.dispose()

        assert session.status is ScanStatus.FAILED
        assert session.is_disposed

    def test_start_after_dispose_is_noop(self, session, fake_engine):
        """Test a disposed session cannot start again."""
        session.dispose()
        session.start()

        assert session.status is ScanStatus.IDLE
        assert fake_engine.start_calls == []

    def test_release_failure_reported(self, session, fake_engine, events):
        """Test engine release errors are reported as stop failures."""
        fake_engine.release_error = RuntimeError("release failed")

        session.dispose()

        assert session.is_disposed
        assert events.error_codes == ["ENGINE_STOP_FAILURE"]


@pytest.mark.parametrize("status,expected", [
    (ScanStatus.IDLE, True),
    (ScanStatus.STARTING, False),
    (ScanStatus.SCANNING, False),
    (ScanStatus.STOPPING, False),
    (ScanStatus.STOPPED, True),
    (ScanStatus.FAILED, True),
])
def test_can_start(status, expected):
    """Test which statuses allow start()."""
    assert status.can_start is expected
