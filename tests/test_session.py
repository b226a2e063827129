"""
==============================================================================
Scanner Session Tests
==============================================================================

Tests for the camera-driven identification state machine.

Sessions run inside ``asyncio.run``; frames are pushed through the remote
camera exactly as the WebSocket handler does.

==============================================================================
"""

import asyncio
import json

from medikeep.identity import PAYLOAD_KIND
from medikeep.scanner import CameraProvider, CameraUnavailable, ScanState, ScannerSession


class Recorder:
    """Collects session callbacks."""

    def __init__(self):
        self.states = []
        self.found = []
        self.confirmed = []
        self.notices = []

    def session(self, camera, decoder, history, codec, **kwargs):
        return ScannerSession(
            camera,
            decoder,
            history,
            codec=codec,
            on_state_change=self.states.append,
            on_found=self.found.append,
            on_confirmed=self.confirmed.append,
            on_notice=self.notices.append,
            **kwargs
        )


def foreign_code(now: int) -> str:
    return json.dumps({"type": "other_format", "id": "1", "name": "X", "timestamp": now})


class FlakyCameraProvider(CameraProvider):
    """Provider whose first acquisition fails with an unexpected error."""

    def __init__(self, camera):
        self.camera = camera
        self.failed = False

    async def acquire(self):
        if not self.failed:
            self.failed = True
            raise OSError("device vanished")
        return await self.camera.acquire()


class TestOpen:
    """Tests for acquiring the camera."""

    def test_open_starts_scanning(self, camera, decoder, history, codec):
        """Test open goes through acquiring to scanning."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        asyncio.run(session.open())

        assert session.state is ScanState.SCANNING
        assert recorder.states == [ScanState.ACQUIRING, ScanState.SCANNING]
        assert camera.acquire_count == 1
        assert session.holds_camera

    def test_camera_denied(self, denied_camera, decoder, history, codec):
        """Test a refused camera ends in error without processing frames."""
        recorder = Recorder()
        session = recorder.session(denied_camera, decoder, history, codec)

        async def scenario():
            await session.open()
            await denied_camera.push("anything")

        asyncio.run(scenario())

        assert session.state is ScanState.ERROR
        assert isinstance(session.error, CameraUnavailable)
        assert session.error.reason == "denied"
        assert session.error.code == "CAMERA_UNAVAILABLE"
        assert recorder.states == [ScanState.ACQUIRING, ScanState.ERROR]
        assert decoder.frames == []
        assert not session.holds_camera

    def test_reopen_after_error(self, denied_camera, decoder, history, codec):
        """Test an explicit re-open recovers once the camera is granted."""
        session = ScannerSession(denied_camera, decoder, history, codec=codec)

        async def scenario():
            await session.open()
            assert session.state is ScanState.ERROR
            denied_camera.permission = "granted"
            await session.open()

        asyncio.run(scenario())

        assert session.state is ScanState.SCANNING
        assert session.error is None

    def test_unexpected_acquire_failure(self, camera, decoder, history, codec):
        """Test a provider crash ends in error and the session can be re-opened."""
        recorder = Recorder()
        session = recorder.session(FlakyCameraProvider(camera), decoder, history, codec)

        asyncio.run(session.open())

        assert session.state is ScanState.ERROR
        assert session.error.reason == "failed"
        assert session.error.code == "CAMERA_UNAVAILABLE"
        assert recorder.states == [ScanState.ACQUIRING, ScanState.ERROR]

        asyncio.run(session.open())

        assert session.state is ScanState.SCANNING

    def test_open_while_scanning_is_ignored(self, camera, decoder, history, codec):
        """Test a second open does not acquire another camera."""
        session = ScannerSession(camera, decoder, history, codec=codec)

        async def scenario():
            await session.open()
            await session.open()

        asyncio.run(scenario())

        assert camera.acquire_count == 1
        assert session.state is ScanState.SCANNING


class TestScanning:
    """Tests for frame handling while scanning."""

    def test_valid_code_found_and_camera_released(self, camera, decoder, history, codec, patient):
        """Test a valid code moves to found and releases the camera at once."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)
        wire = codec.encode(patient)

        async def scenario():
            await session.open()
            await camera.push(wire)
            await camera.push(wire)

        asyncio.run(scenario())

        assert session.state is ScanState.FOUND
        assert camera.release_count == 1
        assert not session.holds_camera
        assert len(decoder.frames) == 1
        assert recorder.found == [session.payload]
        assert session.payload.patient_id == "1"
        assert recorder.states[-1] is ScanState.FOUND

    def test_empty_frames_are_silent(self, camera, decoder, history, codec):
        """Test frames without a code change nothing."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        async def scenario():
            await session.open()
            await camera.push("")
            await camera.push(None)

        asyncio.run(scenario())

        assert session.state is ScanState.SCANNING
        assert recorder.notices == []
        assert len(decoder.frames) == 2

    def test_bad_codes_notify_and_keep_scanning(self, camera, decoder, history, codec, clock):
        """Test malformed, foreign and expired codes only raise notices."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)
        expired = json.dumps({
            "type": PAYLOAD_KIND, "id": "1", "name": "Old", "timestamp": clock.now - 86_400_001
        })

        async def scenario():
            await session.open()
            await camera.push("not json")
            await camera.push(foreign_code(clock.now))
            await camera.push(expired)

        asyncio.run(scenario())

        assert session.state is ScanState.SCANNING
        assert [n.code for n in recorder.notices] == [
            "MALFORMED_PAYLOAD", "UNRECOGNIZED_FORMAT", "EXPIRED"
        ]
        assert recorder.notices[1].message == "Invalid QR code. Please scan a MediKeep patient QR code."
        assert recorder.notices[2].message == "QR code is expired. Please generate a new one."
        assert camera.release_count == 0
        assert ScanState.ERROR not in recorder.states

    def test_repeated_invalid_code_notifies_every_frame(self, camera, decoder, history, codec):
        """Test notices are not debounced."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        async def scenario():
            await session.open()
            for _ in range(3):
                await camera.push("garbage")

        asyncio.run(scenario())

        assert len(recorder.notices) == 3

    def test_bad_code_then_valid_code(self, camera, decoder, history, codec, patient):
        """Test scanning continues after a rejected code."""
        session = ScannerSession(camera, decoder, history, codec=codec)

        async def scenario():
            await session.open()
            await camera.push("garbage")
            await camera.push(codec.encode(patient))

        asyncio.run(scenario())

        assert session.state is ScanState.FOUND


class TestFoundActions:
    """Tests for confirm and scan again."""

    def test_confirm_records_history(self, camera, decoder, history, codec, clock, patient):
        """Test confirm records one entry and notifies the caller."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        async def scenario():
            await session.open()
            await camera.push(codec.encode(patient))

        asyncio.run(scenario())
        entry = session.confirm()

        assert session.state is ScanState.CONFIRMED
        assert entry.payload.patient_id == "1"
        assert entry.scanned_at == clock.now
        assert history.all() == (entry,)
        assert recorder.confirmed == [entry]

    def test_double_confirm_is_noop(self, camera, decoder, history, codec, patient):
        """Test a second confirm does not duplicate the history entry."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        async def scenario():
            await session.open()
            await camera.push(codec.encode(patient))

        asyncio.run(scenario())
        session.confirm()
        assert session.confirm() is None

        assert len(history) == 1
        assert len(recorder.confirmed) == 1

    def test_confirm_outside_found_is_noop(self, camera, decoder, history, codec):
        """Test confirm while scanning does nothing."""
        session = ScannerSession(camera, decoder, history, codec=codec)
        asyncio.run(session.open())

        assert session.confirm() is None
        assert session.state is ScanState.SCANNING
        assert len(history) == 0

    def test_scan_again_reacquires_camera(self, camera, decoder, history, codec, patient):
        """Test scan again discards the result and scans with a new camera."""
        session = ScannerSession(camera, decoder, history, codec=codec)

        async def scenario():
            await session.open()
            await camera.push(codec.encode(patient))
            await session.scan_again()
            await session.scan_again()

        asyncio.run(scenario())

        assert session.state is ScanState.SCANNING
        assert session.payload is None
        assert camera.acquire_count == 2
        assert len(history) == 0

    def test_six_confirms_keep_five(self, camera, decoder, history, codec, patient):
        """Test the history bound across repeated sessions."""
        session = ScannerSession(camera, decoder, history, codec=codec)

        async def scenario():
            for n in range(1, 7):
                await session.open()
                await camera.push(codec.encode(dict(patient, id=str(n))))
                session.confirm()

        asyncio.run(scenario())

        assert [e.payload.patient_id for e in history.all()] == ["6", "5", "4", "3", "2"]


class TestClose:
    """Tests for closing a session."""

    def test_close_while_scanning_releases_once(self, camera, decoder, history, codec, patient):
        """Test close releases the camera once and late frames do nothing."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        async def scenario():
            await session.open()
            stream = camera.streams[0]
            session.close()
            session.close()
            await stream.push(codec.encode(patient))
            await camera.push(codec.encode(patient))

        asyncio.run(scenario())

        assert camera.release_count == 1
        assert session.state is ScanState.IDLE
        assert recorder.states == [ScanState.ACQUIRING, ScanState.SCANNING, ScanState.IDLE]
        assert decoder.frames == []
        assert recorder.found == []

    def test_close_from_found(self, camera, decoder, history, codec, patient):
        """Test closing after a find does not release the camera twice."""
        session = ScannerSession(camera, decoder, history, codec=codec)

        async def scenario():
            await session.open()
            await camera.push(codec.encode(patient))
            session.close()

        asyncio.run(scenario())

        assert camera.release_count == 1
        assert session.state is ScanState.IDLE
        assert session.payload is None
        assert session.confirm() is None

    def test_close_during_acquiring(self, gated_camera, decoder, history, codec):
        """Test a camera granted after close is released immediately."""
        session = ScannerSession(gated_camera, decoder, history, codec=codec)

        async def scenario():
            opening = asyncio.create_task(session.open())
            await asyncio.sleep(0)
            assert session.state is ScanState.ACQUIRING
            session.close()
            gated_camera.gate.set()
            await opening

        asyncio.run(scenario())

        assert session.state is ScanState.IDLE
        assert gated_camera.acquire_count == 1
        assert gated_camera.release_count == 1
        assert not session.holds_camera

    def test_close_from_error(self, denied_camera, decoder, history, codec):
        """Test close clears the camera error."""
        session = ScannerSession(denied_camera, decoder, history, codec=codec)
        asyncio.run(session.open())
        session.close()

        assert session.state is ScanState.IDLE
        assert session.error is None

    def test_context_manager_closes(self, camera, decoder, history, codec):
        """Test leaving the async context tears the session down."""
        session = ScannerSession(camera, decoder, history, codec=codec)

        async def scenario():
            async with session:
                await session.open()

        asyncio.run(scenario())

        assert session.state is ScanState.IDLE
        assert camera.release_count == 1


class TestScanTimeout:
    """Tests for the optional scanning time limit."""

    def test_timeout_closes_session(self, camera, decoder, history, codec):
        """Test an elapsed time limit notifies and closes."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec, scan_timeout=0.01)

        async def scenario():
            await session.open()
            await asyncio.sleep(0.05)

        asyncio.run(scenario())

        assert session.state is ScanState.IDLE
        assert [n.code for n in recorder.notices] == ["SCAN_TIMEOUT"]
        assert camera.release_count == 1

    def test_timeout_cancelled_by_find(self, camera, decoder, history, codec, patient):
        """Test a found code cancels the time limit."""
        session = ScannerSession(camera, decoder, history, codec=codec, scan_timeout=0.01)

        async def scenario():
            await session.open()
            await camera.push(codec.encode(patient))
            await asyncio.sleep(0.05)

        asyncio.run(scenario())

        assert session.state is ScanState.FOUND


class TestScenario:
    """End-to-end identification of a patient."""

    def test_john_doe(self, camera, decoder, history, codec, patient):
        """Test encode, scan, confirm for a sample patient."""
        recorder = Recorder()
        session = recorder.session(camera, decoder, history, codec)

        async def scenario():
            await session.open()
            await camera.push(codec.encode(patient))
            session.confirm()

        asyncio.run(scenario())

        payload = recorder.confirmed[0].payload
        assert payload.kind == "medikeep_patient"
        assert payload.patient_id == "1"
        assert payload.allergies == ("Penicillin", "Peanuts")
        assert recorder.notices == []
        assert recorder.states == [
            ScanState.ACQUIRING, ScanState.SCANNING, ScanState.FOUND, ScanState.CONFIRMED
        ]
