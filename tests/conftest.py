"""
==============================================================================
Pytest Configuration and Fixtures
==============================================================================

Provides codec, camera, decoder, session and client fixtures.

Frames in session tests are plain strings: the fake decoder returns the
frame itself as the QR text, or None for an empty frame.

==============================================================================
"""

import asyncio
import base64
from typing import Dict, Generator, List, Optional

import cv2
import numpy as np
import pytest
from fastapi.testclient import TestClient

from medikeep.core.dependencies import get_frame_decoder
from medikeep.identity import IdentityCodec, QuickScanHistory, now_ms
from medikeep.main import app
from medikeep.scanner import CameraUnavailableError, PushCameraStream, RemoteCameraProvider


# ============================================================================
# FAKES
# ============================================================================

class EchoFrameDecoder:
    """Decoder whose frames are already the decoded text."""

    def __init__(self) -> None:
        self.frames: List[object] = []

    def decode(self, frame) -> Optional[str]:
        self.frames.append(frame)
        return frame or None


class ScriptedFrameDecoder:
    """Decoder returning queued texts, one per frame, then nothing."""

    def __init__(self, texts: List[str]) -> None:
        self.texts = texts

    def decode(self, frame) -> Optional[str]:
        return self.texts.pop(0) if self.texts else None


class CountingCameraProvider(RemoteCameraProvider):
    """Remote camera that counts acquisitions and releases."""

    def __init__(self) -> None:
        super().__init__(on_release=self._count_release)
        self.acquire_count = 0
        self.release_count = 0
        self.streams: List[PushCameraStream] = []

    async def acquire(self):
        self.acquire_count += 1
        stream = await super().acquire()
        self.streams.append(stream)
        return stream

    def _count_release(self) -> None:
        self.release_count += 1


class GatedCameraProvider(CountingCameraProvider):
    """Camera whose grant waits until ``gate`` is set."""

    def __init__(self) -> None:
        super().__init__()
        self.gate = asyncio.Event()

    async def acquire(self):
        await self.gate.wait()
        return await super().acquire()


class FixedClock:
    """Settable millisecond clock."""

    def __init__(self, now: int) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now


# ============================================================================
# IDENTITY FIXTURES
# ============================================================================

@pytest.fixture
def patient() -> Dict[str, object]:
    """Patient subset as supplied by patient management."""
    return {
        "id": "1",
        "name": "John Doe",
        "phone": "+2348012345678",
        "bloodType": "O+",
        "allergies": ["Penicillin", "Peanuts"],
        "emergencyContact": "+2348029876543",
    }


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(now_ms())


@pytest.fixture
def codec(clock: FixedClock) -> IdentityCodec:
    return IdentityCodec(clock=clock)


@pytest.fixture
def history() -> QuickScanHistory:
    return QuickScanHistory(capacity=5)


# ============================================================================
# SCANNER FIXTURES
# ============================================================================

@pytest.fixture
def decoder() -> EchoFrameDecoder:
    return EchoFrameDecoder()


@pytest.fixture
def camera() -> CountingCameraProvider:
    return CountingCameraProvider()


@pytest.fixture
def denied_camera() -> CountingCameraProvider:
    provider = CountingCameraProvider()
    provider.permission = CameraUnavailableError.DENIED
    return provider


@pytest.fixture
def gated_camera() -> GatedCameraProvider:
    return GatedCameraProvider()


# ============================================================================
# CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def scanned_texts() -> List[str]:
    """QR texts the WebSocket decoder reads from successive frames."""
    return []


@pytest.fixture
def jpeg_frame() -> str:
    """A small black JPEG, base64 encoded as a browser would send it."""
    ok, buffer = cv2.imencode(".jpg", np.zeros((16, 16, 3), dtype=np.uint8))
    assert ok
    return base64.b64encode(buffer.tobytes()).decode("ascii")


@pytest.fixture(scope="function")
def client(scanned_texts: List[str]) -> Generator[TestClient, None, None]:
    """Test client whose WebSocket sessions read ``scanned_texts``."""
    app.dependency_overrides[get_frame_decoder] = lambda: ScriptedFrameDecoder(scanned_texts)

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()
