"""
==============================================================================
Camera Module
==============================================================================

Camera resources for scanner sessions.

A CameraProvider grants exclusive access to a camera as a CameraStream.
Frames are pushed to subscribers; each subscriber callback is awaited to
completion before the next frame is dispatched.

Implementations:
---------------
- RemoteCameraProvider: Camera lives in a remote client (browser) that
  streams frames to the server
- OpenCVCameraProvider: Local webcam read through cv2.VideoCapture

==============================================================================
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional

import cv2


# Module logger
logger = logging.getLogger(__name__)

FrameCallback = Callable[[Any], Awaitable[None]]


class CameraUnavailableError(Exception):
    """Raised by a provider when a camera cannot be acquired."""

    DENIED = "denied"
    NOT_FOUND = "not_found"
    BUSY = "busy"
    FAILED = "failed"

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        self.message = message
        super().__init__(message)


class FrameSubscription:
    """Handle for a frame callback registered on a stream."""

    def __init__(self, stream: "CameraStream", callback: FrameCallback) -> None:
        self._stream = stream
        self.callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        """Stop receiving frames. Safe to call more than once."""
        if not self._active:
            return
        self._active = False
        self._stream._unsubscribe(self)


class CameraStream(ABC):
    """
    An acquired camera.

    Subclasses feed frames through ``_dispatch`` and close the underlying
    device in ``_close_device``, which runs at most once.
    """

    def __init__(self) -> None:
        self._subscriptions: List[FrameSubscription] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def subscribe(self, callback: FrameCallback) -> FrameSubscription:
        """Register a coroutine callback for incoming frames."""
        if self._released:
            raise RuntimeError("Camera stream already released")

        subscription = FrameSubscription(self, callback)
        self._subscriptions.append(subscription)
        self._on_subscribe()
        return subscription

    def release(self) -> None:
        """Cancel all subscriptions and close the device."""
        if self._released:
            return
        self._released = True

        for subscription in list(self._subscriptions):
            subscription.cancel()

        self._close_device()

    async def _dispatch(self, frame: Any) -> None:
        for subscription in list(self._subscriptions):
            if self._released:
                return
            if subscription.active:
                await subscription.callback(frame)

    def _unsubscribe(self, subscription: FrameSubscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def _on_subscribe(self) -> None:
        """Hook for streams that start producing frames on first subscriber."""

    @abstractmethod
    def _close_device(self) -> None:
        ...


class CameraProvider(ABC):
    @abstractmethod
    async def acquire(self) -> CameraStream:
        """
        Acquire exclusive access to the camera.

        Raises:
            CameraUnavailableError: Permission denied, no device, or busy
        """
        ...


# =============================================================================
# REMOTE (PUSHED) CAMERA
# =============================================================================

class PushCameraStream(CameraStream):
    """Stream whose frames are pushed in by the host."""

    def __init__(self, on_release: Optional[Callable[[], None]] = None) -> None:
        super().__init__()
        self._on_release = on_release

    async def push(self, frame: Any) -> None:
        """Deliver one frame. Frames after release are dropped."""
        if self._released:
            return
        await self._dispatch(frame)

    def _close_device(self) -> None:
        if self._on_release:
            self._on_release()


class RemoteCameraProvider(CameraProvider):
    """
    Camera owned by a remote client.

    The client reports its camera permission (``granted``, ``denied``,
    ``not_found`` or ``busy``) before a session is opened. ``on_release`` is
    called whenever the server stops using the camera so the client can stop
    streaming.
    """

    GRANTED = "granted"

    _MESSAGES = {
        CameraUnavailableError.DENIED: "Camera access denied or not available",
        CameraUnavailableError.NOT_FOUND: "No camera found on this device",
        CameraUnavailableError.BUSY: "Camera is already in use",
    }

    def __init__(self, on_release: Optional[Callable[[], None]] = None) -> None:
        self.permission = self.GRANTED
        self._on_release = on_release
        self._stream: Optional[PushCameraStream] = None

    async def acquire(self) -> PushCameraStream:
        if self.permission != self.GRANTED:
            reason = self.permission if self.permission in self._MESSAGES else CameraUnavailableError.DENIED
            raise CameraUnavailableError(reason, self._MESSAGES[reason])

        if self._stream is not None and not self._stream.released:
            raise CameraUnavailableError(
                CameraUnavailableError.BUSY,
                self._MESSAGES[CameraUnavailableError.BUSY]
            )

        self._stream = PushCameraStream(self._on_release)
        return self._stream

    async def push(self, frame: Any) -> None:
        """Forward a frame from the client to the active stream, if any."""
        if self._stream is not None:
            await self._stream.push(frame)


# =============================================================================
# LOCAL OPENCV CAMERA
# =============================================================================

class OpenCVCameraStream(CameraStream):
    """
    Local webcam stream.

    A background task reads frames with ``cv2.VideoCapture.read`` off the
    event loop and dispatches them one at a time.
    """

    def __init__(self, capture: Any, frame_interval: float = 0.1) -> None:
        super().__init__()
        self._cap = capture
        self._frame_interval = frame_interval
        self._task: Optional[asyncio.Task] = None
        self._device_closed = False

    def _on_subscribe(self) -> None:
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._read_loop())

    async def _read_loop(self) -> None:
        try:
            while not self._released:
                ret, frame = await asyncio.to_thread(self._cap.read)
                if self._released:
                    break

                if not ret or frame is None:
                    logger.warning("Failed to read frame")
                else:
                    try:
                        await self._dispatch(frame)
                    except Exception as e:
                        logger.error(f"Frame processing error: {e}")

                await asyncio.sleep(self._frame_interval)
        finally:
            self._close_capture()

    def _close_device(self) -> None:
        # An in-flight read finishes first; the loop then closes the capture.
        if self._task is None or self._task.done():
            self._close_capture()

    def _close_capture(self) -> None:
        if self._device_closed:
            return
        self._device_closed = True
        self._cap.release()
        logger.debug("Camera device closed")


class OpenCVCameraProvider(CameraProvider):
    """Provider for a local webcam by device index."""

    def __init__(self, camera_index: int = 0, frame_interval: float = 0.1) -> None:
        self._camera_index = camera_index
        self._frame_interval = frame_interval
        self._stream: Optional[OpenCVCameraStream] = None

    async def acquire(self) -> OpenCVCameraStream:
        if self._stream is not None and not self._stream.released:
            raise CameraUnavailableError(
                CameraUnavailableError.BUSY,
                f"Camera {self._camera_index} is already in use"
            )

        capture = await asyncio.to_thread(cv2.VideoCapture, self._camera_index)
        if not capture.isOpened():
            capture.release()
            logger.error(f"Cannot open camera {self._camera_index}")
            raise CameraUnavailableError(
                CameraUnavailableError.NOT_FOUND,
                f"Cannot open camera {self._camera_index}"
            )

        logger.info(f"📷 Camera {self._camera_index} opened")
        self._stream = OpenCVCameraStream(capture, self._frame_interval)
        return self._stream
