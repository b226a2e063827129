"""
==============================================================================
Scanner Session Module
==============================================================================

State machine driving one open-to-close lifecycle of camera-driven
patient identification.

States:
-------
    idle ──open──▶ acquiring ──granted──▶ scanning ──valid code──▶ found
                       │                     │                     │
                       └──refused──▶ error ◀─┘ (camera only)       ├─confirm──▶ confirmed
                                                                   └─scan_again──▶ acquiring

    close() returns any state to idle and releases the camera.

Rules:
------
- The camera is released as soon as a valid code is found.
- Invalid, foreign or expired codes produce a notice; scanning continues.
- Only camera acquisition failures lead to the error state.
- Frames delivered after close (or after a found code) change nothing.
- confirm and scan_again only act from found, so repeats are no-ops.

==============================================================================
"""

from __future__ import annotations

import asyncio
import enum
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, ClassVar, Dict, Optional

from medikeep.identity import (
    DecodeResult,
    DecodeStatus,
    Decoded,
    IdentityCodec,
    IdentityPayload,
    QuickScanHistory,
    ScanHistoryEntry,
    get_codec,
)
from .camera import CameraProvider, CameraStream, CameraUnavailableError, FrameSubscription
from .decoder import FrameDecoder


# Module logger
logger = logging.getLogger(__name__)


class ScanState(str, enum.Enum):
    """Scanner session states."""
    IDLE = "idle"
    ACQUIRING = "acquiring"
    SCANNING = "scanning"
    FOUND = "found"
    CONFIRMED = "confirmed"
    ERROR = "error"


@dataclass(frozen=True)
class CameraUnavailable:
    """Camera acquisition failure held by a session in the error state."""
    reason: str
    message: str

    code: ClassVar[str] = "CAMERA_UNAVAILABLE"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "reason": self.reason, "message": self.message}


@dataclass(frozen=True)
class ScanNotice:
    """Transient user-facing message issued while scanning."""
    code: str
    message: str

    _CODES: ClassVar[Dict[DecodeStatus, str]] = {
        DecodeStatus.MALFORMED: "MALFORMED_PAYLOAD",
        DecodeStatus.UNRECOGNIZED_FORMAT: "UNRECOGNIZED_FORMAT",
        DecodeStatus.EXPIRED: "EXPIRED",
    }

    @classmethod
    def from_result(cls, result: DecodeResult) -> "ScanNotice":
        return cls(cls._CODES[result.status], result.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message}


SCAN_TIMEOUT_NOTICE = ScanNotice("SCAN_TIMEOUT", "No QR code detected. Scanner closed.")

CAMERA_FAILED_MESSAGE = "Camera could not be started"

_OPENABLE_STATES = {ScanState.IDLE, ScanState.ERROR, ScanState.CONFIRMED}


class ScannerSession:
    """
    Controller for one camera-driven identification session.

    The session exclusively owns the camera stream it acquires and releases
    it on every exit path. All transitions run on the event loop thread.

    Attributes:
        state: Current ScanState
        payload: Identified payload while found/confirmed
        error: CameraUnavailable while in the error state

    Example:
        >>> session = ScannerSession(provider, PyzbarFrameDecoder(), history,
        ...                          on_found=show_patient)
        >>> await session.open()
        >>> ...
        >>> session.confirm()
        >>> session.close()
    """

    def __init__(
        self,
        camera_provider: CameraProvider,
        frame_decoder: FrameDecoder,
        history: QuickScanHistory,
        *,
        codec: Optional[IdentityCodec] = None,
        on_state_change: Optional[Callable[[ScanState], None]] = None,
        on_found: Optional[Callable[[IdentityPayload], None]] = None,
        on_confirmed: Optional[Callable[[ScanHistoryEntry], None]] = None,
        on_notice: Optional[Callable[[ScanNotice], None]] = None,
        scan_timeout: Optional[float] = None,
    ) -> None:
        self._provider = camera_provider
        self._decoder = frame_decoder
        self._history = history
        self._codec = codec or get_codec()

        self._on_state_change = on_state_change
        self._on_found = on_found
        self._on_confirmed = on_confirmed
        self._on_notice = on_notice
        self._scan_timeout = scan_timeout

        self._state = ScanState.IDLE
        self._payload: Optional[IdentityPayload] = None
        self._error: Optional[CameraUnavailable] = None

        self._stream: Optional[CameraStream] = None
        self._subscription: Optional[FrameSubscription] = None
        self._timeout_handle: Optional[asyncio.TimerHandle] = None

        # Bumped on every open/scan_again/close; stale callbacks compare against it
        self._epoch = 0

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> ScanState:
        return self._state

    @property
    def payload(self) -> Optional[IdentityPayload]:
        return self._payload

    @property
    def error(self) -> Optional[CameraUnavailable]:
        return self._error

    @property
    def history(self) -> QuickScanHistory:
        return self._history

    @property
    def holds_camera(self) -> bool:
        return self._stream is not None

    # =========================================================================
    # TRANSITIONS
    # =========================================================================

    async def open(self) -> None:
        """
        Acquire the camera and start scanning.

        Ends in scanning, or in error when the camera is unavailable.
        Ignored while a scan is already in progress.
        """
        if self._state not in _OPENABLE_STATES:
            logger.warning(f"Scanner session already active ({self._state.value})")
            return

        self._payload = None
        self._error = None
        self._epoch += 1
        await self._start(self._epoch)

    def confirm(self) -> Optional[ScanHistoryEntry]:
        """
        Accept the found patient.

        Records the scan in the history and notifies ``on_confirmed``.

        Returns:
            The new history entry, or None when not in the found state
        """
        if self._state is not ScanState.FOUND or self._payload is None:
            logger.debug(f"Ignoring confirm in state {self._state.value}")
            return None

        entry = ScanHistoryEntry(self._payload, scanned_at=self._codec.clock())
        self._history.record(entry)
        logger.info(f"✅ Patient {self._payload.patient_id} confirmed")

        self._transition(ScanState.CONFIRMED)
        if self._on_confirmed:
            self._on_confirmed(entry)
        return entry

    async def scan_again(self) -> None:
        """Discard the found patient and resume scanning with a fresh camera."""
        if self._state is not ScanState.FOUND:
            logger.debug(f"Ignoring scan_again in state {self._state.value}")
            return

        self._payload = None
        self._epoch += 1
        await self._start(self._epoch)

    def close(self) -> None:
        """
        Return to idle from any state.

        Cancels the frame subscription and releases the camera if held.
        """
        self._epoch += 1
        self._release_camera()
        self._payload = None
        self._error = None

        if self._state is not ScanState.IDLE:
            self._transition(ScanState.IDLE)

    async def __aenter__(self) -> "ScannerSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.close()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    async def _start(self, epoch: int) -> None:
        self._transition(ScanState.ACQUIRING)

        try:
            stream = await self._provider.acquire()
        except CameraUnavailableError as exc:
            if epoch == self._epoch:
                logger.error(f"❌ Camera unavailable ({exc.reason}): {exc.message}")
                self._fail(CameraUnavailable(exc.reason, exc.message))
            return
        except Exception as e:
            if epoch == self._epoch:
                logger.error(f"❌ Camera acquisition failed: {e}")
                self._fail(CameraUnavailable(CameraUnavailableError.FAILED, CAMERA_FAILED_MESSAGE))
            return

        if epoch != self._epoch:
            logger.debug("Camera granted after session closed, releasing")
            stream.release()
            return

        self._stream = stream
        self._transition(ScanState.SCANNING)
        if epoch != self._epoch:
            return

        self._subscription = stream.subscribe(functools.partial(self._on_frame, epoch=epoch))
        self._arm_timeout(epoch)
        logger.info("📷 Scanning for patient QR code")

    async def _on_frame(self, frame: Any, epoch: int) -> None:
        if epoch != self._epoch or self._state is not ScanState.SCANNING:
            return

        text = self._decoder.decode(frame)
        if not text:
            return

        result = self._codec.decode(text)
        if isinstance(result, Decoded):
            self._release_camera()
            self._payload = result.payload
            logger.info(f"✅ Patient QR code scanned: {result.payload.patient_id}")
            self._transition(ScanState.FOUND)
            if self._on_found:
                self._on_found(result.payload)
            return

        logger.warning(f"Rejected QR code: {result.status.value}")
        self._notify(ScanNotice.from_result(result))

    def _arm_timeout(self, epoch: int) -> None:
        if not self._scan_timeout:
            return
        loop = asyncio.get_running_loop()
        self._timeout_handle = loop.call_later(self._scan_timeout, self._on_scan_timeout, epoch)

    def _on_scan_timeout(self, epoch: int) -> None:
        self._timeout_handle = None
        if epoch != self._epoch or self._state is not ScanState.SCANNING:
            return
        logger.info(f"Scan timed out after {self._scan_timeout}s")
        self._notify(SCAN_TIMEOUT_NOTICE)
        self.close()

    def _release_camera(self) -> None:
        if self._timeout_handle is not None:
            self._timeout_handle.cancel()
            self._timeout_handle = None

        if self._subscription is not None:
            subscription, self._subscription = self._subscription, None
            subscription.cancel()

        if self._stream is not None:
            stream, self._stream = self._stream, None
            stream.release()
            logger.debug("Camera released")

    def _fail(self, error: CameraUnavailable) -> None:
        self._error = error
        self._transition(ScanState.ERROR)

    def _notify(self, notice: ScanNotice) -> None:
        if self._on_notice:
            self._on_notice(notice)

    def _transition(self, state: ScanState) -> None:
        previous, self._state = self._state, state
        logger.debug(f"Scanner session {previous.value} -> {state.value}")
        if self._on_state_change:
            self._on_state_change(state)
