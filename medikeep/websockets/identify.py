"""
==============================================================================
Identify WebSocket Module
==============================================================================

Camera-driven patient identification over a WebSocket connection.

The browser owns the camera and streams frames; the server decodes them
and runs one ScannerSession plus one QuickScanHistory per connection.

Protocol:
---------
Client -> server:
    {"type": "open", "camera": "granted" | "denied" | "not_found" | "busy"}
    {"type": "frame", "frame": "<base64 JPEG>"}
    {"type": "confirm"}
    {"type": "scan_again"}
    {"type": "close"}
    {"type": "history"}

Server -> client:
    {"type": "state", "state": "...", "error": {...} | null}
    {"type": "camera", "action": "release"}
    {"type": "notice", "code": "...", "message": "..."}
    {"type": "found", "payload": {...}}
    {"type": "confirmed", "payload": {...}, "scanned_at": ..., "history": [...]}
    {"type": "history", "entries": [...]}
    {"type": "error", "code": "...", "message": "..."}

==============================================================================
"""

import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from medikeep.config import Settings, get_settings
from medikeep.core import AppException
from medikeep.core import exceptions
from medikeep.core.dependencies import get_frame_decoder
from medikeep.identity import (
    IdentityCodec,
    IdentityPayload,
    QuickScanHistory,
    ScanHistoryEntry,
    get_codec,
)
from medikeep.scanner import (
    FrameDecoder,
    RemoteCameraProvider,
    ScanNotice,
    ScanState,
    ScannerSession,
    frame_from_base64,
)


# Module logger
logger = logging.getLogger(__name__)

router = APIRouter()


class IdentifyWebSocketHandler:
    """
    Handler for patient identification WebSocket connections.

    Session callbacks are synchronous, so outgoing messages go through a
    queue drained by a sender task in emission order.
    """

    def __init__(
        self,
        websocket: WebSocket,
        decoder: FrameDecoder,
        codec: IdentityCodec,
        settings: Settings
    ):
        self._websocket = websocket
        self._outbox: "asyncio.Queue[Dict[str, Any]]" = asyncio.Queue()
        self._camera = RemoteCameraProvider(on_release=self._on_camera_release)
        self._history = QuickScanHistory(settings.history_capacity)
        self._session = ScannerSession(
            self._camera,
            decoder,
            self._history,
            codec=codec,
            on_state_change=self._on_state_change,
            on_found=self._on_found,
            on_confirmed=self._on_confirmed,
            on_notice=self._on_notice,
            scan_timeout=settings.scan_timeout,
        )

    @property
    def session(self) -> ScannerSession:
        return self._session

    # =========================================================================
    # OUTGOING
    # =========================================================================

    def _emit(self, message: Dict[str, Any]) -> None:
        self._outbox.put_nowait(message)

    def _emit_error(self, exc: AppException) -> None:
        self._emit({"type": "error", "code": exc.code, "message": exc.message})

    def _on_state_change(self, state: ScanState) -> None:
        error = self._session.error
        self._emit({
            "type": "state",
            "state": state.value,
            "error": error.to_dict() if error else None
        })

    def _on_camera_release(self) -> None:
        self._emit({"type": "camera", "action": "release"})

    def _on_found(self, payload: IdentityPayload) -> None:
        self._emit({"type": "found", "payload": payload.to_wire()})

    def _on_confirmed(self, entry: ScanHistoryEntry) -> None:
        self._emit({
            "type": "confirmed",
            "payload": entry.payload.to_wire(),
            "scanned_at": entry.scanned_at,
            "history": self._history_entries()
        })

    def _on_notice(self, notice: ScanNotice) -> None:
        self._emit({"type": "notice", **notice.to_dict()})

    def _history_entries(self) -> list:
        return [entry.to_dict() for entry in self._history.all()]

    async def _sender(self) -> None:
        while True:
            message = await self._outbox.get()
            await self._websocket.send_json(message)

    # =========================================================================
    # INCOMING
    # =========================================================================

    async def handle_message(self, data: Dict[str, Any]) -> None:
        """Dispatch one client message."""
        message_type = data.get("type")

        if message_type == "frame":
            frame = frame_from_base64(data.get("frame"))
            if frame is not None:
                await self._camera.push(frame)

        elif message_type == "open":
            permission = data.get("camera", RemoteCameraProvider.GRANTED)
            if not isinstance(permission, str):
                raise exceptions.invalid_message("camera must be a string")
            self._camera.permission = permission
            await self._session.open()

        elif message_type == "confirm":
            self._session.confirm()

        elif message_type == "scan_again":
            await self._session.scan_again()

        elif message_type == "close":
            self._session.close()

        elif message_type == "history":
            self._emit({"type": "history", "entries": self._history_entries()})

        else:
            raise exceptions.unknown_message(message_type)

    async def run(self) -> None:
        """Main handler loop."""
        await self._websocket.accept()
        logger.info("📱 Identify WebSocket connected")
        sender = asyncio.create_task(self._sender())

        try:
            while True:
                text = await self._websocket.receive_text()

                try:
                    data = json.loads(text)
                except (ValueError, RecursionError):
                    self._emit_error(exceptions.invalid_message("not valid JSON"))
                    continue

                if not isinstance(data, dict):
                    self._emit_error(exceptions.invalid_message("expected a JSON object"))
                    continue

                try:
                    await self.handle_message(data)
                except AppException as exc:
                    logger.warning(f"WebSocket protocol error: {exc.message}")
                    self._emit_error(exc)
                except Exception as e:
                    logger.error(f"Identify WebSocket error: {e}")
                    self._emit_error(exceptions.internal_error())

        except WebSocketDisconnect:
            logger.info("📱 Client disconnected")
        finally:
            self._session.close()
            sender.cancel()
            await asyncio.gather(sender, return_exceptions=True)
            logger.info("✅ Identify WebSocket closed")


@router.websocket("/ws/identify")
async def websocket_identify(
    websocket: WebSocket,
    decoder: FrameDecoder = Depends(get_frame_decoder),
    codec: IdentityCodec = Depends(get_codec),
    settings: Settings = Depends(get_settings)
):
    """Camera-driven patient identification via WebSocket."""
    handler = IdentifyWebSocketHandler(websocket, decoder, codec, settings)
    await handler.run()
