"""
==============================================================================
Frame Decoder Module
==============================================================================

QR code text extraction from camera frames with OpenCV and pyzbar.

Given a frame, a decoder produces the raw text of the first QR code it
finds, or None. Payload validation happens later in the identity codec.

==============================================================================
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Optional, Protocol

import cv2
import numpy as np
from pyzbar.pyzbar import ZBarSymbol, decode


# Module logger
logger = logging.getLogger(__name__)


class FrameDecoder(Protocol):
    def decode(self, frame: Any) -> Optional[str]:
        ...


class PyzbarFrameDecoder:
    """
    QR decoder backed by pyzbar.

    Example:
        >>> decoder = PyzbarFrameDecoder()
        >>> text = decoder.decode(frame)
    """

    def decode(self, frame: Optional[np.ndarray]) -> Optional[str]:
        """
        Extract QR text from a single frame.

        Args:
            frame: OpenCV image (numpy array)

        Returns:
            Text of the first readable QR code, or None
        """
        if frame is None or frame.size == 0:
            return None

        try:
            symbols = decode(frame, symbols=[ZBarSymbol.QRCODE])
        except Exception as e:
            logger.error(f"Decode error: {e}")
            return None

        for symbol in symbols:
            try:
                return symbol.data.decode("utf-8")
            except UnicodeDecodeError:
                logger.warning("Skipping QR code with non UTF-8 content")

        return None


def frame_from_bytes(data: bytes) -> Optional[np.ndarray]:
    """Decode an encoded image (JPEG/PNG) into an OpenCV frame."""
    if not data:
        return None
    buffer = np.frombuffer(data, np.uint8)
    return cv2.imdecode(buffer, cv2.IMREAD_COLOR)


def frame_from_base64(data: Optional[str]) -> Optional[np.ndarray]:
    """
    Decode a base64 image sent by a browser client.

    Accepts bare base64 or a ``data:image/...;base64,`` URL.
    """
    if not data or not isinstance(data, str):
        return None

    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]

    try:
        raw = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        logger.debug("Ignoring frame with invalid base64 data")
        return None

    return frame_from_bytes(raw)
