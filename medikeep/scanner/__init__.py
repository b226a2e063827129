"""
==============================================================================
Scanner Package - Camera-Driven Patient Identification
==============================================================================

QR scanning with OpenCV and pyzbar.

Classes:
--------
- ScannerSession: State machine owning the camera for one scan
- CameraProvider / CameraStream: Camera resource and frame subscription
- PyzbarFrameDecoder: Frame to QR text

==============================================================================
"""

from .camera import (
    CameraProvider,
    CameraStream,
    CameraUnavailableError,
    FrameSubscription,
    OpenCVCameraProvider,
    PushCameraStream,
    RemoteCameraProvider,
)
from .decoder import FrameDecoder, PyzbarFrameDecoder, frame_from_base64
from .session import CameraUnavailable, ScanNotice, ScanState, ScannerSession

__all__ = [
    "CameraProvider",
    "CameraStream",
    "CameraUnavailableError",
    "FrameSubscription",
    "OpenCVCameraProvider",
    "PushCameraStream",
    "RemoteCameraProvider",
    "FrameDecoder",
    "PyzbarFrameDecoder",
    "frame_from_base64",
    "CameraUnavailable",
    "ScanNotice",
    "ScanState",
    "ScannerSession",
]
