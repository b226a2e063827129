"""
==============================================================================
Identity Package - Patient QR Payloads
==============================================================================

Encoding, decoding and short-lived history of patient identification codes.

Classes:
--------
- IdentityPayload: Immutable decoded payload
- PatientSubset: Patient fields embedded in a code
- IdentityCodec: Encoder/decoder with freshness checking
- QuickScanHistory: Bounded recency list of confirmed scans

==============================================================================
"""

from .models import PAYLOAD_KIND, BloodType, IdentityPayload, PatientSubset
from .codec import (
    DecodeResult,
    DecodeStatus,
    Decoded,
    Expired,
    IdentityCodec,
    MalformedPayload,
    UnrecognizedFormat,
    get_codec,
    now_ms,
)
from .history import QuickScanHistory, ScanHistoryEntry

__all__ = [
    "PAYLOAD_KIND",
    "BloodType",
    "IdentityPayload",
    "PatientSubset",
    "DecodeResult",
    "DecodeStatus",
    "Decoded",
    "Expired",
    "IdentityCodec",
    "MalformedPayload",
    "UnrecognizedFormat",
    "get_codec",
    "now_ms",
    "QuickScanHistory",
    "ScanHistoryEntry",
]
