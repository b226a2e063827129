"""
==============================================================================
Identity Schemas Module
==============================================================================

Request and response schemas for QR encode/decode endpoints.

The encode request body is ``medikeep.identity.PatientSubset`` itself.

==============================================================================
"""

from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from medikeep.identity import DecodeResult, DecodeStatus
from .common import SuccessResponse


# =============================================================================
# ENCODE
# =============================================================================

class EncodedPatient(BaseModel):
    """QR text for a patient plus its parsed form."""
    qr_data: str = Field(..., description="Text to embed in the QR code")
    payload: Dict[str, Any]


class EncodeResponse(SuccessResponse):
    data: EncodedPatient


# =============================================================================
# DECODE
# =============================================================================

class DecodeRequest(BaseModel):
    """Raw text read by a scanner."""
    raw: str = Field(..., max_length=4096)


class DecodeOutcome(BaseModel):
    status: DecodeStatus
    message: str
    payload: Optional[Dict[str, Any]] = None

    @classmethod
    def from_result(cls, result: DecodeResult) -> "DecodeOutcome":
        """Build the response body; expired payloads are included for re-issue."""
        payload = result.payload.to_wire() if result.payload is not None else None
        return cls(status=result.status, message=result.message, payload=payload)


class DecodeResponse(SuccessResponse):
    data: DecodeOutcome
