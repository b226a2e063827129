"""
==============================================================================
Schemas Package - Pydantic Models
==============================================================================

Request and response schemas using Pydantic for validation.

==============================================================================
"""

from .common import SuccessResponse
from .identity import (
    DecodeOutcome,
    DecodeRequest,
    DecodeResponse,
    EncodedPatient,
    EncodeResponse,
)

__all__ = [
    "SuccessResponse",
    "DecodeOutcome",
    "DecodeRequest",
    "DecodeResponse",
    "EncodedPatient",
    "EncodeResponse",
]
