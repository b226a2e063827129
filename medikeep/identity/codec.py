"""
==============================================================================
Identity Codec Module
==============================================================================

Encode/decode/validate logic for patient identification QR payloads.

Decoding never raises for bad input. Every outcome is one of the result
variants below, checked in this order:

1. MalformedPayload    - not a JSON object
2. UnrecognizedFormat  - JSON object whose "type" is not the patient tag
3. MalformedPayload    - required fields missing or ill-typed
4. Expired             - older than the freshness window
5. Decoded             - usable for identification

==============================================================================
"""

from __future__ import annotations

import enum
import json
import time
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, ClassVar, Mapping, Optional, Union

from pydantic import ValidationError

from medikeep.config import get_settings
from medikeep.config.settings import DEFAULT_FRESHNESS_WINDOW_MS
from .models import PAYLOAD_KIND, IdentityPayload, PatientSubset


def now_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)


class DecodeStatus(str, enum.Enum):
    """Outcome of decoding a scanned QR payload."""
    VALID = "valid"
    MALFORMED = "malformed"
    UNRECOGNIZED_FORMAT = "unrecognized_format"
    EXPIRED = "expired"


# =============================================================================
# DECODE RESULTS
# =============================================================================

@dataclass(frozen=True)
class Decoded:
    """Validated, fresh payload."""
    payload: IdentityPayload

    status: ClassVar[DecodeStatus] = DecodeStatus.VALID
    ok: ClassVar[bool] = True
    message: ClassVar[str] = "Patient QR code scanned successfully!"


@dataclass(frozen=True)
class MalformedPayload:
    """Text is not a structurally valid patient payload."""
    reason: str

    status: ClassVar[DecodeStatus] = DecodeStatus.MALFORMED
    ok: ClassVar[bool] = False
    message: ClassVar[str] = "Invalid QR code format"
    payload: ClassVar[None] = None


@dataclass(frozen=True)
class UnrecognizedFormat:
    """Well-formed JSON that is not a MediKeep patient code."""
    kind: Optional[str] = None

    status: ClassVar[DecodeStatus] = DecodeStatus.UNRECOGNIZED_FORMAT
    ok: ClassVar[bool] = False
    message: ClassVar[str] = "Invalid QR code. Please scan a MediKeep patient QR code."
    payload: ClassVar[None] = None


@dataclass(frozen=True)
class Expired:
    """
    Valid patient payload past the freshness window.

    The payload is kept so a caller can offer to re-issue a code, but it
    must not be used for identification.
    """
    payload: IdentityPayload
    age_ms: int

    status: ClassVar[DecodeStatus] = DecodeStatus.EXPIRED
    ok: ClassVar[bool] = False
    message: ClassVar[str] = "QR code is expired. Please generate a new one."


DecodeResult = Union[Decoded, MalformedPayload, UnrecognizedFormat, Expired]


# =============================================================================
# CODEC
# =============================================================================

class IdentityCodec:
    """
    Pure encoder/decoder for patient identification payloads.

    Attributes:
        freshness_window_ms: Maximum payload age accepted by decode
        clock: Callable returning the current time in epoch milliseconds

    Example:
        >>> codec = IdentityCodec()
        >>> wire = codec.encode({"id": "1", "name": "John Doe"})
        >>> codec.decode(wire).ok
        True
    """

    def __init__(
        self,
        freshness_window_ms: int = DEFAULT_FRESHNESS_WINDOW_MS,
        clock: Callable[[], int] = now_ms
    ) -> None:
        self.freshness_window_ms = freshness_window_ms
        self.clock = clock

    def build_payload(self, record: Union[PatientSubset, Mapping[str, Any]]) -> IdentityPayload:
        """Create a payload stamped with the current time."""
        if not isinstance(record, PatientSubset):
            record = PatientSubset.model_validate(record)
        return IdentityPayload.from_patient(record, issued_at=self.clock())

    def encode(self, record: Union[PatientSubset, Mapping[str, Any]]) -> str:
        """
        Serialize a patient subset into QR wire text.

        Args:
            record: Patient subset (model or camelCase mapping)

        Returns:
            Compact JSON object string
        """
        payload = self.build_payload(record)
        return json.dumps(payload.to_wire(), separators=(",", ":"), ensure_ascii=False)

    def decode(self, raw_text: Union[str, bytes, None]) -> DecodeResult:
        """
        Parse and validate text recovered from a scanned code.

        Args:
            raw_text: Decoded QR text

        Returns:
            One of Decoded, MalformedPayload, UnrecognizedFormat, Expired
        """
        if raw_text is None:
            return MalformedPayload("empty payload")

        try:
            data = json.loads(raw_text)
        except (TypeError, ValueError, RecursionError):
            return MalformedPayload("not valid JSON")

        if not isinstance(data, dict):
            return MalformedPayload("not a JSON object")

        kind = data.get("type")
        if kind != PAYLOAD_KIND:
            return UnrecognizedFormat(kind if isinstance(kind, str) else None)

        try:
            payload = IdentityPayload.model_validate(data)
        except ValidationError as exc:
            return MalformedPayload(self._describe(exc))

        age_ms = self.clock() - payload.issued_at
        if age_ms > self.freshness_window_ms:
            return Expired(payload, age_ms)

        return Decoded(payload)

    def is_fresh(self, payload: IdentityPayload) -> bool:
        """Check a payload against the freshness window at the current time."""
        return self.clock() - payload.issued_at <= self.freshness_window_ms

    @staticmethod
    def _describe(exc: ValidationError) -> str:
        """Short summary of the first validation error."""
        error = exc.errors()[0]
        location = ".".join(str(part) for part in error.get("loc", ()))
        return f"{location}: {error.get('msg', 'invalid')}"


@lru_cache(maxsize=1)
def get_codec() -> IdentityCodec:
    """Get the global codec configured from settings."""
    return IdentityCodec(freshness_window_ms=get_settings().freshness_window_ms)
