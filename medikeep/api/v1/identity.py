"""
==============================================================================
Identity Endpoints
==============================================================================

QR payload generation and validation.

Endpoints:
----------
- POST /identity/encode: Patient subset to QR text
- POST /identity/decode: Scanned text to validated payload

Camera-driven scanning lives on the /ws/identify WebSocket.

==============================================================================
"""

import json
import logging

from fastapi import APIRouter, Depends

from medikeep.identity import IdentityCodec, PatientSubset, get_codec
from medikeep.schemas import (
    DecodeOutcome,
    DecodeRequest,
    DecodeResponse,
    EncodedPatient,
    EncodeResponse,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/identity", tags=["Identity"])


@router.post("/encode", response_model=EncodeResponse)
async def encode_patient(
    patient: PatientSubset,
    codec: IdentityCodec = Depends(get_codec)
):
    """
    Generate the QR text for a patient.

    The timestamp is set now; the code stays valid for the freshness window.
    """
    qr_data = codec.encode(patient)
    logger.info(f"QR payload issued for patient {patient.id}")
    return EncodeResponse(data=EncodedPatient(qr_data=qr_data, payload=json.loads(qr_data)))


@router.post("/decode", response_model=DecodeResponse)
async def decode_payload(
    request: DecodeRequest,
    codec: IdentityCodec = Depends(get_codec)
):
    """
    Validate text read by a scanner.

    Invalid, foreign and expired codes are reported in ``data.status``
    with a 200 response.
    """
    result = codec.decode(request.raw)
    if not result.ok:
        logger.warning(f"Rejected QR code: {result.status.value}")
    return DecodeResponse(data=DecodeOutcome.from_result(result))
