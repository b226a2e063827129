"""
==============================================================================
Identity Models Module
==============================================================================

Pydantic models for the patient identification QR payload.

Wire Format:
-----------
{
  "type": "medikeep_patient",
  "id": "1",
  "name": "John Doe",
  "phone": "+2348012345678",
  "bloodType": "O+",
  "allergies": ["Penicillin", "Peanuts"],
  "emergencyContact": "+2348029876543",
  "timestamp": 1718000000000
}

Unknown extra keys are ignored on decode.

==============================================================================
"""

from __future__ import annotations

import enum
from typing import Any, Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr


# Tag carried in the "type" key of every patient QR code
PAYLOAD_KIND = "medikeep_patient"


class BloodType(str, enum.Enum):
    """ABO/Rh blood groups accepted on a patient card."""

    A_POS = "A+"
    A_NEG = "A-"
    B_POS = "B+"
    B_NEG = "B-"
    AB_POS = "AB+"
    AB_NEG = "AB-"
    O_POS = "O+"
    O_NEG = "O-"

    @classmethod
    def parse(cls, value: str) -> Optional["BloodType"]:
        """Return the matching blood type, or None for empty/unknown values."""
        normalized = value.strip().upper().replace("−", "-")
        try:
            return cls(normalized)
        except ValueError:
            return None


class PatientSubset(BaseModel):
    """
    The part of a patient record that is embedded in a QR code.

    Supplied by the patient management side of the application. Field
    content (e.g. blood type) is not validated here.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(..., description="Patient record identifier")
    name: str = Field(..., description="Patient display name")
    phone: str = Field(default="", description="Contact phone")
    blood_type: str = Field(default="", alias="bloodType")
    allergies: List[str] = Field(default_factory=list)
    emergency_contact: str = Field(default="", alias="emergencyContact")


class IdentityPayload(BaseModel):
    """
    Decoded patient identification payload.

    Immutable value object. ``issued_at`` is fixed when the code is
    generated and only ever read back for the freshness check.

    Attributes:
        kind: Format tag, always PAYLOAD_KIND
        patient_id: Join key back to the patient store
        name: Display name
        phone: Contact string
        blood_type: Blood group string (may be empty)
        allergies: Allergies in display order
        emergency_contact: Emergency contact string
        issued_at: Epoch milliseconds at encode time
    """

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    kind: Literal["medikeep_patient"] = Field(default=PAYLOAD_KIND, alias="type")
    patient_id: StrictStr = Field(..., min_length=1, alias="id")
    name: StrictStr = Field(..., min_length=1)
    phone: StrictStr = ""
    blood_type: StrictStr = Field(default="", alias="bloodType")
    allergies: Tuple[StrictStr, ...] = ()
    emergency_contact: StrictStr = Field(default="", alias="emergencyContact")
    issued_at: StrictInt = Field(..., alias="timestamp")

    @property
    def known_blood_type(self) -> Optional[BloodType]:
        """Blood type as an enum, or None when empty or unrecognised."""
        return BloodType.parse(self.blood_type)

    def to_wire(self) -> Dict[str, Any]:
        """Wire representation with camelCase keys."""
        return self.model_dump(by_alias=True, mode="json")

    @classmethod
    def from_patient(cls, patient: PatientSubset, issued_at: int) -> "IdentityPayload":
        """Build a payload from a patient subset, copying every field verbatim."""
        return cls.model_construct(
            kind=PAYLOAD_KIND,
            patient_id=patient.id,
            name=patient.name,
            phone=patient.phone,
            blood_type=patient.blood_type,
            allergies=tuple(patient.allergies),
            emergency_contact=patient.emergency_contact,
            issued_at=issued_at,
        )
