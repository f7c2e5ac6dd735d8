from __future__ import annotations

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field


class MatchOutcome(str, Enum):
    MATCHED = "matched"
    NO_MATCH = "no_match"


VerificationStatus = Literal[
    "idle",
    "processing",
    "matched",
    "no_match",
    "no_face_detected",
    "error",
]

# Text shown on the page for each terminal status.
STATUS_MESSAGES: dict[str, str] = {
    "idle": "Upload a photo or capture one from the camera",
    "processing": "Processing...",
    "matched": "Face match found!",
    "no_match": "No match found",
    "no_face_detected": "No face detected",
    "error": "Error processing image",
}


class VerificationResult(BaseModel):
    status: VerificationStatus
    message: str
    error_kind: Optional[str] = None
    # Non-fatal: set when a no_match decision could not be persisted.
    warning: Optional[str] = None
    distance: Optional[float] = Field(default=None, ge=0)
    candidate_count: int = 0

    @classmethod
    def for_status(cls, status: VerificationStatus, **kwargs) -> "VerificationResult":
        return cls(status=status, message=kwargs.pop("message", STATUS_MESSAGES[status]), **kwargs)


class StatusOut(BaseModel):
    client_id: str
    generation: int
    result: VerificationResult
