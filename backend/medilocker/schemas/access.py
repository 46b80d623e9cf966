"""Pydantic schemas for access requests."""

from datetime import datetime

from pydantic import BaseModel, Field

from medilocker.models import AccessLevel, AccessRequest


class AccessRequestCreate(BaseModel):
    """Doctor asks a patient for time-limited access to some record types."""

    patient_id: str = Field(..., min_length=1, max_length=128)
    reason: str = Field(..., description="Why access is needed (at least 10 characters)")
    access_level: AccessLevel = AccessLevel.read
    requested_record_types: list[str] = Field(
        default_factory=lambda: ["all"],
        description='Record types, or ["all"]',
    )
    expiry_days: int = Field(30, description="Grant length in days (1-365)")


class AccessRespond(BaseModel):
    approved: bool


class AccessRequestResponse(BaseModel):
    id: str
    doctor_id: str
    patient_id: str
    reason: str
    access_level: str
    requested_record_types: list[str]
    expiry_days: int
    status: str
    requested_at: datetime
    responded_at: datetime | None = None
    expires_at: datetime | None = None

    @classmethod
    def from_model(cls, request: AccessRequest) -> "AccessRequestResponse":
        return cls(
            id=request.id,
            doctor_id=request.doctor_id,
            patient_id=request.patient_id,
            reason=request.reason,
            access_level=request.access_level,
            requested_record_types=request.record_types.to_list(),
            expiry_days=request.expiry_days,
            status=request.status,
            requested_at=request.requested_at,
            responded_at=request.responded_at,
            expires_at=request.expires_at,
        )


class CollaboratorResponse(BaseModel):
    request: AccessRequestResponse
    days_left: int
