"""Pydantic schemas for the user registry."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field, computed_field


class RegisterRequest(BaseModel):
    """Register or refresh the caller. Role comes from the bearer token."""

    display_name: str | None = Field(None, min_length=1, max_length=255)
    specialization: str | None = Field(None, max_length=255)
    condition_tags: list[str] | None = Field(
        None, description="Conditions a doctor treats (doctors only)"
    )


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    role: str
    display_name: str
    email: str | None = None
    specialization: str | None = None
    condition_tags: str | None = Field(None, exclude=True)
    created_at: datetime | None = None

    @computed_field
    @property
    def conditions(self) -> list[str]:
        return [t for t in (self.condition_tags or "").split(",") if t]


class PatientSearchResult(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str
    email: str | None = None
