from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class RecordResponse(BaseModel):
    """Current state of a record (its newest version)."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    owner_id: str
    record_type: str
    title: str
    tag_list: list[str] = Field(default_factory=list, serialization_alias="tags")
    current_version_number: int
    current_version_id: str | None = None
    created_at: datetime
    updated_at: datetime


class VersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    record_id: str
    version_number: int
    file_name: str
    file_size: int
    content_type: str | None = None
    commit_message: str
    committed_by_user_id: str
    committed_by_role: str
    created_at: datetime


class CommitResponse(BaseModel):
    record: RecordResponse
    version: VersionResponse


class PrescriptionCreate(BaseModel):
    """Doctor-authored prescription committed as a new record."""

    patient_id: str = Field(..., min_length=1, max_length=128)
    title: str = Field(..., min_length=1, max_length=200)
    prescription_text: str = Field(..., description="Prescription body (at least 5 characters)")
    notes: str = ""
    tags: list[str] | None = None


class DownloadResponse(BaseModel):
    url: str
    expires_at: datetime
    file_name: str
    file_size: int
    version_number: int


class CommitFeedItem(BaseModel):
    record_id: str
    record_title: str
    record_type: str
    version: VersionResponse
