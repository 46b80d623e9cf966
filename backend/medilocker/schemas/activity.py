"""Pydantic schemas for doctor discovery and activity views."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from medilocker.schemas.auth import UserResponse


class DoctorStatsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_cases_handled: int
    active_cases: int
    average_response_time_hours: float | None = None
    record_accuracy_score: float | None = None
    endorsement_count: int
    last_active_at: datetime | None = None


class DoctorProfileResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user: UserResponse
    stats: DoctorStatsResponse
    endorsement_counts: dict[str, int] = Field(
        default_factory=dict, description="Endorsements per skill, most endorsed first"
    )


class ContributionSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    total_contributions: int
    current_streak: int
    longest_streak: int
    active_days: int


class ContributionGraphResponse(BaseModel):
    doctor_id: str
    weeks: int
    contribution_graph: dict[str, int] = Field(
        ..., description='Flat {"YYYY-MM-DD": count} map, oldest day first (UTC days)'
    )
    summary: ContributionSummaryResponse


class EndorseRequest(BaseModel):
    skill: str = Field(..., description="Skill being endorsed (1-80 characters)")
    note: str | None = None


class EndorsementResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    doctor_id: str
    endorsed_by_id: str
    skill: str
    note: str | None = None
    created_at: datetime
