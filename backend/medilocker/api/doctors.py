from typing import Optional

from fastapi import APIRouter, Depends, Query

from medilocker.api.deps import CurrentPrincipal, DoctorPrincipal, get_activity_aggregator
from medilocker.schemas import (
    ContributionGraphResponse,
    ContributionSummaryResponse,
    DoctorProfileResponse,
    EndorseRequest,
    EndorsementResponse,
)
from medilocker.services.activity import ActivityAggregator

router = APIRouter(prefix="/doctors", tags=["Doctors"])


@router.get("", response_model=list[DoctorProfileResponse])
async def discover_doctors(
    _principal: CurrentPrincipal,
    specialization: Optional[str] = Query(None),
    min_cases: Optional[int] = Query(None, ge=0),
    condition_tag: Optional[str] = Query(None),
    sort_by: str = Query("total_cases_handled"),
    activity: ActivityAggregator = Depends(get_activity_aggregator),
):
    """Doctors ranked by contribution history, never by ratings."""
    profiles = await activity.discover_doctors(
        specialization=specialization,
        min_cases=min_cases,
        condition_tag=condition_tag,
        sort_by=sort_by,
    )
    return [DoctorProfileResponse.model_validate(p) for p in profiles]


@router.get("/{doctor_id}", response_model=DoctorProfileResponse)
async def get_doctor(
    doctor_id: str,
    _principal: CurrentPrincipal,
    activity: ActivityAggregator = Depends(get_activity_aggregator),
):
    return DoctorProfileResponse.model_validate(await activity.profile(doctor_id))


@router.get("/{doctor_id}/contribution-graph", response_model=ContributionGraphResponse)
async def contribution_graph(
    doctor_id: str,
    _principal: CurrentPrincipal,
    weeks: Optional[int] = Query(None, description="1..52, default 26"),
    activity: ActivityAggregator = Depends(get_activity_aggregator),
):
    """Daily contribution counts over UTC calendar days, oldest first."""
    graph = await activity.contribution_graph(doctor_id, weeks=weeks)
    return ContributionGraphResponse(
        doctor_id=doctor_id,
        weeks=graph.weeks,
        contribution_graph=graph.as_dict(),
        summary=ContributionSummaryResponse.model_validate(graph.summary()),
    )


@router.post("/{doctor_id}/endorse", response_model=EndorsementResponse, status_code=201)
async def endorse_doctor(
    doctor_id: str,
    payload: EndorseRequest,
    endorser: DoctorPrincipal,
    activity: ActivityAggregator = Depends(get_activity_aggregator),
):
    endorsement = await activity.endorse(
        doctor_id=doctor_id,
        endorser_id=endorser.subject_id,
        endorser_role=endorser.role,
        skill=payload.skill,
        note=payload.note,
    )
    return EndorsementResponse.model_validate(endorsement)
