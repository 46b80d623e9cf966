from typing import Optional

from fastapi import APIRouter, Depends, Query

from medilocker.api.deps import CurrentPrincipal, PatientPrincipal, get_access_engine, get_record_store
from medilocker.errors import ForbiddenError
from medilocker.schemas import (
    AccessRequestResponse,
    CollaboratorResponse,
    CommitFeedItem,
    RecordResponse,
    VersionResponse,
)
from medilocker.services.access import AccessGrantEngine
from medilocker.services.records import RecordStore

router = APIRouter(prefix="/patients", tags=["Patients"])


@router.get("/{patient_id}/records", response_model=list[RecordResponse])
async def list_patient_records(
    patient_id: str,
    principal: CurrentPrincipal,
    record_type: Optional[str] = Query(None, description="Filter by record type"),
    store: RecordStore = Depends(get_record_store),
):
    """Everything for the owner; only granted record types for a doctor."""
    records = await store.list_records(patient_id, principal.subject_id, record_type)
    return [RecordResponse.model_validate(r) for r in records]


@router.get("/{patient_id}/commits", response_model=list[CommitFeedItem])
async def list_patient_commits(
    patient_id: str,
    principal: CurrentPrincipal,
    limit: int = Query(20, ge=1, le=100),
    store: RecordStore = Depends(get_record_store),
):
    pairs = await store.recent_commits(patient_id, principal.subject_id, limit=limit)
    return [
        CommitFeedItem(
            record_id=record.id,
            record_title=record.title,
            record_type=record.record_type,
            version=VersionResponse.model_validate(version),
        )
        for version, record in pairs
    ]


@router.get("/{patient_id}/collaborators", response_model=list[CollaboratorResponse])
async def list_collaborators(
    patient_id: str,
    patient: PatientPrincipal,
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    """Doctors currently holding a grant, with the days each has left."""
    if patient.subject_id != patient_id:
        raise ForbiddenError("You can only view your own collaborators")
    collaborators = await engine.collaborators(patient_id)
    return [
        CollaboratorResponse(
            request=AccessRequestResponse.from_model(c.request),
            days_left=c.days_left,
        )
        for c in collaborators
    ]
