from typing import Optional

from fastapi import APIRouter, Depends, Query

from medilocker.api.deps import (
    CurrentPrincipal,
    DoctorPrincipal,
    PatientPrincipal,
    get_access_engine,
)
from medilocker.models import AccessStatus
from medilocker.schemas import AccessRequestCreate, AccessRequestResponse, AccessRespond
from medilocker.services.access import AccessGrantEngine

router = APIRouter(prefix="/access-requests", tags=["Access Requests"])


@router.post("", response_model=AccessRequestResponse, status_code=201)
async def create_access_request(
    payload: AccessRequestCreate,
    doctor: DoctorPrincipal,
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    """Doctor asks a patient for time-limited access (status starts as pending)."""
    request = await engine.create(
        doctor_id=doctor.subject_id,
        doctor_role=doctor.role,
        patient_id=payload.patient_id,
        reason=payload.reason,
        access_level=payload.access_level,
        requested_record_types=payload.requested_record_types,
        expiry_days=payload.expiry_days,
    )
    return AccessRequestResponse.from_model(request)


@router.get("/incoming", response_model=list[AccessRequestResponse])
async def list_incoming(
    patient: PatientPrincipal,
    status: Optional[AccessStatus] = Query(None, description="Filter by status"),
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    requests = await engine.list_incoming(patient.subject_id, status)
    return [AccessRequestResponse.from_model(r) for r in requests]


@router.get("/outgoing", response_model=list[AccessRequestResponse])
async def list_outgoing(
    doctor: DoctorPrincipal,
    status: Optional[AccessStatus] = Query(None, description="Filter by status"),
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    requests = await engine.list_outgoing(doctor.subject_id, status)
    return [AccessRequestResponse.from_model(r) for r in requests]


@router.get("/{request_id}", response_model=AccessRequestResponse)
async def get_access_request(
    request_id: str,
    principal: CurrentPrincipal,
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    request = await engine.get(request_id, principal.subject_id)
    return AccessRequestResponse.from_model(request)


@router.patch("/{request_id}/respond", response_model=AccessRequestResponse)
async def respond_to_access_request(
    request_id: str,
    payload: AccessRespond,
    patient: PatientPrincipal,
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    """Approve or deny. A request that already moved on answers 409."""
    request = await engine.respond(request_id, patient.subject_id, payload.approved)
    return AccessRequestResponse.from_model(request)


@router.patch("/{request_id}/revoke", response_model=AccessRequestResponse)
async def revoke_access_request(
    request_id: str,
    patient: PatientPrincipal,
    engine: AccessGrantEngine = Depends(get_access_engine),
):
    request = await engine.revoke(request_id, patient.subject_id)
    return AccessRequestResponse.from_model(request)
