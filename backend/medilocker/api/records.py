from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Response, UploadFile

from medilocker.api.deps import CurrentPrincipal, DoctorPrincipal, get_record_store
from medilocker.errors import PayloadTooLargeError
from medilocker.schemas import (
    CommitResponse,
    DownloadResponse,
    PrescriptionCreate,
    RecordResponse,
    VersionResponse,
)
from medilocker.services.records import BlobUpload, CommitResult, RecordStore

router = APIRouter(prefix="/records", tags=["Medical Records"])


def _commit_response(result: CommitResult) -> CommitResponse:
    return CommitResponse(
        record=RecordResponse.model_validate(result.record),
        version=VersionResponse.model_validate(result.version),
    )


def _split_tags(tags: Optional[str]) -> list[str]:
    return [t for t in (tags or "").split(",") if t.strip()]


@router.post("", response_model=CommitResponse, status_code=201)
async def commit_record(
    principal: CurrentPrincipal,
    file: UploadFile = File(...),
    title: str = Form(...),
    commit_message: str = Form(...),
    record_type: str = Form(...),
    record_id: Optional[str] = Form(None, description="Append to this record; omit to create"),
    owner_id: Optional[str] = Form(None, description="Patient the record belongs to"),
    tags: Optional[str] = Form(None, description="Comma-separated tags"),
    store: RecordStore = Depends(get_record_store),
):
    """Commit a new version. Every call is a new commit; retries are not deduplicated."""
    # One byte past the limit is enough to detect an oversized upload.
    data = await file.read(store.max_upload_size + 1)
    if len(data) > store.max_upload_size:
        raise PayloadTooLargeError(
            f"File too large. Maximum size: {store.max_upload_size} bytes"
        )
    result = await store.commit_version(
        record_id=record_id,
        owner_id=owner_id or (None if record_id else principal.subject_id),
        record_type=record_type,
        title=title,
        tags=_split_tags(tags),
        commit_message=commit_message,
        blob=BlobUpload(data=data, file_name=file.filename or "", content_type=file.content_type),
        committer_id=principal.subject_id,
        committer_role=principal.role,
    )
    return _commit_response(result)


@router.post("/prescriptions", response_model=CommitResponse, status_code=201)
async def write_prescription(
    payload: PrescriptionCreate,
    doctor: DoctorPrincipal,
    store: RecordStore = Depends(get_record_store),
):
    result = await store.commit_prescription(
        patient_id=payload.patient_id,
        doctor_id=doctor.subject_id,
        doctor_role=doctor.role,
        title=payload.title,
        prescription_text=payload.prescription_text,
        notes=payload.notes,
        tags=payload.tags,
    )
    return _commit_response(result)


@router.get("/{record_id}/versions", response_model=list[VersionResponse])
async def list_versions(
    record_id: str,
    principal: CurrentPrincipal,
    store: RecordStore = Depends(get_record_store),
):
    """Version history, oldest first."""
    versions = await store.list_versions(record_id, principal.subject_id)
    return [VersionResponse.model_validate(v) for v in versions]


@router.get("/{record_id}/versions/{version_id}/download", response_model=DownloadResponse)
async def download_version(
    record_id: str,
    version_id: str,
    principal: CurrentPrincipal,
    store: RecordStore = Depends(get_record_store),
):
    link = await store.resolve_download(record_id, version_id, principal.subject_id)
    return DownloadResponse(
        url=link.url,
        expires_at=link.expires_at,
        file_name=link.file_name,
        file_size=link.file_size,
        version_number=link.version_number,
    )


@router.delete("/{record_id}", status_code=204)
async def delete_record(
    record_id: str,
    principal: CurrentPrincipal,
    store: RecordStore = Depends(get_record_store),
):
    """Tombstone the record and every version. Owner only."""
    await store.delete_record(record_id, principal.subject_id)
    return Response(status_code=204)
