"""Record store: append-only version history for patient-owned records."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Protocol

from medilocker.config import settings
from medilocker.errors import (
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    TransientError,
    ValidationError,
)
from medilocker.models import AllTypes, Record, RecordType, RecordTypeSelection, RecordVersion, UserRole
from medilocker.models.base import new_id
from medilocker.services.blob_store import BlobMetadata, BlobStore
from medilocker.services.events import EventPublisher, NullPublisher, RecordUpdated
from medilocker.services.records.repository import RecordRepository, VersionContentionError
from medilocker.utils.time import utcnow
from medilocker.utils.timeouts import bounded

logger = logging.getLogger("medilocker.records")

MIN_PRESCRIPTION_LENGTH = 5
MAX_TITLE_LENGTH = 200


class RecordAccessPolicy(Protocol):
    """The slice of the access grant engine the record store depends on."""

    async def can_read(self, requester_id: str, owner_id: str, record_type: str) -> bool:
        ...

    async def can_write(self, requester_id: str, owner_id: str, record_type: str) -> bool:
        ...

    async def granted_types(self, doctor_id: str, patient_id: str) -> Optional[RecordTypeSelection]:
        ...

    async def active_grantees(self, patient_id: str, record_type: str) -> list[str]:
        ...


@dataclass(frozen=True)
class BlobUpload:
    data: bytes
    file_name: str
    content_type: str | None = None

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class CommitResult:
    record: Record
    version: RecordVersion


@dataclass(frozen=True)
class DownloadLink:
    url: str
    expires_at: datetime
    file_name: str
    file_size: int
    version_number: int


def normalize_tags(tags: Optional[list[str]]) -> Optional[str]:
    cleaned = sorted({t.strip().lower() for t in tags or [] if t and t.strip()})
    return ",".join(t.replace(",", " ") for t in cleaned) or None


class RecordStore:
    """Commits, lists, tombstones and serves record versions.

    Authorization is delegated to the access grant engine; the store never
    changes grants.
    """

    def __init__(
        self,
        repo: RecordRepository,
        access: RecordAccessPolicy,
        blobs: BlobStore,
        publisher: EventPublisher | None = None,
        max_upload_size: int | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.access = access
        self.blobs = blobs
        self.publisher = publisher or NullPublisher()
        self.max_upload_size = max_upload_size or settings.max_upload_size
        self.clock = clock

    async def commit_version(
        self,
        *,
        record_id: Optional[str],
        owner_id: Optional[str],
        record_type: str,
        title: str,
        tags: Optional[list[str]],
        commit_message: str,
        blob: BlobUpload,
        committer_id: str,
        committer_role: str,
    ) -> CommitResult:
        """Create a record (no ``record_id``) or append a version to it.

        Each call is a new commit; retrying a timed-out call may produce a
        second version.
        """
        title = (title or "").strip()
        commit_message = (commit_message or "").strip()
        if not title:
            raise ValidationError("Title is required")
        if len(title) > MAX_TITLE_LENGTH:
            raise ValidationError(f"Title must be at most {MAX_TITLE_LENGTH} characters")
        if not commit_message:
            raise ValidationError("Commit message is required")
        if not blob.file_name:
            raise ValidationError("File must have a filename")
        if blob.size > self.max_upload_size:
            raise PayloadTooLargeError(
                f"File too large ({blob.size} bytes). "
                f"Maximum size: {self.max_upload_size} bytes"
            )
        try:
            record_type = RecordType(record_type).value
        except ValueError:
            raise ValidationError(f"Unknown record type: {record_type}") from None
        tag_text = normalize_tags(tags)

        if record_id is None:
            if not owner_id:
                raise ValidationError("A new record needs an owner")
            await self._authorize_write(committer_id, owner_id, record_type)
            file_ref = await self._store_blob(blob, owner_id)
            now = self.clock()
            record = Record(
                id=new_id(),
                owner_id=owner_id,
                record_type=record_type,
                title=title,
                tags=tag_text,
                current_version_number=0,
                created_at=now,
                updated_at=now,
            )
            version = self._new_version(blob, file_ref, commit_message, committer_id, committer_role, now)
            record = await self.repo.create_record(record, version)
        else:
            existing = await self.repo.get_record(record_id)
            if existing is None:
                raise NotFoundError("Record not found")
            record_owner = existing.owner_id
            if owner_id and owner_id != record_owner:
                raise ValidationError("Record belongs to a different patient")
            if existing.record_type != record_type:
                raise ValidationError(
                    f"Record type is '{existing.record_type}'; a new version cannot change it"
                )
            await self._authorize_write(committer_id, record_owner, record_type)
            file_ref = await self._store_blob(blob, record_owner)
            version = self._new_version(
                blob, file_ref, commit_message, committer_id, committer_role, self.clock()
            )
            try:
                appended = await self.repo.append_version(record_id, version, title, tag_text)
            except VersionContentionError:
                logger.warning("Version number contention on record %s", record_id)
                raise TransientError("Record is busy, please retry the upload") from None
            if appended is None:
                raise NotFoundError("Record not found")
            record = await self.repo.get_record(record_id)
            if record is None:
                raise NotFoundError("Record not found")

        logger.info(
            "Committed version %d of record %s (%s) by %s",
            version.version_number,
            record.id,
            record_type,
            committer_id,
        )
        try:
            await bounded(
                self._announce(record, version, title, committer_id, committer_role),
                settings.notification_timeout_seconds,
                "Record update notification",
            )
        except Exception:
            # The version is committed at this point; announcing is best effort.
            logger.exception(
                "Failed to announce version %d of record %s", version.version_number, record.id
            )
        return CommitResult(record=record, version=version)

    async def _announce(
        self,
        record: Record,
        version: RecordVersion,
        title: str,
        committer_id: str,
        committer_role: str,
    ) -> None:
        watchers: tuple[str, ...] = ()
        if committer_id == record.owner_id:
            watchers = tuple(await self.access.active_grantees(record.owner_id, record.record_type))
        await self.publisher.publish(
            RecordUpdated(
                record_id=record.id,
                owner_id=record.owner_id,
                record_type=record.record_type,
                title=title,
                version_number=version.version_number,
                committed_by_user_id=committer_id,
                committed_by_role=committer_role,
                watchers=watchers,
            )
        )

    async def commit_prescription(
        self,
        *,
        patient_id: str,
        doctor_id: str,
        doctor_role: str,
        title: str,
        prescription_text: str,
        notes: str = "",
        tags: Optional[list[str]] = None,
    ) -> CommitResult:
        """Doctor-authored prescription stored as a new plain-text record."""
        if doctor_role != UserRole.doctor:
            raise ForbiddenError("Only doctors can write prescriptions")
        text = (prescription_text or "").strip()
        if len(text) < MIN_PRESCRIPTION_LENGTH:
            raise ValidationError(
                f"Prescription text must be at least {MIN_PRESCRIPTION_LENGTH} characters"
            )
        notes = (notes or "").strip()
        body = text if not notes else f"{text}\n\nNotes:\n{notes}"
        issued = self.clock()
        return await self.commit_version(
            record_id=None,
            owner_id=patient_id,
            record_type=RecordType.prescription.value,
            title=title,
            tags=tags,
            commit_message=notes or "Prescription issued",
            blob=BlobUpload(
                data=body.encode("utf-8"),
                file_name=f"prescription-{issued:%Y%m%d-%H%M%S}.txt",
                content_type="text/plain",
            ),
            committer_id=doctor_id,
            committer_role=doctor_role,
        )

    async def list_versions(self, record_id: str, requester_id: str) -> list[RecordVersion]:
        """Versions 1..N in ascending order."""
        record = await self._readable_record(record_id, requester_id)
        return await self.repo.list_versions(record.id)

    async def delete_record(self, record_id: str, requester_id: str) -> None:
        """Tombstone a record and all of its versions. Owner only."""
        record = await self.repo.get_record(record_id, include_deleted=True)
        if record is None:
            raise NotFoundError("Record not found")
        if record.owner_id != requester_id:
            if record.deleted_at is not None:
                raise NotFoundError("Record not found")
            raise ForbiddenError("Only the record owner can delete this record")
        if record.deleted_at is not None:
            return
        await self.repo.tombstone(record_id, self.clock())
        logger.info("Record %s tombstoned by owner", record_id)

    async def resolve_download(
        self, record_id: str, version_id: str, requester_id: str
    ) -> DownloadLink:
        record = await self._readable_record(record_id, requester_id)
        version = await self.repo.get_version(record.id, version_id)
        if version is None:
            raise NotFoundError("Version not found")
        signed = await bounded(
            self.blobs.resolve(version.file_ref),
            settings.blob_timeout_seconds,
            "Download link",
        )
        return DownloadLink(
            url=signed.url,
            expires_at=signed.expires_at,
            file_name=version.file_name,
            file_size=version.file_size,
            version_number=version.version_number,
        )

    async def list_records(
        self,
        owner_id: str,
        requester_id: str,
        record_type: Optional[str] = None,
    ) -> list[Record]:
        """Records the requester may see: all for the owner, granted types for doctors."""
        if requester_id == owner_id:
            visible: Optional[set[str]] = None
        else:
            selection = await self.access.granted_types(requester_id, owner_id)
            if selection is None:
                return []
            visible = None if isinstance(selection, AllTypes) else set(selection.to_list())
        if record_type:
            if visible is not None and record_type not in visible:
                return []
            visible = {record_type}
        return await self.repo.list_records(owner_id, visible)

    async def recent_commits(
        self, owner_id: str, requester_id: str, limit: int = 20
    ) -> list[tuple[RecordVersion, Record]]:
        if requester_id != owner_id:
            raise ForbiddenError("Only the patient can view their commit history")
        return await self.repo.list_recent_versions(owner_id, max(1, min(limit, 100)))

    async def _readable_record(self, record_id: str, requester_id: str) -> Record:
        record = await self.repo.get_record(record_id)
        if record is None:
            raise NotFoundError("Record not found")
        if not await self.access.can_read(requester_id, record.owner_id, record.record_type):
            raise ForbiddenError(
                f"You do not have access to this patient's {record.record_type} records"
            )
        return record

    async def _authorize_write(self, committer_id: str, owner_id: str, record_type: str) -> None:
        if committer_id == owner_id:
            return
        if not await self.access.can_write(committer_id, owner_id, record_type):
            raise ForbiddenError(
                f"You do not have write access to this patient's {record_type} records"
            )

    async def _store_blob(self, blob: BlobUpload, owner_id: str) -> str:
        return await bounded(
            self.blobs.put(
                blob.data,
                BlobMetadata(
                    file_name=blob.file_name,
                    content_type=blob.content_type,
                    owner_id=owner_id,
                ),
            ),
            settings.blob_timeout_seconds,
            "Blob upload",
        )

    @staticmethod
    def _new_version(
        blob: BlobUpload,
        file_ref: str,
        commit_message: str,
        committer_id: str,
        committer_role: str,
        created_at: datetime,
    ) -> RecordVersion:
        return RecordVersion(
            id=new_id(),
            file_ref=file_ref,
            file_name=blob.file_name,
            file_size=blob.size,
            content_type=blob.content_type,
            commit_message=commit_message,
            committed_by_user_id=committer_id,
            committed_by_role=str(committer_role),
            created_at=created_at,
        )
