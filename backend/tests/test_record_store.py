import asyncio

import pytest

from conftest import DOCTOR_ID, OTHER_DOCTOR_ID, PATIENT_ID
from medilocker.config import settings
from medilocker.errors import (
    ForbiddenError,
    NotFoundError,
    PayloadTooLargeError,
    TransientError,
    ValidationError,
)
from medilocker.services.blob_store import InMemoryBlobStore
from medilocker.services.events import RecordUpdated
from medilocker.services.records import BlobUpload, RecordStore


def _blob(name="report.pdf", data=b"%PDF-1.7 results"):
    return BlobUpload(data=data, file_name=name, content_type="application/pdf")


async def _commit(store, *, record_id=None, record_type="lab_report", committer=PATIENT_ID,
                  role="patient", title="Blood panel", message="Initial upload", blob=None):
    return await store.commit_version(
        record_id=record_id,
        owner_id=PATIENT_ID if record_id is None else None,
        record_type=record_type,
        title=title,
        tags=["Blood", "annual", "blood"],
        commit_message=message,
        blob=blob or _blob(),
        committer_id=committer,
        committer_role=role,
    )


async def _grant(engine, *, doctor_id=DOCTOR_ID, level="read", types=("lab_report",)):
    request = await engine.create(
        doctor_id=doctor_id,
        doctor_role="doctor",
        patient_id=PATIENT_ID,
        reason="Reviewing results for treatment plan",
        access_level=level,
        requested_record_types=list(types),
        expiry_days=30,
    )
    return await engine.respond(request.id, PATIENT_ID, approved=True)


@pytest.mark.anyio
async def test_first_commit_creates_record_at_version_one(record_store, blob_store, publisher):
    result = await _commit(record_store)

    assert result.record.current_version_number == 1
    assert result.record.current_version_id == result.version.id
    assert result.record.tag_list == ["annual", "blood"]
    assert result.version.version_number == 1
    assert result.version.committed_by_role == "patient"
    assert result.version.file_ref in blob_store.blobs
    [event] = publisher.of_type(RecordUpdated)
    assert event.version_number == 1
    assert event.watchers == ()


@pytest.mark.anyio
async def test_append_advances_version_and_updates_title(record_store):
    created = await _commit(record_store)
    appended = await _commit(
        record_store, record_id=created.record.id, title="Blood panel (corrected)", message="Fix units"
    )

    assert appended.version.version_number == 2
    assert appended.record.current_version_number == 2
    assert appended.record.current_version_id == appended.version.id
    assert appended.record.title == "Blood panel (corrected)"


@pytest.mark.anyio
async def test_concurrent_commits_get_gapless_unique_numbers(record_store):
    created = await _commit(record_store)
    attempts = 12

    results = await asyncio.gather(
        *(
            _commit(record_store, record_id=created.record.id, message=f"Revision {i}")
            for i in range(attempts)
        )
    )

    numbers = sorted(r.version.version_number for r in results)
    assert numbers == list(range(2, attempts + 2))
    versions = await record_store.list_versions(created.record.id, PATIENT_ID)
    assert [v.version_number for v in versions] == list(range(1, attempts + 2))
    record = await record_store.repo.get_record(created.record.id)
    assert record.current_version_number == attempts + 1
    assert record.current_version_id == versions[-1].id


@pytest.mark.anyio
@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"title": "  "}, "Title is required"),
        ({"title": "x" * 201}, "at most 200"),
        ({"message": ""}, "Commit message is required"),
        ({"record_type": "horoscope"}, "Unknown record type"),
        ({"blob": BlobUpload(data=b"data", file_name="")}, "filename"),
    ],
)
async def test_invalid_commits_leave_nothing_behind(record_store, blob_store, overrides, message):
    with pytest.raises(ValidationError, match=message):
        await _commit(record_store, **overrides)
    assert blob_store.blobs == {}
    assert await record_store.repo.list_records(PATIENT_ID) == []


@pytest.mark.anyio
async def test_oversized_upload_is_rejected(record_repository, access_engine, blob_store):
    store = RecordStore(record_repository, access_engine, blob_store, max_upload_size=8)
    with pytest.raises(PayloadTooLargeError):
        await _commit(store, blob=_blob(data=b"123456789"))
    assert blob_store.blobs == {}


@pytest.mark.anyio
async def test_append_to_missing_or_deleted_record_is_not_found(record_store):
    with pytest.raises(NotFoundError):
        await _commit(record_store, record_id="missing")

    created = await _commit(record_store)
    await record_store.delete_record(created.record.id, PATIENT_ID)
    with pytest.raises(NotFoundError):
        await _commit(record_store, record_id=created.record.id)


@pytest.mark.anyio
async def test_new_version_cannot_change_record_type(record_store):
    created = await _commit(record_store)
    with pytest.raises(ValidationError, match="cannot change"):
        await _commit(record_store, record_id=created.record.id, record_type="xray")


@pytest.mark.anyio
async def test_doctor_commits_need_read_write_grant(record_store, access_engine, publisher):
    created = await _commit(record_store)
    with pytest.raises(ForbiddenError):
        await _commit(record_store, record_id=created.record.id, committer=DOCTOR_ID, role="doctor")

    await _grant(access_engine, level="read")
    with pytest.raises(ForbiddenError, match="write access"):
        await _commit(record_store, record_id=created.record.id, committer=DOCTOR_ID, role="doctor")

    await _grant(access_engine, level="read_write")
    result = await _commit(
        record_store, record_id=created.record.id, committer=DOCTOR_ID, role="doctor"
    )
    assert result.version.version_number == 2
    assert result.version.committed_by_user_id == DOCTOR_ID
    event = publisher.of_type(RecordUpdated)[-1]
    assert event.committed_by_user_id == DOCTOR_ID
    assert event.watchers == ()


@pytest.mark.anyio
async def test_owner_commit_lists_covering_grantees_as_watchers(record_store, access_engine, publisher):
    await _grant(access_engine, types=("lab_report",))
    await _grant(access_engine, doctor_id=OTHER_DOCTOR_ID, types=("xray",))

    await _commit(record_store)

    event = publisher.of_type(RecordUpdated)[-1]
    assert event.watchers == (DOCTOR_ID,)


@pytest.mark.anyio
async def test_read_grant_for_lab_reports_only(record_store, access_engine):
    lab = await _commit(record_store, record_type="lab_report")
    xray = await _commit(record_store, record_type="xray", title="Chest x-ray", blob=_blob("chest.png"))
    await _grant(access_engine, level="read", types=("lab_report",))

    with pytest.raises(ForbiddenError):
        await record_store.resolve_download(xray.record.id, xray.version.id, DOCTOR_ID)

    link = await record_store.resolve_download(lab.record.id, lab.version.id, DOCTOR_ID)
    assert "token=" in link.url
    assert link.file_name == "report.pdf"
    assert link.version_number == 1


@pytest.mark.anyio
async def test_list_versions_requires_read_access(record_store):
    created = await _commit(record_store)
    with pytest.raises(ForbiddenError):
        await record_store.list_versions(created.record.id, DOCTOR_ID)


@pytest.mark.anyio
async def test_download_of_unknown_version_is_not_found(record_store):
    created = await _commit(record_store)
    with pytest.raises(NotFoundError):
        await record_store.resolve_download(created.record.id, "nope", PATIENT_ID)


@pytest.mark.anyio
async def test_delete_is_owner_only_and_tombstones_everything(record_store, record_repository):
    created = await _commit(record_store)
    await _commit(record_store, record_id=created.record.id)

    with pytest.raises(ForbiddenError):
        await record_store.delete_record(created.record.id, DOCTOR_ID)

    await record_store.delete_record(created.record.id, PATIENT_ID)
    await record_store.delete_record(created.record.id, PATIENT_ID)

    tombstoned = await record_repository.get_record(created.record.id, include_deleted=True)
    assert tombstoned.deleted_at is not None
    assert await record_repository.list_versions(created.record.id) == []
    with pytest.raises(NotFoundError):
        await record_store.list_versions(created.record.id, PATIENT_ID)
    with pytest.raises(NotFoundError):
        await record_store.delete_record(created.record.id, DOCTOR_ID)


@pytest.mark.anyio
async def test_doctor_sees_only_granted_record_types(record_store, access_engine):
    await _commit(record_store, record_type="lab_report")
    await _commit(record_store, record_type="xray", title="Chest x-ray")

    assert await record_store.list_records(PATIENT_ID, DOCTOR_ID) == []

    await _grant(access_engine, types=("xray",))
    visible = await record_store.list_records(PATIENT_ID, DOCTOR_ID)
    assert [r.record_type for r in visible] == ["xray"]
    assert await record_store.list_records(PATIENT_ID, DOCTOR_ID, record_type="lab_report") == []
    assert len(await record_store.list_records(PATIENT_ID, PATIENT_ID)) == 2


@pytest.mark.anyio
async def test_commit_feed_is_owner_only(record_store):
    created = await _commit(record_store)
    await _commit(record_store, record_id=created.record.id, message="Second")

    feed = await record_store.recent_commits(PATIENT_ID, PATIENT_ID, limit=5)
    assert sorted(v.commit_message for v, _ in feed) == ["Initial upload", "Second"]
    assert all(record.id == created.record.id for _, record in feed)
    with pytest.raises(ForbiddenError):
        await record_store.recent_commits(PATIENT_ID, DOCTOR_ID)


@pytest.mark.anyio
async def test_prescription_is_a_plain_text_commit(record_store, access_engine, blob_store):
    await _grant(access_engine, level="read_write", types=("prescription",))

    result = await record_store.commit_prescription(
        patient_id=PATIENT_ID,
        doctor_id=DOCTOR_ID,
        doctor_role="doctor",
        title="Amoxicillin",
        prescription_text="Amoxicillin 500mg three times daily for 7 days",
        notes="Take with food",
    )

    assert result.record.record_type == "prescription"
    assert result.record.owner_id == PATIENT_ID
    assert result.version.content_type == "text/plain"
    data, _ = blob_store.blobs[result.version.file_ref]
    assert data.decode().startswith("Amoxicillin 500mg")
    assert "Notes:\nTake with food" in data.decode()


@pytest.mark.anyio
async def test_prescription_rules(record_store, access_engine):
    with pytest.raises(ForbiddenError):
        await record_store.commit_prescription(
            patient_id=PATIENT_ID, doctor_id=PATIENT_ID, doctor_role="patient",
            title="Self", prescription_text="Vitamin D daily",
        )
    with pytest.raises(ForbiddenError):
        await record_store.commit_prescription(
            patient_id=PATIENT_ID, doctor_id=DOCTOR_ID, doctor_role="doctor",
            title="No grant", prescription_text="Vitamin D daily",
        )
    await _grant(access_engine, level="read_write", types=("all",))
    with pytest.raises(ValidationError, match="at least 5"):
        await record_store.commit_prescription(
            patient_id=PATIENT_ID, doctor_id=DOCTOR_ID, doctor_role="doctor",
            title="Short", prescription_text="abc",
        )


class _SlowBlobStore(InMemoryBlobStore):
    async def put(self, data, metadata):
        await asyncio.sleep(1)
        return await super().put(data, metadata)


@pytest.mark.anyio
async def test_slow_blob_store_is_transient(record_repository, access_engine, monkeypatch):
    monkeypatch.setattr(settings, "blob_timeout_seconds", 0.01)
    store = RecordStore(record_repository, access_engine, _SlowBlobStore())

    with pytest.raises(TransientError):
        await _commit(store)
    assert await record_repository.list_records(PATIENT_ID) == []


@pytest.mark.anyio
async def test_watcher_lookup_failure_does_not_fail_a_stored_commit(record_store, publisher, monkeypatch):
    created = await _commit(record_store)

    async def unreachable(owner_id, record_type):
        raise ConnectionError("access store unavailable")

    monkeypatch.setattr(record_store.access, "active_grantees", unreachable)
    appended = await _commit(record_store, record_id=created.record.id, message="Add reference ranges")

    assert appended.version.version_number == 2
    record = await record_store.repo.get_record(created.record.id)
    assert record.current_version_number == 2
    assert len(publisher.of_type(RecordUpdated)) == 1


class _StalledPublisher:
    async def publish(self, event):
        await asyncio.sleep(1)


@pytest.mark.anyio
async def test_stalled_publisher_does_not_hold_up_commit(record_repository, access_engine, blob_store, monkeypatch):
    monkeypatch.setattr(settings, "notification_timeout_seconds", 0.01)
    store = RecordStore(record_repository, access_engine, blob_store, publisher=_StalledPublisher())

    result = await _commit(store)

    assert result.version.version_number == 1
    assert [r.id for r in await record_repository.list_records(PATIENT_ID)] == [result.record.id]
