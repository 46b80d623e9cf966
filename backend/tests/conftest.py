import os
import sys
import tempfile
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("ACCESS_SWEEP_ENABLED", "false")
os.environ.setdefault("BLOB_DIR", tempfile.mkdtemp(prefix="medilocker-blobs-"))

TEST_IDENTITY_SECRET = "test-identity-secret"

PATIENT_ID = "patient-1"
DOCTOR_ID = "doctor-1"
OTHER_DOCTOR_ID = "doctor-2"


class FakeClock:
    """Deterministic clock; tests move time forward explicitly."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def publisher():
    from medilocker.services.events import RecordingPublisher

    return RecordingPublisher()


@pytest.fixture()
def access_repository():
    from medilocker.services.access import InMemoryAccessRequestRepository

    return InMemoryAccessRequestRepository()


@pytest.fixture()
def record_repository():
    from medilocker.services.records import InMemoryRecordRepository

    return InMemoryRecordRepository()


@pytest.fixture()
def notification_repository():
    from medilocker.services.notifications import InMemoryNotificationRepository

    return InMemoryNotificationRepository()


@pytest.fixture()
def endorsement_repository():
    from medilocker.services.activity import InMemoryEndorsementRepository

    return InMemoryEndorsementRepository()


@pytest.fixture()
def user_repository():
    from medilocker.services.users import InMemoryUserRepository

    return InMemoryUserRepository()


@pytest.fixture()
def blob_store():
    from medilocker.services.blob_store import DownloadSigner, InMemoryBlobStore

    return InMemoryBlobStore(DownloadSigner("test-blob-key", "http://testserver/api/v1", 300))


@pytest.fixture()
def access_engine(access_repository, publisher, clock):
    from medilocker.services.access import AccessGrantEngine

    return AccessGrantEngine(access_repository, publisher=publisher, clock=clock)


@pytest.fixture()
def record_store(record_repository, access_engine, blob_store, publisher, clock):
    from medilocker.services.records import RecordStore

    return RecordStore(
        record_repository, access_engine, blob_store, publisher=publisher, clock=clock
    )


@pytest.fixture()
def identity_verifier():
    from medilocker.services.identity import IdentityVerifier

    return IdentityVerifier(secret=TEST_IDENTITY_SECRET)


@pytest.fixture()
def issue_token(identity_verifier):
    def _issue(subject_id: str, role: str, **claims) -> str:
        return identity_verifier.issue(subject_id, role, **claims)

    return _issue


@pytest.fixture()
def auth_headers(issue_token):
    def _headers(subject_id: str, role: str, **claims) -> dict[str, str]:
        return {"Authorization": f"Bearer {issue_token(subject_id, role, **claims)}"}

    return _headers


@pytest.fixture()
def app(
    identity_verifier,
    user_repository,
    record_repository,
    access_repository,
    endorsement_repository,
    notification_repository,
    blob_store,
):
    from medilocker.api import deps
    from medilocker.main import app as medilocker_app
    from medilocker.services.blob_store import get_blob_store
    from medilocker.services.identity import get_identity_verifier

    overrides = {
        get_identity_verifier: lambda: identity_verifier,
        deps.get_user_repo: lambda: user_repository,
        deps.get_record_repo: lambda: record_repository,
        deps.get_access_repo: lambda: access_repository,
        deps.get_endorsement_repo: lambda: endorsement_repository,
        deps.get_notification_repo: lambda: notification_repository,
        get_blob_store: lambda: blob_store,
    }
    medilocker_app.dependency_overrides.update(overrides)
    yield medilocker_app
    medilocker_app.dependency_overrides.clear()


@pytest.fixture()
def client(app):
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
async def sql_session(tmp_path):
    """A fresh SQLite database with the full schema, one session per test."""
    from medilocker.database import build_engine, build_session_maker
    from medilocker.models import Base

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'medilocker.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_maker = build_session_maker(engine)
    async with session_maker() as session:
        yield session
    await engine.dispose()


@pytest.fixture()
async def sql_session_maker(tmp_path):
    from medilocker.database import build_engine, build_session_maker
    from medilocker.models import Base

    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'medilocker-shared.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield build_session_maker(engine)
    await engine.dispose()
