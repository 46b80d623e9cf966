"""Shared API dependencies.

Every repository and service is built through a dependency here so tests can
swap in the in-memory implementations with ``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from medilocker.config import settings
from medilocker.database import get_db, get_side_channel_db
from medilocker.errors import ForbiddenError
from medilocker.logging import subject_id_var
from medilocker.services.access import AccessGrantEngine, AccessRequestRepository, SQLAccessRequestRepository
from medilocker.services.activity import (
    ActivityAggregator,
    EndorsementRepository,
    SQLEndorsementRepository,
)
from medilocker.services.blob_store import BlobStore, get_blob_store
from medilocker.services.events import EventPublisher
from medilocker.services.identity import IdentityVerifier, Principal, get_identity_verifier
from medilocker.services.notifications import (
    NotificationFanout,
    NotificationRepository,
    NotificationService,
    SQLNotificationRepository,
)
from medilocker.services.records import RecordRepository, RecordStore, SQLRecordRepository
from medilocker.services.users import SQLUserRepository, UserDirectory, UserRepository

security = HTTPBearer(auto_error=False)


async def get_current_principal(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    verifier: Annotated[IdentityVerifier, Depends(get_identity_verifier)],
) -> Principal:
    """Verify the bearer token; missing or bad tokens are an AuthError (401)."""
    principal = verifier.verify(credentials.credentials if credentials else None)
    subject_id_var.set(principal.subject_id)
    return principal


async def require_doctor(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    if not principal.is_doctor:
        raise ForbiddenError("This action is only available to doctors")
    return principal


async def require_patient(
    principal: Annotated[Principal, Depends(get_current_principal)],
) -> Principal:
    if not principal.is_patient:
        raise ForbiddenError("This action is only available to patients")
    return principal


# ----- repositories -----


def get_user_repo(db: AsyncSession = Depends(get_db)) -> UserRepository:
    return SQLUserRepository(db)


def get_record_repo(db: AsyncSession = Depends(get_db)) -> RecordRepository:
    return SQLRecordRepository(db, contention_timeout=settings.version_commit_timeout_seconds)


def get_access_repo(db: AsyncSession = Depends(get_db)) -> AccessRequestRepository:
    return SQLAccessRequestRepository(db)


def get_endorsement_repo(db: AsyncSession = Depends(get_db)) -> EndorsementRepository:
    return SQLEndorsementRepository(db)


def get_notification_repo(
    db: AsyncSession = Depends(get_side_channel_db),
) -> NotificationRepository:
    return SQLNotificationRepository(db)


# ----- services -----


def get_notification_service(
    repo: NotificationRepository = Depends(get_notification_repo),
) -> NotificationService:
    return NotificationService(repo)


def get_event_publisher(
    notifications: NotificationService = Depends(get_notification_service),
) -> EventPublisher:
    return NotificationFanout(notifications)


def get_user_directory(repo: UserRepository = Depends(get_user_repo)) -> UserDirectory:
    return UserDirectory(repo)


def get_access_engine(
    repo: AccessRequestRepository = Depends(get_access_repo),
    publisher: EventPublisher = Depends(get_event_publisher),
    users: UserDirectory = Depends(get_user_directory),
) -> AccessGrantEngine:
    return AccessGrantEngine(repo, publisher=publisher, users=users)


def get_record_store(
    repo: RecordRepository = Depends(get_record_repo),
    access: AccessGrantEngine = Depends(get_access_engine),
    blobs: BlobStore = Depends(get_blob_store),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> RecordStore:
    return RecordStore(repo, access, blobs, publisher=publisher)


def get_activity_aggregator(
    records: RecordRepository = Depends(get_record_repo),
    access: AccessRequestRepository = Depends(get_access_repo),
    endorsements: EndorsementRepository = Depends(get_endorsement_repo),
    users: UserDirectory = Depends(get_user_directory),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> ActivityAggregator:
    return ActivityAggregator(records, access, endorsements, users=users, publisher=publisher)


CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]
DoctorPrincipal = Annotated[Principal, Depends(require_doctor)]
PatientPrincipal = Annotated[Principal, Depends(require_patient)]
