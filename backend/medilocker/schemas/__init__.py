from medilocker.schemas.access import (
    AccessRequestCreate,
    AccessRequestResponse,
    AccessRespond,
    CollaboratorResponse,
)
from medilocker.schemas.activity import (
    ContributionGraphResponse,
    ContributionSummaryResponse,
    DoctorProfileResponse,
    DoctorStatsResponse,
    EndorseRequest,
    EndorsementResponse,
)
from medilocker.schemas.auth import PatientSearchResult, RegisterRequest, UserResponse
from medilocker.schemas.notifications import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from medilocker.schemas.records import (
    CommitFeedItem,
    CommitResponse,
    DownloadResponse,
    PrescriptionCreate,
    RecordResponse,
    VersionResponse,
)

__all__ = [
    # Auth
    "RegisterRequest",
    "UserResponse",
    "PatientSearchResult",
    # Access
    "AccessRequestCreate",
    "AccessRequestResponse",
    "AccessRespond",
    "CollaboratorResponse",
    # Records
    "RecordResponse",
    "VersionResponse",
    "CommitResponse",
    "CommitFeedItem",
    "PrescriptionCreate",
    "DownloadResponse",
    # Notifications
    "NotificationResponse",
    "NotificationListResponse",
    "UnreadCountResponse",
    "MarkAllReadResponse",
    # Activity
    "DoctorStatsResponse",
    "DoctorProfileResponse",
    "ContributionSummaryResponse",
    "ContributionGraphResponse",
    "EndorseRequest",
    "EndorsementResponse",
]
