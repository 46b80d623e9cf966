from medilocker.models.access_request import AccessLevel, AccessRequest, AccessStatus
from medilocker.models.base import Base, TimestampMixin, UTCDateTime
from medilocker.models.endorsement import Endorsement
from medilocker.models.notification import Notification, NotificationType
from medilocker.models.record import Record, RecordVersion
from medilocker.models.record_types import (
    AllTypes,
    RecordType,
    RecordTypeSelection,
    SpecificTypes,
    parse_record_types,
    select_record_types,
)
from medilocker.models.user import User, UserRole

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    # Core Models
    "User",
    "UserRole",
    "Record",
    "RecordVersion",
    "AccessRequest",
    "AccessStatus",
    "AccessLevel",
    "Notification",
    "NotificationType",
    "Endorsement",
    # Record types
    "RecordType",
    "RecordTypeSelection",
    "AllTypes",
    "SpecificTypes",
    "select_record_types",
    "parse_record_types",
]
