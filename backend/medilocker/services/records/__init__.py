from medilocker.services.records.repository import (
    InMemoryRecordRepository,
    RecordRepository,
    SQLRecordRepository,
    VersionContentionError,
)
from medilocker.services.records.store import (
    BlobUpload,
    CommitResult,
    DownloadLink,
    RecordAccessPolicy,
    RecordStore,
)

__all__ = [
    "BlobUpload",
    "CommitResult",
    "DownloadLink",
    "InMemoryRecordRepository",
    "RecordAccessPolicy",
    "RecordRepository",
    "RecordStore",
    "SQLRecordRepository",
    "VersionContentionError",
]
