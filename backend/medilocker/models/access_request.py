"""Access request: a doctor's time-bounded proposal to read a patient's records."""

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import Base, TimestampMixin, UTCDateTime, id_column
from medilocker.models.record_types import RecordTypeSelection, parse_record_types


class AccessStatus(StrEnum):
    pending = "pending"
    approved = "approved"
    denied = "denied"
    revoked = "revoked"
    expired = "expired"


class AccessLevel(StrEnum):
    read = "read"
    read_write = "read_write"


class AccessRequest(Base, TimestampMixin):
    """Lifecycle: pending -> approved | denied; approved -> revoked | expired.

    Rows are never deleted; the table doubles as the audit trail of grants.
    ``expires_at`` is only ever set together with the approval.
    """

    __tablename__ = "access_requests"

    id: Mapped[str] = id_column()
    doctor_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    patient_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    access_level: Mapped[str] = mapped_column(
        String(20), nullable=False, default=AccessLevel.read.value
    )
    requested_record_types: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="'all' or comma-separated record types",
    )
    expiry_days: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=AccessStatus.pending.value,
        server_default="pending",
    )
    requested_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    responded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    __table_args__ = (
        Index("ix_access_requests_pair_status", "patient_id", "doctor_id", "status"),
        Index("ix_access_requests_status_expires", "status", "expires_at"),
    )

    @property
    def record_types(self) -> RecordTypeSelection:
        return parse_record_types(self.requested_record_types)

    @property
    def allows_write(self) -> bool:
        return self.access_level == AccessLevel.read_write.value

    def __repr__(self) -> str:
        return (
            f"<AccessRequest(id={self.id}, doctor_id={self.doctor_id}, "
            f"patient_id={self.patient_id}, status={self.status})>"
        )
