from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import Base, UTCDateTime, id_column


class NotificationType(StrEnum):
    access_request = "access_request"
    access_request_response = "access_request_response"
    access_revoked = "access_revoked"
    endorsement = "endorsement"
    record_updated = "record_updated"


class Notification(Base):
    """One-way message to a recipient; only ``is_read`` ever changes."""

    __tablename__ = "notifications"

    id: Mapped[str] = id_column()
    recipient_id: Mapped[str] = mapped_column(String(128), nullable=False)
    type: Mapped[str] = mapped_column(String(40), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    is_read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    read_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        Index("ix_notifications_recipient_created", "recipient_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, recipient_id={self.recipient_id}, type={self.type})>"
