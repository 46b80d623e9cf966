from datetime import datetime

from sqlalchemy import ForeignKey, Index, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from medilocker.models.base import Base, TimestampMixin, UTCDateTime, id_column


class Record(Base, TimestampMixin):
    """A patient-owned medical document with a linear version history.

    ``current_version_number`` is the per-record serialization point: commits
    advance it with a compare-and-increment, so it always equals the number
    of committed versions.
    """

    __tablename__ = "records"

    id: Mapped[str] = id_column()
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    record_type: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    tags: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Comma-separated tags"
    )
    current_version_number: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )
    current_version_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    versions: Mapped[list["RecordVersion"]] = relationship(
        back_populates="record",
        order_by="RecordVersion.version_number",
    )

    __table_args__ = (
        Index("ix_records_owner_type", "owner_id", "record_type"),
    )

    @property
    def tag_list(self) -> list[str]:
        return sorted(t for t in (self.tags or "").split(",") if t)

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return (
            f"<Record(id={self.id}, owner_id={self.owner_id}, "
            f"type='{self.record_type}', v={self.current_version_number})>"
        )


class RecordVersion(Base):
    """One immutable commit of a record."""

    __tablename__ = "record_versions"

    id: Mapped[str] = id_column()
    record_id: Mapped[str] = mapped_column(
        ForeignKey("records.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_number: Mapped[int] = mapped_column(Integer, nullable=False)
    file_ref: Mapped[str] = mapped_column(
        String(512), nullable=False, comment="Opaque blob store locator"
    )
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    file_size: Mapped[int] = mapped_column(Integer, nullable=False)
    content_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    commit_message: Mapped[str] = mapped_column(Text, nullable=False)
    committed_by_user_id: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True
    )
    committed_by_role: Mapped[str] = mapped_column(String(20), nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    deleted_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    record: Mapped["Record"] = relationship(back_populates="versions")

    __table_args__ = (
        UniqueConstraint(
            "record_id", "version_number", name="uq_record_versions_record_number"
        ),
        Index(
            "ix_record_versions_committer_created",
            "committed_by_user_id",
            "created_at",
        ),
    )

    def __repr__(self) -> str:
        return f"<RecordVersion(record_id={self.record_id}, v={self.version_number})>"
