from datetime import datetime

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import Base, UTCDateTime, id_column


class Endorsement(Base):
    """A doctor vouching for another doctor's skill."""

    __tablename__ = "endorsements"

    id: Mapped[str] = id_column()
    doctor_id: Mapped[str] = mapped_column(
        String(128), nullable=False, index=True, comment="Endorsed doctor"
    )
    endorsed_by_id: Mapped[str] = mapped_column(String(128), nullable=False)
    skill: Mapped[str] = mapped_column(String(80), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    __table_args__ = (
        Index("ix_endorsements_endorser_created", "endorsed_by_id", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Endorsement(doctor_id={self.doctor_id}, by={self.endorsed_by_id}, skill={self.skill})>"
