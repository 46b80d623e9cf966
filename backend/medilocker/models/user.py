from enum import StrEnum

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from medilocker.models.base import Base, TimestampMixin


class UserRole(StrEnum):
    patient = "patient"
    doctor = "doctor"


class User(Base, TimestampMixin):
    """Registry entry for an identity-provider subject.

    Credentials live with the identity provider; this row only records the
    role and the display fields used by search and doctor discovery.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(128), primary_key=True, comment="Identity provider subject id"
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        index=True,
        comment="User role: patient, doctor",
    )
    display_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True, index=True)
    specialization: Mapped[str | None] = mapped_column(String(255), nullable=True)
    condition_tags: Mapped[str | None] = mapped_column(
        Text, nullable=True, comment="Comma-separated conditions a doctor treats"
    )

    @property
    def condition_tag_list(self) -> list[str]:
        return [t for t in (self.condition_tags or "").split(",") if t]

    def __repr__(self) -> str:
        return f"<User(id={self.id}, role={self.role})>"
