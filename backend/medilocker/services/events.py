"""Domain events emitted after a mutation has been committed.

Events are plain values; whoever is interested subscribes through an
``EventPublisher``. Expiry of a grant deliberately has no event.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol, Union


@dataclass(frozen=True)
class AccessRequested:
    request_id: str
    doctor_id: str
    patient_id: str
    access_level: str
    record_types: tuple[str, ...]
    expiry_days: int


@dataclass(frozen=True)
class AccessResponded:
    request_id: str
    doctor_id: str
    patient_id: str
    approved: bool
    expiry_days: int


@dataclass(frozen=True)
class AccessRevoked:
    request_id: str
    doctor_id: str
    patient_id: str


@dataclass(frozen=True)
class RecordUpdated:
    record_id: str
    owner_id: str
    record_type: str
    title: str
    version_number: int
    committed_by_user_id: str
    committed_by_role: str
    # Doctors with a current grant on this record type; filled in for owner commits.
    watchers: tuple[str, ...] = field(default=())


@dataclass(frozen=True)
class DoctorEndorsed:
    doctor_id: str
    endorsed_by_id: str
    skill: str


DomainEvent = Union[AccessRequested, AccessResponded, AccessRevoked, RecordUpdated, DoctorEndorsed]


class EventPublisher(Protocol):
    async def publish(self, event: DomainEvent) -> None:
        ...


class NullPublisher:
    """Publisher that drops every event."""

    async def publish(self, event: DomainEvent) -> None:
        return None


class RecordingPublisher:
    """Collects published events in memory, for tests and local demos."""

    def __init__(self) -> None:
        self.events: list[DomainEvent] = []

    async def publish(self, event: DomainEvent) -> None:
        self.events.append(event)

    def of_type(self, event_type: type) -> list[DomainEvent]:
        return [e for e in self.events if isinstance(e, event_type)]
