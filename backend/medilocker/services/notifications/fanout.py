"""Turns domain events into notifications for the people they concern."""

from __future__ import annotations

import logging

from medilocker.models import NotificationType
from medilocker.services.events import (
    AccessRequested,
    AccessResponded,
    AccessRevoked,
    DoctorEndorsed,
    DomainEvent,
    RecordUpdated,
)
from medilocker.services.notifications.service import NotificationService

logger = logging.getLogger("medilocker.notifications")


def _types_label(record_types: tuple[str, ...]) -> str:
    if record_types == ("all",):
        return "all records"
    return ", ".join(t.replace("_", " ") for t in record_types)


class NotificationFanout:
    """``EventPublisher`` that writes notifications through ``NotificationService``."""

    def __init__(self, notifications: NotificationService):
        self.notifications = notifications

    async def publish(self, event: DomainEvent) -> None:
        if isinstance(event, AccessRequested):
            await self.notifications.emit(
                event.patient_id,
                NotificationType.access_request,
                "New access request",
                f"A doctor requested {event.access_level} access to "
                f"{_types_label(event.record_types)} for {event.expiry_days} days.",
            )
        elif isinstance(event, AccessResponded):
            verdict = "approved" if event.approved else "denied"
            body = f"Your access request was {verdict}."
            if event.approved:
                body = f"Your access request was approved for {event.expiry_days} days."
            await self.notifications.emit(
                event.doctor_id,
                NotificationType.access_request_response,
                f"Access request {verdict}",
                body,
            )
        elif isinstance(event, AccessRevoked):
            await self.notifications.emit(
                event.doctor_id,
                NotificationType.access_revoked,
                "Access revoked",
                "A patient revoked your access to their records.",
            )
        elif isinstance(event, RecordUpdated):
            await self._record_updated(event)
        elif isinstance(event, DoctorEndorsed):
            await self.notifications.emit(
                event.doctor_id,
                NotificationType.endorsement,
                "New endorsement",
                f"A colleague endorsed you for {event.skill}.",
            )
        else:
            logger.debug("No notification for event %r", event)

    async def _record_updated(self, event: RecordUpdated) -> None:
        label = event.record_type.replace("_", " ")
        title = f"{event.title} updated"
        body = f"Version {event.version_number} of a {label} record was committed."
        if event.committed_by_user_id != event.owner_id:
            await self.notifications.emit(
                event.owner_id, NotificationType.record_updated, title, body
            )
            return
        for doctor_id in event.watchers:
            await self.notifications.emit(
                doctor_id, NotificationType.record_updated, title, body
            )
