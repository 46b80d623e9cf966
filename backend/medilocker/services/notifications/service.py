"""Notification service: best-effort delivery plus read-state bookkeeping."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from medilocker.config import settings
from medilocker.errors import ForbiddenError, NotFoundError
from medilocker.models import Notification, NotificationType
from medilocker.models.base import new_id
from medilocker.services.notifications.repository import NotificationRepository
from medilocker.utils.time import utcnow
from medilocker.utils.timeouts import bounded

logger = logging.getLogger("medilocker.notifications")

DEFAULT_LIST_LIMIT = 50
MAX_LIST_LIMIT = 100


@dataclass(frozen=True)
class NotificationPage:
    notifications: list[Notification]
    unread_count: int


class NotificationService:
    def __init__(
        self,
        repo: NotificationRepository,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.repo = repo
        self.clock = clock

    async def emit(
        self,
        recipient_id: str,
        type: NotificationType,
        title: str,
        body: str,
    ) -> Notification | None:
        """Persist a notification. Never raises: failures are logged and dropped."""
        notification = Notification(
            id=new_id(),
            recipient_id=recipient_id,
            type=NotificationType(type).value,
            title=title[:255],
            body=body,
            is_read=False,
            created_at=self.clock(),
        )
        try:
            await bounded(
                self.repo.add(notification),
                settings.notification_timeout_seconds,
                "Notification delivery",
            )
        except Exception:
            logger.exception(
                "Failed to deliver %s notification to %s", notification.type, recipient_id
            )
            return None
        return notification

    async def mark_read(self, notification_id: str, requester_id: str) -> Notification:
        notification = await self.repo.get(notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.recipient_id != requester_id:
            raise ForbiddenError("This notification belongs to someone else")
        if not notification.is_read:
            await self.repo.mark_read(notification_id, self.clock())
            notification = await self.repo.get(notification_id) or notification
        return notification

    async def mark_all_read(self, recipient_id: str) -> int:
        # Rows that arrive after this call starts stay unread.
        now = self.clock()
        flipped = await self.repo.mark_all_read(recipient_id, cutoff=now, read_at=now)
        if flipped:
            logger.info("Marked %d notifications read for %s", flipped, recipient_id)
        return flipped

    async def unread_count(self, recipient_id: str) -> int:
        return await self.repo.count_unread(recipient_id)

    async def list(
        self,
        recipient_id: str,
        unread_only: bool = False,
        limit: int = DEFAULT_LIST_LIMIT,
    ) -> NotificationPage:
        limit = max(1, min(limit, MAX_LIST_LIMIT))
        notifications = await self.repo.list_for_recipient(recipient_id, unread_only, limit)
        return NotificationPage(
            notifications=notifications,
            unread_count=await self.repo.count_unread(recipient_id),
        )
