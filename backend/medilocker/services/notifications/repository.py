"""Notification repository implementations."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Protocol

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from medilocker.models import Notification


class NotificationRepository(Protocol):
    async def add(self, notification: Notification) -> Notification:
        ...

    async def get(self, notification_id: str) -> Optional[Notification]:
        ...

    async def mark_read(self, notification_id: str, read_at: datetime) -> None:
        ...

    async def mark_all_read(self, recipient_id: str, cutoff: datetime, read_at: datetime) -> int:
        ...

    async def count_unread(self, recipient_id: str) -> int:
        ...

    async def list_for_recipient(
        self, recipient_id: str, unread_only: bool, limit: int
    ) -> list[Notification]:
        ...


class SQLNotificationRepository:
    """Notifications backed by SQLAlchemy.

    Runs on its own session and commits every write, so nothing here can
    hold or roll back the caller's transaction.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def add(self, notification: Notification) -> Notification:
        self.db.add(notification)
        try:
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise
        return notification

    async def get(self, notification_id: str) -> Optional[Notification]:
        result = await self.db.execute(
            select(Notification)
            .where(Notification.id == notification_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def mark_read(self, notification_id: str, read_at: datetime) -> None:
        await self.db.execute(
            update(Notification)
            .where(Notification.id == notification_id, Notification.is_read.is_(False))
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

    async def mark_all_read(self, recipient_id: str, cutoff: datetime, read_at: datetime) -> int:
        result = await self.db.execute(
            update(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
                Notification.created_at <= cutoff,
            )
            .values(is_read=True, read_at=read_at)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()
        return result.rowcount or 0

    async def count_unread(self, recipient_id: str) -> int:
        result = await self.db.execute(
            select(func.count())
            .select_from(Notification)
            .where(
                Notification.recipient_id == recipient_id,
                Notification.is_read.is_(False),
            )
        )
        return int(result.scalar_one())

    async def list_for_recipient(
        self, recipient_id: str, unread_only: bool, limit: int
    ) -> list[Notification]:
        query = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        result = await self.db.execute(
            query.order_by(Notification.created_at.desc())
            .limit(limit)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())


class InMemoryNotificationRepository:
    """In-memory repository for tests and local demos."""

    def __init__(self):
        self._notifications: dict[str, Notification] = {}

    @property
    def all(self) -> list[Notification]:
        return list(self._notifications.values())

    async def add(self, notification: Notification) -> Notification:
        self._notifications[notification.id] = notification
        return notification

    async def get(self, notification_id: str) -> Optional[Notification]:
        return self._notifications.get(notification_id)

    async def mark_read(self, notification_id: str, read_at: datetime) -> None:
        notification = self._notifications.get(notification_id)
        if notification is not None and not notification.is_read:
            notification.is_read = True
            notification.read_at = read_at

    async def mark_all_read(self, recipient_id: str, cutoff: datetime, read_at: datetime) -> int:
        flipped = 0
        for notification in self._notifications.values():
            if (
                notification.recipient_id == recipient_id
                and not notification.is_read
                and notification.created_at <= cutoff
            ):
                notification.is_read = True
                notification.read_at = read_at
                flipped += 1
        return flipped

    async def count_unread(self, recipient_id: str) -> int:
        return sum(
            1
            for n in self._notifications.values()
            if n.recipient_id == recipient_id and not n.is_read
        )

    async def list_for_recipient(
        self, recipient_id: str, unread_only: bool, limit: int
    ) -> list[Notification]:
        matches = [
            n
            for n in self._notifications.values()
            if n.recipient_id == recipient_id and (not unread_only or not n.is_read)
        ]
        return sorted(matches, key=lambda n: n.created_at, reverse=True)[:limit]

    def clear(self) -> None:
        self._notifications.clear()
