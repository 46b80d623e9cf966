from medilocker.services.notifications.fanout import NotificationFanout
from medilocker.services.notifications.repository import (
    InMemoryNotificationRepository,
    NotificationRepository,
    SQLNotificationRepository,
)
from medilocker.services.notifications.service import NotificationPage, NotificationService

__all__ = [
    "NotificationFanout",
    "NotificationPage",
    "NotificationRepository",
    "NotificationService",
    "InMemoryNotificationRepository",
    "SQLNotificationRepository",
]
