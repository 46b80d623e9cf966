from fastapi import APIRouter, Depends, Query

from medilocker.api.deps import CurrentPrincipal, get_notification_service
from medilocker.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from medilocker.services.notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    principal: CurrentPrincipal,
    unread_only: bool = Query(False),
    limit: int = Query(50, description="Clamped to 1..100"),
    notifications: NotificationService = Depends(get_notification_service),
):
    page = await notifications.list(principal.subject_id, unread_only=unread_only, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in page.notifications],
        unread_count=page.unread_count,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def unread_count(
    principal: CurrentPrincipal,
    notifications: NotificationService = Depends(get_notification_service),
):
    """Cheap count for polling clients."""
    return UnreadCountResponse(unread_count=await notifications.unread_count(principal.subject_id))


@router.patch("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    principal: CurrentPrincipal,
    notifications: NotificationService = Depends(get_notification_service),
):
    return MarkAllReadResponse(marked_read=await notifications.mark_all_read(principal.subject_id))


@router.patch("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(
    notification_id: str,
    principal: CurrentPrincipal,
    notifications: NotificationService = Depends(get_notification_service),
):
    notification = await notifications.mark_read(notification_id, principal.subject_id)
    return NotificationResponse.model_validate(notification)
