"""
In-app notification inbox for the calling user.
"""

from fastapi import APIRouter, Depends, Query

from eventhub.api.dependencies import ServiceContainer, get_container, get_current_user_id
from eventhub.schemas.notification import (
    MarkAllReadResponse,
    NotificationList,
    NotificationResponse,
)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("", response_model=NotificationList)
async def list_notifications_endpoint(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    notifications = await services.inbox.list_notifications(user_id, unread_only, limit)
    unread = await services.inbox.count_unread(user_id)
    return NotificationList(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread=unread,
    )


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read_endpoint(
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return MarkAllReadResponse(updated=await services.inbox.mark_all_as_read(user_id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read_endpoint(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.inbox.mark_as_read(notification_id, user_id)
