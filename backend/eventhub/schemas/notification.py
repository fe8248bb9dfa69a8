"""
Pydantic schemas for in-app notifications.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from eventhub.models.enums import NotificationPriority, NotificationType


class NotificationResponse(BaseModel):
    id: int
    type: NotificationType
    priority: NotificationPriority
    title: str
    message: str
    related_event_id: Optional[int]
    related_booking_id: Optional[int]
    related_resource_id: Optional[int]
    is_read: bool
    read_at: Optional[datetime]
    created_at: datetime

    model_config = {"from_attributes": True}


class NotificationList(BaseModel):
    notifications: list[NotificationResponse]
    unread: int


class MarkAllReadResponse(BaseModel):
    updated: int
