"""
Service interfaces for dependency inversion.
Allows swapping implementations without changing business logic.
"""

from .email_sender import EmailDeliveryError, EmailSender
from .memory_queue import MemoryNotificationQueue
from .notification_queue import NotificationMessage, NotificationQueue

__all__ = [
    "EmailDeliveryError",
    "EmailSender",
    "MemoryNotificationQueue",
    "NotificationMessage",
    "NotificationQueue",
]
