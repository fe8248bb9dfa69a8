"""
Infrastructure layer - external system integrations.
Keeps business logic clean from implementation details.
"""

from .email_sender import LoggingEmailSender, NullEmailSender
from .redis_client import close_redis, get_redis
from .redis_queue import RedisNotificationQueue

__all__ = [
    "LoggingEmailSender",
    "NullEmailSender",
    "RedisNotificationQueue",
    "close_redis",
    "get_redis",
]
