"""
Notification transport factory.
Configures which queue and e-mail sender the notification pipeline uses.
"""

from eventhub.core.config import Settings
from eventhub.core.logging import get_logger
from eventhub.infrastructure.email_sender import LoggingEmailSender, NullEmailSender
from eventhub.infrastructure.redis_client import get_redis
from eventhub.infrastructure.redis_queue import RedisNotificationQueue
from eventhub.services.interfaces.email_sender import EmailSender
from eventhub.services.interfaces.memory_queue import MemoryNotificationQueue
from eventhub.services.interfaces.notification_queue import NotificationQueue

logger = get_logger(__name__)


async def build_notification_queue(settings: Settings) -> NotificationQueue:
    """
    Get the configured notification queue.

    Strategy selection via NOTIFICATION_QUEUE:
    - memory: in-process asyncio.Queue (default)
    - redis: Redis list; falls back to memory when Redis is unavailable
    """
    if settings.NOTIFICATION_QUEUE == "redis":
        client = await get_redis()
        if client is not None:
            return RedisNotificationQueue(client, settings.NOTIFICATION_QUEUE_KEY)
        logger.warning("notification_queue_fallback", requested="redis", using="memory")
    return MemoryNotificationQueue()


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.EMAIL_SENDER == "null":
        return NullEmailSender()
    return LoggingEmailSender()
