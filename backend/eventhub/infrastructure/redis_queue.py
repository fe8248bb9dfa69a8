"""
Redis-backed notification queue.

Producers LPUSH JSON messages onto one list, the consumer BRPOPs them, so
messages are delivered in FIFO order and survive a restart of the consumer.
"""

from typing import Optional

import redis.asyncio as redis

from eventhub.core.logging import get_logger
from eventhub.services.interfaces.notification_queue import NotificationMessage, NotificationQueue

logger = get_logger(__name__)


class RedisNotificationQueue(NotificationQueue):
    def __init__(self, client: redis.Redis, key: str):
        self._client = client
        self._key = key

    async def publish(self, message: NotificationMessage) -> None:
        await self._client.lpush(self._key, message.to_json())

    async def consume(self, timeout: float = 1.0) -> Optional[NotificationMessage]:
        item = await self._client.brpop([self._key], timeout=timeout)
        if item is None:
            return None
        _, raw = item
        try:
            return NotificationMessage.from_json(raw)
        except (ValueError, KeyError) as e:
            logger.error("notification_message_malformed", error=str(e), raw=raw[:200])
            return None
