"""
In-process notification queue backed by asyncio.Queue.
"""

import asyncio
from typing import Optional

from eventhub.services.interfaces.notification_queue import NotificationMessage, NotificationQueue


class MemoryNotificationQueue(NotificationQueue):
    """
    Use when:
    - Single process deployment
    - Tests and local development
    Messages still queued at shutdown are lost.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def publish(self, message: NotificationMessage) -> None:
        self._queue.put_nowait(message)

    async def consume(self, timeout: float = 1.0) -> Optional[NotificationMessage]:
        try:
            return await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None
