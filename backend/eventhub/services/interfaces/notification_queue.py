"""
Notification queue interface.
Decouples the transactional core from notification delivery: services
publish a message after commit, a separate consumer delivers it.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from eventhub.models.enums import NotificationType


@dataclass(frozen=True)
class NotificationMessage:
    kind: NotificationType
    recipient_id: int
    payload: dict = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "kind": self.kind.value,
                "recipient_id": self.recipient_id,
                "payload": {k: _jsonable(v) for k, v in self.payload.items()},
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "NotificationMessage":
        data = json.loads(raw)
        return cls(
            kind=NotificationType(data["kind"]),
            recipient_id=int(data["recipient_id"]),
            payload=data.get("payload") or {},
        )


def _jsonable(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    return value


class NotificationQueue(ABC):
    """
    Interface for notification transport.

    Implementations:
    - MemoryNotificationQueue: in-process asyncio.Queue (single node, tests)
    - RedisNotificationQueue: Redis list, survives restarts of the consumer
    """

    @abstractmethod
    async def publish(self, message: NotificationMessage) -> None:
        """Enqueue a message. Raises on transport failure."""

    @abstractmethod
    async def consume(self, timeout: float = 1.0) -> Optional[NotificationMessage]:
        """
        Take the next message.

        Returns None when nothing arrived within `timeout` seconds.
        """

    async def close(self) -> None:
        pass
