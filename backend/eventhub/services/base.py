"""
Shared plumbing for the domain services: collaborators and row lookups.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from eventhub.core.clock import Clock, SystemClock
from eventhub.core.config import Settings, get_settings
from eventhub.core.exceptions import NotFoundError, ValidationFailedError
from eventhub.core.metrics import record_transition
from eventhub.db.session import AsyncSessionLocal
from eventhub.models.booking import Booking
from eventhub.models.event import Event
from eventhub.models.status import BookingStatus
from eventhub.models.user import User
from eventhub.services.notification_service import Notifier


class DomainService:
    """
    Each public operation of a subclass opens one unit of work on
    `session_factory`, commits, and only then calls the notifier.
    """

    def __init__(
        self,
        notifier: Notifier,
        session_factory: async_sessionmaker = AsyncSessionLocal,
        clock: Optional[Clock] = None,
        settings: Optional[Settings] = None,
    ):
        self.notifier = notifier
        self.session_factory = session_factory
        self.clock = clock or SystemClock()
        self.settings = settings or get_settings()

    def _transition(self, booking: Booking, target: BookingStatus) -> None:
        booking.status = booking.status.transition_to(target)
        record_transition("booking", target.value)

    @staticmethod
    async def _get(db: AsyncSession, model: type, key: int, label: str):
        row = await db.get(model, key)
        if row is None:
            raise NotFoundError.for_entity(label, key)
        return row

    async def _actor(self, db: AsyncSession, user_id: int) -> User:
        return await self._get(db, User, user_id, "User")

    async def _event(self, db: AsyncSession, event_id: int) -> Event:
        return await self._get(db, Event, event_id, "Event")


def reject_nulls(updates: dict, required: frozenset, entity: str) -> None:
    """Partial updates may omit a required field but not set it to null."""
    nulled = sorted(field for field in required if field in updates and updates[field] is None)
    if nulled:
        raise ValidationFailedError(f"{entity} fields cannot be null: {', '.join(nulled)}")
