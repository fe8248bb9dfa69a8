"""
Inventory ledger: owner of Event.available_tickets.

CONCURRENCY STRATEGY: Conditional decrement + row lock
=======================================================

Problem:
  Two users try to book the last ticket simultaneously.
  Both read available_tickets=1, both decrement to 0, both succeed.
  Result: Oversell.

Solution:
  reserve() never reads before it writes. It issues one statement

    UPDATE events SET available_tickets = available_tickets - :qty,
                      version = version + 1
    WHERE id = :event_id AND available_tickets >= :qty

  and checks the affected row count. Zero rows means there was not enough
  inventory at the moment the database evaluated the predicate, so the
  booking fails with InsufficientInventoryError. The UPDATE also takes the
  event's row lock, which is then held until the caller's unit of work ends.

  release() adds tickets back in a single statement clamped to capacity, so
  a double release can never push availability above capacity.

  recompute() takes the same row lock (SELECT ... FOR UPDATE), derives
  availability from the bookings that hold inventory, and applies the
  SOLD_OUT / PUBLISHED cascade.

  Every ledger write on an event therefore serializes on that event's row,
  and the CHECK constraints on the events table are the final safety net.

Holding bookings are PENDING and CONFIRMED. A PENDING booking reserved its
tickets at creation; leaving it out of recompute would hand those tickets
back and let a later booking oversell while approval is pending.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.exceptions import (
    InsufficientInventoryError,
    NotFoundError,
    ValidationFailedError,
)
from eventhub.core.logging import get_logger
from eventhub.core.metrics import ledger_recomputes, record_reservation, record_transition
from eventhub.models.booking import Booking
from eventhub.models.event import Event
from eventhub.models.status import HOLDING_STATUSES, EventStatus

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerSnapshot:
    """Inventory state of one event after a recompute."""

    event_id: int
    capacity: int
    available: int
    status: EventStatus
    previous_status: EventStatus

    @property
    def sold_out_now(self) -> bool:
        return self.status is EventStatus.SOLD_OUT and self.previous_status is not EventStatus.SOLD_OUT

    @property
    def reopened_now(self) -> bool:
        return self.previous_status is EventStatus.SOLD_OUT and self.status is EventStatus.PUBLISHED


class InventoryLedger:
    """All methods run inside the caller's session and transaction."""

    async def reserve(self, db: AsyncSession, event_id: int, qty: int) -> None:
        if qty <= 0:
            raise ValidationFailedError("Ticket quantity must be positive")

        result = await db.execute(
            update(Event)
            .where(Event.id == event_id, Event.available_tickets >= qty)
            .values(
                available_tickets=Event.available_tickets - qty,
                version=Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )

        if result.rowcount == 0:
            available = await db.scalar(
                select(Event.available_tickets).where(Event.id == event_id)
            )
            if available is None:
                raise NotFoundError.for_entity("Event", event_id)
            record_reservation(reserved=False)
            logger.warning(
                "ledger_reserve_rejected",
                event_id=event_id,
                requested=qty,
                available=available,
            )
            raise InsufficientInventoryError(event_id, qty, available)

        record_reservation(reserved=True)
        logger.debug("ledger_reserved", event_id=event_id, qty=qty)

    async def release(self, db: AsyncSession, event_id: int, qty: int) -> None:
        if qty <= 0:
            raise ValidationFailedError("Ticket quantity must be positive")

        restored = Event.available_tickets + qty
        result = await db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(
                available_tickets=case(
                    (restored > Event.capacity, Event.capacity),
                    else_=restored,
                ),
                version=Event.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise NotFoundError.for_entity("Event", event_id)

        logger.debug("ledger_released", event_id=event_id, qty=qty)

    async def held_tickets(
        self,
        db: AsyncSession,
        event_id: int,
        user_id: Optional[int] = None,
    ) -> int:
        """Tickets held by PENDING/CONFIRMED bookings, optionally for one user."""
        query = select(func.coalesce(func.sum(Booking.ticket_quantity), 0)).where(
            Booking.event_id == event_id,
            Booking.status.in_(HOLDING_STATUSES),
        )
        if user_id is not None:
            query = query.where(Booking.user_id == user_id)
        return int(await db.scalar(query))

    async def recompute(self, db: AsyncSession, event_id: int) -> LedgerSnapshot:
        # Pending ORM changes (new or transitioned bookings) must be visible to the SUM
        await db.flush()

        event = (
            await db.execute(
                select(Event)
                .where(Event.id == event_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
        ).scalar_one_or_none()
        if event is None:
            raise NotFoundError.for_entity("Event", event_id)

        held = await self.held_tickets(db, event_id)
        available = max(0, event.capacity - held)
        previous_status = event.status

        event.available_tickets = available
        event.version = event.version + 1

        cascade = "none"
        if available == 0 and event.status is EventStatus.PUBLISHED:
            event.status = event.status.transition_to(EventStatus.SOLD_OUT)
            cascade = "sold_out"
        elif available > 0 and event.status is EventStatus.SOLD_OUT:
            event.status = event.status.transition_to(EventStatus.PUBLISHED)
            cascade = "reopened"

        await db.flush()
        ledger_recomputes.labels(cascade=cascade).inc()

        if cascade != "none":
            record_transition("event", event.status.value)
            logger.info(
                "event_inventory_status_changed",
                event_id=event_id,
                from_status=previous_status.value,
                to_status=event.status.value,
                available=available,
            )

        return LedgerSnapshot(
            event_id=event.id,
            capacity=event.capacity,
            available=available,
            status=event.status,
            previous_status=previous_status,
        )
