"""
Event lifecycle: create, edit, publish and other status changes, cancel,
complete and delete.

Status changes go through EventStatus.transition_to. The SOLD_OUT/PUBLISHED
flip driven by inventory is not done here; it belongs to the ledger's
recompute. Edits and cancellations lock the event row first so they
serialize with concurrent bookings on the same event.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.clock import as_utc
from eventhub.core.exceptions import InvalidTransitionError, ValidationFailedError
from eventhub.core.logging import get_logger
from eventhub.core.metrics import batch_job_runs, record_batch_item, record_transition
from eventhub.core.permissions import require_admin, require_event_manager, require_organizer_role
from eventhub.db.session import unit_of_work
from eventhub.models.booking import Booking
from eventhub.models.enums import NotificationType
from eventhub.models.event import Event
from eventhub.models.resource import EventResource
from eventhub.models.status import HOLDING_STATUSES, BookingStatus, EventStatus
from eventhub.schemas.event import EventCreate, EventUpdate
from eventhub.services.base import DomainService, reject_nulls
from eventhub.services.booking_service import CENTS
from eventhub.services.ledger import InventoryLedger

logger = get_logger(__name__)

MAX_CAPACITY = 100000

# Changes to these fields are announced to ticket holders
ANNOUNCED_FIELDS = ("start_date", "end_date", "location", "venue_address", "price")

# NOT NULL columns that a partial update may leave out but never clear
REQUIRED_FIELDS = frozenset({
    "title", "start_date", "end_date", "capacity", "price",
    "requires_approval", "is_public", "max_tickets_per_user",
})


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


class EventService(DomainService):
    def __init__(self, *args, ledger: Optional[InventoryLedger] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.ledger = ledger or InventoryLedger()

    async def _locked_event(self, db: AsyncSession, event_id: int) -> Event:
        event = (
            await db.execute(select(Event).where(Event.id == event_id).with_for_update())
        ).scalar_one_or_none()
        if event is None:
            return await self._event(db, event_id)
        return event

    def _validate(self, event: Event, now: datetime, check_start_in_future: bool) -> None:
        if not event.title or not event.title.strip():
            raise ValidationFailedError("Event title is required")
        if event.start_date is None or event.end_date is None:
            raise ValidationFailedError("Event start and end dates are required")
        if event.start_date >= event.end_date:
            raise ValidationFailedError("Event start date must be before its end date")
        if check_start_in_future and event.start_date <= now:
            raise ValidationFailedError("Event start date cannot be in the past")
        if event.capacity is None or not 0 < event.capacity <= MAX_CAPACITY:
            raise ValidationFailedError(f"Event capacity must be between 1 and {MAX_CAPACITY}")
        if Decimal(event.price) < 0:
            raise ValidationFailedError("Event price cannot be negative")
        if event.max_tickets_per_user is None or event.max_tickets_per_user < 1:
            raise ValidationFailedError("Max tickets per user must be at least 1")
        if event.booking_deadline is not None and event.booking_deadline > event.start_date:
            raise ValidationFailedError("Booking deadline must not be after the event start")
        if event.cancellation_deadline is not None and event.cancellation_deadline > event.start_date:
            raise ValidationFailedError("Cancellation deadline must not be after the event start")

    async def _holder_ids(self, db: AsyncSession, event_id: int) -> list[int]:
        result = await db.execute(
            select(Booking.user_id)
            .where(Booking.event_id == event_id, Booking.status.in_(HOLDING_STATUSES))
            .distinct()
        )
        return list(result.scalars().all())

    async def create_event(self, data: EventCreate, organizer_id: int) -> Event:
        now = self.clock.now()
        async with unit_of_work(self.session_factory) as db:
            organizer = await self._actor(db, organizer_id)
            require_organizer_role(organizer)

            event = Event(
                title=data.title.strip(),
                description=data.description,
                category=data.category,
                location=data.location,
                venue_address=data.venue_address,
                start_date=as_utc(data.start_date),
                end_date=as_utc(data.end_date),
                capacity=data.capacity,
                available_tickets=data.capacity,
                price=Decimal(data.price).quantize(CENTS),
                status=EventStatus.DRAFT,
                requires_approval=data.requires_approval,
                is_public=data.is_public,
                max_tickets_per_user=data.max_tickets_per_user,
                booking_deadline=_optional_utc(data.booking_deadline),
                cancellation_deadline=_optional_utc(data.cancellation_deadline),
                organizer_id=organizer.id,
            )
            self._validate(event, now, check_start_in_future=True)
            db.add(event)

        logger.info("event_created", event_id=event.id, title=event.title, capacity=event.capacity)
        return event

    async def update_event(self, event_id: int, changes: EventUpdate, actor_id: int) -> Event:
        now = self.clock.now()
        updates = changes.model_dump(exclude_unset=True)
        reject_nulls(updates, REQUIRED_FIELDS, "Event")
        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            event = await self._locked_event(db, event_id)
            require_event_manager(actor, event, "edit this event")
            if not event.status.is_editable:
                raise InvalidTransitionError(
                    f"Event {event_id} cannot be edited in status {event.status.value}"
                )

            announced = {
                field: updates[field]
                for field in ANNOUNCED_FIELDS
                if field in updates and updates[field] != getattr(event, field)
            }
            new_capacity = updates.pop("capacity", None)
            held = await self.ledger.held_tickets(db, event.id) if new_capacity is not None else 0

            for field, value in updates.items():
                if field == "title":
                    value = value.strip()
                elif field == "price":
                    value = Decimal(value).quantize(CENTS)
                elif isinstance(value, datetime):
                    value = as_utc(value)
                setattr(event, field, value)

            if new_capacity is not None and new_capacity != event.capacity:
                if new_capacity < held:
                    raise ValidationFailedError(
                        f"Capacity cannot drop below the {held} tickets already booked"
                    )
                event.capacity = new_capacity
                event.available_tickets = new_capacity - held

            self._validate(event, now, check_start_in_future="start_date" in updates)
            await db.flush()
            if new_capacity is not None:
                await self.ledger.recompute(db, event.id)
            holders = await self._holder_ids(db, event.id) if announced else []

        logger.info("event_updated", event_id=event.id, fields=sorted(changes.model_fields_set))
        if announced:
            summary = ", ".join(sorted(announced))
            for user_id in holders:
                await self.notifier.send(
                    NotificationType.EVENT_UPDATE,
                    user_id,
                    {"event_id": event.id, "event_title": event.title, "changes": summary},
                )
        return event

    async def change_status(self, event_id: int, new_status: EventStatus, actor_id: int) -> Event:
        new_status = EventStatus(new_status)
        if new_status is EventStatus.CANCELLED:
            return await self.cancel_event(event_id, actor_id)

        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            event = await self._locked_event(db, event_id)
            require_event_manager(actor, event, "change the status of this event")
            if (
                event.status is EventStatus.PENDING_APPROVAL
                and new_status is EventStatus.PUBLISHED
            ):
                require_admin(actor, "approve events awaiting approval")

            previous = event.status
            event.status = event.status.transition_to(new_status)
            if new_status is EventStatus.PUBLISHED:
                # Reopening a paused/postponed event must respect the current inventory
                await db.flush()
                await self.ledger.recompute(db, event.id)

        record_transition("event", new_status.value)
        logger.info(
            "event_status_changed",
            event_id=event.id,
            from_status=previous.value,
            to_status=event.status.value,
            actor_id=actor_id,
        )
        return event

    async def publish_event(self, event_id: int, actor_id: int) -> Event:
        return await self.change_status(event_id, EventStatus.PUBLISHED, actor_id)

    async def cancel_event(self, event_id: int, actor_id: int, reason: Optional[str] = None) -> Event:
        """
        Cancel the event and every booking still holding tickets for it.
        Paid bookings go to REFUND_PENDING with a full refund.
        """
        now = self.clock.now()
        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            event = await self._locked_event(db, event_id)
            require_event_manager(actor, event, "cancel this event")
            event.status = event.status.transition_to(EventStatus.CANCELLED)

            bookings = list(
                (
                    await db.execute(
                        select(Booking).where(
                            Booking.event_id == event.id,
                            Booking.status.in_(HOLDING_STATUSES),
                        )
                    )
                ).scalars()
            )
            affected = []
            for booking in bookings:
                self._transition(booking, BookingStatus.CANCELLED)
                booking.cancellation_date = now
                booking.cancellation_reason = reason or "Event cancelled"
                if Decimal(booking.total_price) > 0:
                    self._transition(booking, BookingStatus.REFUND_PENDING)
                    booking.refund_amount = Decimal(booking.total_price)
                affected.append((booking.user_id, booking.id, booking.booking_code))

            await self.ledger.recompute(db, event.id)

        record_transition("event", EventStatus.CANCELLED.value)
        logger.info(
            "event_cancelled",
            event_id=event.id,
            actor_id=actor_id,
            bookings_cancelled=len(affected),
        )
        for user_id, booking_id, booking_code in affected:
            await self.notifier.send(
                NotificationType.EVENT_CANCELLATION,
                user_id,
                {
                    "event_id": event.id,
                    "event_title": event.title,
                    "booking_id": booking_id,
                    "booking_code": booking_code,
                    "reason": reason,
                },
            )
        return event

    async def delete_event(self, event_id: int, actor_id: int) -> None:
        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            event = await self._locked_event(db, event_id)
            require_event_manager(actor, event, "delete this event")

            if await self.ledger.held_tickets(db, event.id) > 0:
                raise ValidationFailedError("Cannot delete an event with active bookings")

            await db.execute(delete(Booking).where(Booking.event_id == event.id))
            await db.execute(delete(EventResource).where(EventResource.event_id == event.id))
            await db.delete(event)

        logger.info("event_deleted", event_id=event_id, actor_id=actor_id)

    async def process_finished_events(self) -> int:
        """
        Complete PUBLISHED/SOLD_OUT events whose end date has passed and mark
        their still-CONFIRMED bookings as NO_SHOW. One unit of work per event;
        failures are logged and skipped.
        """
        job = "finish_events"
        now = self.clock.now()
        async with unit_of_work(self.session_factory) as db:
            candidates = list(
                (
                    await db.execute(
                        select(Event.id).where(
                            Event.status.in_([EventStatus.PUBLISHED, EventStatus.SOLD_OUT]),
                            Event.end_date <= now,
                        )
                    )
                ).scalars()
            )

        completed = 0
        for event_id in candidates:
            try:
                no_shows = await self._complete_one(event_id, now)
            except Exception as e:
                record_batch_item(job, ok=False)
                logger.error("finish_events_item_failed", event_id=event_id, error=str(e))
                continue
            if no_shows is not None:
                completed += 1
                record_batch_item(job, ok=True)

        batch_job_runs.labels(job=job, result="ok").inc()
        logger.info("finish_events_completed", candidates=len(candidates), completed=completed)
        return completed

    async def _complete_one(self, event_id: int, now: datetime) -> Optional[int]:
        async with unit_of_work(self.session_factory) as db:
            event = await self._locked_event(db, event_id)
            if not event.status.is_active or event.end_date > now:
                return None
            event.status = event.status.transition_to(EventStatus.COMPLETED)

            bookings = (
                await db.execute(
                    select(Booking).where(
                        Booking.event_id == event.id,
                        Booking.status == BookingStatus.CONFIRMED,
                    )
                )
            ).scalars()
            no_shows = 0
            for booking in bookings:
                self._transition(booking, BookingStatus.NO_SHOW)
                no_shows += 1

        record_transition("event", EventStatus.COMPLETED.value)
        logger.info("event_completed", event_id=event_id, no_shows=no_shows)
        return no_shows

    async def get_event(self, event_id: int) -> Event:
        async with unit_of_work(self.session_factory) as db:
            return await self._event(db, event_id)

    async def list_events(
        self,
        page: int = 1,
        page_size: int = 20,
        upcoming_only: bool = True,
    ) -> tuple[list[Event], int]:
        """Public listing: published or sold-out public events, soonest first."""
        query = select(Event).where(
            Event.is_public.is_(True),
            Event.status.in_([EventStatus.PUBLISHED, EventStatus.SOLD_OUT]),
        )
        if upcoming_only:
            query = query.where(Event.start_date >= self.clock.now())

        async with unit_of_work(self.session_factory) as db:
            total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar()
            result = await db.execute(
                query.order_by(Event.start_date.asc(), Event.id.asc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            return list(result.scalars().all()), total
