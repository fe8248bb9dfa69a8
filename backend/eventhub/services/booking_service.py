"""
Booking lifecycle engine: create, confirm, reject, cancel, check in, pay,
refund and expire bookings.

TRANSACTION MODEL
=================

Every public operation is one unit of work:

  1. load actor, booking and event; validate permissions and preconditions
  2. move the booking through BookingStatus.transition_to (never assign a
     status directly) and touch the inventory ledger when tickets change hands
  3. commit
  4. only then enqueue notifications through the Notifier

Inventory:
  create_booking reserves through the ledger's conditional decrement before
  the booking row exists, so two requests for the last ticket cannot both
  succeed. The per-user cumulative limit is checked after the reserve, i.e.
  while the event row is locked, so two parallel requests from one user are
  serialized as well.

Booking rows carry an optimistic `version` column. Two writers racing on the
same booking (e.g. organizer confirms while the expiry sweep expires) cannot
both win: the loser's UPDATE matches no row, the unit of work rolls back and
the caller gets ConcurrentModificationError.

Refund policy (whole hours until event start at cancellation time):
  < 48h  -> 50% of total_price
  < 168h -> 80%
  else   -> 100%
"""

import time
import uuid
from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from eventhub.core.config import Settings
from eventhub.core.exceptions import (
    CannotCheckInError,
    ConcurrentModificationError,
    DeadlinePassedError,
    DomainError,
    EventNotBookableError,
    ForbiddenError,
    InsufficientInventoryError,
    InvalidQuantityError,
    NotCancellableError,
    NotFoundError,
    NotPendingError,
    NotRefundPendingError,
    OrganizerSelfBookingError,
    PaymentNotRequiredError,
    ValidationFailedError,
)
from eventhub.core.logging import get_logger
from eventhub.core.metrics import (
    batch_job_runs,
    booking_latency,
    record_batch_item,
    record_booking_operation,
    record_transition,
)
from eventhub.core.permissions import can_check_in, can_manage_event, require_event_manager
from eventhub.db.session import unit_of_work
from eventhub.models.booking import Booking
from eventhub.models.enums import NotificationType
from eventhub.models.event import Event
from eventhub.models.status import BookingStatus, EventStatus
from eventhub.services.base import DomainService
from eventhub.services.ledger import InventoryLedger, LedgerSnapshot

logger = get_logger(__name__)

CENTS = Decimal("0.01")


def generate_booking_code() -> str:
    return "BK-" + uuid.uuid4().hex[:8].upper()


def qr_code_for(booking: Booking) -> str:
    return f"QR-{booking.booking_code}-{booking.id}"


def hours_until(moment: datetime, now: datetime) -> int:
    """Whole hours from `now` to `moment`, truncated toward zero."""
    return int((moment - now).total_seconds() / 3600)


def calculate_refund_amount(total_price: Decimal, hours_until_start: int, settings: Settings) -> Decimal:
    total = Decimal(total_price)
    if hours_until_start < settings.REFUND_HALF_WINDOW_HOURS:
        amount = total * settings.REFUND_HALF_RATE
    elif hours_until_start < settings.REFUND_PARTIAL_WINDOW_HOURS:
        amount = total * settings.REFUND_PARTIAL_RATE
    else:
        amount = total
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


def cancellation_cutoff(event: Event, settings: Settings) -> datetime:
    if event.cancellation_deadline is not None:
        return event.cancellation_deadline
    return event.start_date - timedelta(hours=settings.CANCELLATION_CUTOFF_HOURS)


def can_be_cancelled(booking: Booking, event: Event, now: datetime, settings: Settings) -> bool:
    if not booking.status.is_cancellable:
        return False
    return now < cancellation_cutoff(event, settings)


def should_process_refund(booking: Booking, event: Event, now: datetime, settings: Settings) -> bool:
    if Decimal(booking.total_price) <= 0:
        return False
    return now < cancellation_cutoff(event, settings)


def can_check_in_now(booking: Booking, event: Event, now: datetime, settings: Settings) -> bool:
    opens = event.start_date - timedelta(hours=settings.CHECK_IN_OPENS_HOURS)
    return (
        booking.status.allows_check_in
        and booking.check_in_date is None
        and opens <= now < event.end_date
    )


def _booking_payload(booking: Booking, event: Event, **extra) -> dict:
    payload = {
        "booking_id": booking.id,
        "booking_code": booking.booking_code,
        "event_id": event.id,
        "event_title": event.title,
        "ticket_quantity": booking.ticket_quantity,
        "total_price": booking.total_price,
        "refund_amount": booking.refund_amount,
    }
    payload.update(extra)
    return payload


class BookingService(DomainService):
    def __init__(self, *args, ledger: Optional[InventoryLedger] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.ledger = ledger or InventoryLedger()

    # ------------------------------------------------------------------
    # helpers

    async def _booking(self, db: AsyncSession, booking_id: int) -> Booking:
        return await self._get(db, Booking, booking_id, "Booking")

    async def _booking_by_code(self, db: AsyncSession, booking_code: str) -> Booking:
        booking = (
            await db.execute(select(Booking).where(Booking.booking_code == booking_code))
        ).scalar_one_or_none()
        if booking is None:
            raise NotFoundError.for_entity("Booking", booking_code)
        return booking

    async def _notify_sold_out(self, event: Event, snapshot: Optional[LedgerSnapshot]) -> None:
        if snapshot is not None and snapshot.sold_out_now:
            await self.notifier.send(
                NotificationType.SOLD_OUT,
                event.organizer_id,
                {"event_id": event.id, "event_title": event.title},
            )

    def _observe(self, operation: str, started: float, error: Optional[Exception] = None) -> None:
        booking_latency.labels(operation=operation).observe(time.perf_counter() - started)
        if error is None:
            outcome = "success"
        elif isinstance(error, (InsufficientInventoryError, ConcurrentModificationError)):
            outcome = "conflict"
        elif isinstance(error, DomainError):
            outcome = "rejected"
        else:
            outcome = "error"
        record_booking_operation(operation, outcome)

    # ------------------------------------------------------------------
    # lifecycle operations

    async def create_booking(
        self,
        event_id: int,
        user_id: int,
        qty: int,
        special_requests: Optional[str] = None,
    ) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                user = await self._actor(db, user_id)
                event = await self._event(db, event_id)

                if event.status is EventStatus.SOLD_OUT:
                    raise InsufficientInventoryError(event.id, qty, 0)
                if not event.status.is_bookable:
                    raise EventNotBookableError(
                        f"Event {event_id} is not open for booking (status {event.status.value})"
                    )
                if event.booking_deadline is not None and now > event.booking_deadline:
                    raise DeadlinePassedError(f"The booking deadline for event {event_id} has passed")
                if event.organizer_id == user.id:
                    raise OrganizerSelfBookingError("Organizers cannot book their own events")
                if qty <= 0 or qty > event.max_tickets_per_user:
                    raise InvalidQuantityError(
                        f"Ticket quantity must be between 1 and {event.max_tickets_per_user}"
                    )

                await self.ledger.reserve(db, event.id, qty)

                # Event row is locked from here until commit
                already_held = await self.ledger.held_tickets(db, event.id, user_id=user.id)
                if already_held + qty > event.max_tickets_per_user:
                    raise InvalidQuantityError(
                        f"Exceeds the limit of {event.max_tickets_per_user} tickets per user "
                        f"(already holding {already_held})"
                    )

                initial = BookingStatus.PENDING if event.requires_approval else BookingStatus.CONFIRMED
                booking = Booking(
                    booking_code=generate_booking_code(),
                    ticket_quantity=qty,
                    total_price=(Decimal(event.price) * qty).quantize(CENTS, rounding=ROUND_HALF_UP),
                    status=initial,
                    booking_date=now,
                    special_requests=special_requests,
                    user_id=user.id,
                    event_id=event.id,
                )
                db.add(booking)
                await db.flush()
                if initial is BookingStatus.CONFIRMED:
                    booking.qr_code = qr_code_for(booking)

                snapshot = await self.ledger.recompute(db, event.id)
        except Exception as e:
            self._observe("create", started, e)
            raise

        self._observe("create", started)
        record_transition("booking", booking.status.value)
        logger.info(
            "booking_created",
            booking_id=booking.id,
            booking_code=booking.booking_code,
            user_id=user_id,
            event_id=event_id,
            tickets=qty,
            status=booking.status.value,
            available=snapshot.available,
        )

        kind = (
            NotificationType.BOOKING_CONFIRMATION
            if booking.status is BookingStatus.CONFIRMED
            else NotificationType.BOOKING_PENDING
        )
        await self.notifier.send(kind, booking.user_id, _booking_payload(booking, event))
        await self._notify_sold_out(event, snapshot)
        return booking

    async def confirm_booking(self, booking_id: int, actor_id: int) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                actor = await self._actor(db, actor_id)
                booking = await self._booking(db, booking_id)
                event = await self._event(db, booking.event_id)

                require_event_manager(actor, event, "confirm bookings")
                if booking.status is not BookingStatus.PENDING:
                    raise NotPendingError("Only pending bookings can be confirmed")

                self._transition(booking, BookingStatus.CONFIRMED)
                booking.payment_date = now
                booking.qr_code = qr_code_for(booking)
        except Exception as e:
            self._observe("confirm", started, e)
            raise

        self._observe("confirm", started)
        logger.info("booking_confirmed", booking_id=booking.id, actor_id=actor_id)
        await self.notifier.send(
            NotificationType.BOOKING_CONFIRMATION, booking.user_id, _booking_payload(booking, event)
        )
        return booking

    async def reject_booking(self, booking_id: int, actor_id: int, reason: Optional[str] = None) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                actor = await self._actor(db, actor_id)
                booking = await self._booking(db, booking_id)
                event = await self._event(db, booking.event_id)

                require_event_manager(actor, event, "reject bookings")
                if booking.status is not BookingStatus.PENDING:
                    raise NotPendingError("Only pending bookings can be rejected")

                self._transition(booking, BookingStatus.REJECTED)
                booking.cancellation_date = now
                booking.cancellation_reason = reason
                await db.flush()
                await self.ledger.release(db, event.id, booking.ticket_quantity)
                snapshot = await self.ledger.recompute(db, event.id)
        except Exception as e:
            self._observe("reject", started, e)
            raise

        self._observe("reject", started)
        logger.info(
            "booking_rejected",
            booking_id=booking.id,
            actor_id=actor_id,
            available=snapshot.available,
        )
        await self.notifier.send(
            NotificationType.BOOKING_REJECTED,
            booking.user_id,
            _booking_payload(booking, event, reason=reason),
        )
        return booking

    async def cancel_booking(self, booking_id: int, actor_id: int, reason: Optional[str] = None) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                actor = await self._actor(db, actor_id)
                booking = await self._booking(db, booking_id)
                event = await self._event(db, booking.event_id)

                if booking.user_id != actor.id and not can_manage_event(actor, event):
                    raise ForbiddenError("You cannot cancel this booking")
                if not booking.status.is_cancellable:
                    raise NotCancellableError(
                        f"Booking {booking.booking_code} cannot be cancelled "
                        f"(status {booking.status.value})"
                    )
                if event.cancellation_deadline is not None and now >= event.cancellation_deadline:
                    raise DeadlinePassedError("The cancellation deadline for this event has passed")
                if not can_be_cancelled(booking, event, now, self.settings):
                    raise NotCancellableError(
                        f"Booking {booking.booking_code} can no longer be cancelled: "
                        f"cancellations close {self.settings.CANCELLATION_CUTOFF_HOURS}h before the event"
                    )

                refund = should_process_refund(booking, event, now, self.settings)
                self._transition(booking, BookingStatus.CANCELLED)
                booking.cancellation_date = now
                booking.cancellation_reason = reason
                if refund:
                    self._transition(booking, BookingStatus.REFUND_PENDING)
                    booking.refund_amount = calculate_refund_amount(
                        booking.total_price, hours_until(event.start_date, now), self.settings
                    )
                await db.flush()
                await self.ledger.release(db, event.id, booking.ticket_quantity)
                snapshot = await self.ledger.recompute(db, event.id)
        except Exception as e:
            self._observe("cancel", started, e)
            raise

        self._observe("cancel", started)
        logger.info(
            "booking_cancelled",
            booking_id=booking.id,
            actor_id=actor_id,
            status=booking.status.value,
            refund_amount=str(booking.refund_amount) if booking.refund_amount is not None else None,
            available=snapshot.available,
        )
        await self.notifier.send(
            NotificationType.BOOKING_CANCELLATION,
            booking.user_id,
            _booking_payload(booking, event, reason=reason),
        )
        return booking

    async def check_in_booking(self, booking_code: str, actor_id: int) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                actor = await self._actor(db, actor_id)
                booking = await self._booking_by_code(db, booking_code)
                event = await self._event(db, booking.event_id)

                if not can_check_in(actor, event):
                    raise ForbiddenError("Only the organizer, staff or an admin can check in attendees")
                if not can_check_in_now(booking, event, now, self.settings):
                    raise CannotCheckInError(
                        f"Booking {booking_code} cannot be checked in now "
                        f"(status {booking.status.value})"
                    )

                booking.check_in_date = now
                self._transition(booking, BookingStatus.USED)
        except Exception as e:
            self._observe("check_in", started, e)
            raise

        self._observe("check_in", started)
        logger.info("booking_checked_in", booking_id=booking.id, actor_id=actor_id)
        await self.notifier.send(
            NotificationType.CHECK_IN_SUCCESS, booking.user_id, _booking_payload(booking, event)
        )
        return booking

    async def process_payment(
        self,
        booking_id: int,
        method: str,
        reference: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                booking = await self._booking(db, booking_id)
                event = await self._event(db, booking.event_id)
                if actor_id is not None:
                    actor = await self._actor(db, actor_id)
                    if booking.user_id != actor.id and not can_manage_event(actor, event):
                        raise ForbiddenError("You cannot pay for this booking")

                if not booking.status.requires_payment:
                    raise PaymentNotRequiredError(
                        f"Booking {booking.booking_code} does not require payment "
                        f"(status {booking.status.value})"
                    )

                booking.payment_method = method
                booking.payment_reference = reference
                booking.payment_date = now
                self._transition(booking, BookingStatus.CONFIRMED)
                booking.qr_code = qr_code_for(booking)
        except Exception as e:
            self._observe("payment", started, e)
            raise

        self._observe("payment", started)
        logger.info("booking_paid", booking_id=booking.id, method=method)
        await self.notifier.send(
            NotificationType.PAYMENT_CONFIRMATION, booking.user_id, _booking_payload(booking, event)
        )
        return booking

    async def process_refund(
        self,
        booking_id: int,
        amount: Decimal,
        reference: Optional[str] = None,
        actor_id: Optional[int] = None,
    ) -> Booking:
        started = time.perf_counter()
        now = self.clock.now()
        try:
            async with unit_of_work(self.session_factory) as db:
                booking = await self._booking(db, booking_id)
                event = await self._event(db, booking.event_id)
                if actor_id is not None:
                    actor = await self._actor(db, actor_id)
                    require_event_manager(actor, event, "process refunds")

                if booking.status is not BookingStatus.REFUND_PENDING:
                    raise NotRefundPendingError(
                        f"Booking {booking.booking_code} is not awaiting a refund "
                        f"(status {booking.status.value})"
                    )
                amount = Decimal(amount)
                if amount < 0 or amount > Decimal(booking.total_price):
                    raise ValidationFailedError("Refund amount must be between 0 and the booking total")

                booking.refund_amount = amount.quantize(CENTS, rounding=ROUND_HALF_UP)
                booking.refund_reference = reference
                booking.refund_date = now
                self._transition(booking, BookingStatus.REFUNDED)
        except Exception as e:
            self._observe("refund", started, e)
            raise

        self._observe("refund", started)
        logger.info("booking_refunded", booking_id=booking.id, amount=str(booking.refund_amount))
        await self.notifier.send(
            NotificationType.REFUND_PROCESSED, booking.user_id, _booking_payload(booking, event)
        )
        return booking

    # ------------------------------------------------------------------
    # batch jobs

    async def process_expired_bookings(self) -> int:
        """
        Expire PENDING bookings older than PENDING_BOOKING_TTL_HOURS.

        Each booking is expired in its own unit of work; a failure is logged
        and the sweep moves on. Already-expired bookings are never selected,
        so running the sweep twice is the same as running it once.
        """
        job = "expire_bookings"
        cutoff = self.clock.now() - timedelta(hours=self.settings.PENDING_BOOKING_TTL_HOURS)
        async with unit_of_work(self.session_factory) as db:
            candidates = list(
                (
                    await db.execute(
                        select(Booking.id)
                        .where(
                            Booking.status == BookingStatus.PENDING,
                            Booking.booking_date < cutoff,
                        )
                        .order_by(Booking.booking_date)
                    )
                ).scalars()
            )

        expired = 0
        for booking_id in candidates:
            try:
                done = await self._expire_one(booking_id)
            except Exception as e:
                record_batch_item(job, ok=False)
                logger.error("expiry_sweep_item_failed", booking_id=booking_id, error=str(e))
                continue
            if done:
                expired += 1
                record_batch_item(job, ok=True)

        batch_job_runs.labels(job=job, result="ok").inc()
        logger.info("expiry_sweep_completed", candidates=len(candidates), expired=expired)
        return expired

    async def _expire_one(self, booking_id: int) -> bool:
        async with unit_of_work(self.session_factory) as db:
            booking = await db.get(Booking, booking_id)
            # Confirmed or cancelled since the candidate query ran
            if booking is None or booking.status is not BookingStatus.PENDING:
                return False
            event = await self._event(db, booking.event_id)

            self._transition(booking, BookingStatus.EXPIRED)
            await db.flush()
            await self.ledger.release(db, event.id, booking.ticket_quantity)
            await self.ledger.recompute(db, event.id)

        logger.info("booking_expired", booking_id=booking_id, event_id=event.id)
        await self.notifier.send(
            NotificationType.BOOKING_EXPIRED, booking.user_id, _booking_payload(booking, event)
        )
        return True

    async def send_event_reminders(self) -> int:
        """
        Remind holders of CONFIRMED bookings for events starting between
        REMINDER_WINDOW_START_HOURS and REMINDER_WINDOW_END_HOURS from now.
        Each booking is reminded at most once (reminder_sent_at).
        """
        job = "event_reminders"
        now = self.clock.now()
        window_start = now + timedelta(hours=self.settings.REMINDER_WINDOW_START_HOURS)
        window_end = now + timedelta(hours=self.settings.REMINDER_WINDOW_END_HOURS)

        async with unit_of_work(self.session_factory) as db:
            candidates = list(
                (
                    await db.execute(
                        select(Booking.id)
                        .join(Event, Event.id == Booking.event_id)
                        .where(
                            Booking.status == BookingStatus.CONFIRMED,
                            Booking.reminder_sent_at.is_(None),
                            Event.start_date >= window_start,
                            Event.start_date <= window_end,
                        )
                    )
                ).scalars()
            )

        sent = 0
        for booking_id in candidates:
            try:
                async with unit_of_work(self.session_factory) as db:
                    booking = await db.get(Booking, booking_id)
                    if booking is None or booking.reminder_sent_at is not None:
                        continue
                    event = await self._event(db, booking.event_id)
                    booking.reminder_sent_at = now
            except Exception as e:
                record_batch_item(job, ok=False)
                logger.error("reminder_item_failed", booking_id=booking_id, error=str(e))
                continue

            await self.notifier.send(
                NotificationType.EVENT_REMINDER,
                booking.user_id,
                _booking_payload(booking, event, start_date=event.start_date),
            )
            record_batch_item(job, ok=True)
            sent += 1

        batch_job_runs.labels(job=job, result="ok").inc()
        logger.info("event_reminders_sent", candidates=len(candidates), sent=sent)
        return sent

    # ------------------------------------------------------------------
    # queries

    async def get_booking(self, booking_id: int, actor_id: int) -> Booking:
        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            booking = await self._booking(db, booking_id)
            if booking.user_id != actor.id:
                event = await self._event(db, booking.event_id)
                if not can_manage_event(actor, event):
                    raise ForbiddenError("You cannot view this booking")
        return booking

    async def get_booking_by_code(self, booking_code: str) -> Booking:
        async with unit_of_work(self.session_factory) as db:
            return await self._booking_by_code(db, booking_code)

    async def list_user_bookings(self, user_id: int) -> list[Booking]:
        async with unit_of_work(self.session_factory) as db:
            result = await db.execute(
                select(Booking)
                .where(Booking.user_id == user_id)
                .order_by(Booking.booking_date.desc(), Booking.id.desc())
            )
            return list(result.scalars().all())

    async def list_event_bookings(
        self,
        event_id: int,
        actor_id: int,
        status: Optional[BookingStatus] = None,
    ) -> list[Booking]:
        async with unit_of_work(self.session_factory) as db:
            actor = await self._actor(db, actor_id)
            event = await self._event(db, event_id)
            require_event_manager(actor, event, "list the bookings of this event")

            query = select(Booking).where(Booking.event_id == event_id)
            if status is not None:
                query = query.where(Booking.status == status)
            result = await db.execute(query.order_by(Booking.booking_date, Booking.id))
            return list(result.scalars().all())
