"""
Tests for the booking lifecycle engine, including concurrency scenarios.
"""

import asyncio
from datetime import timedelta
from decimal import Decimal

import pytest

from eventhub.core.exceptions import (
    CannotCheckInError,
    ConcurrentModificationError,
    DeadlinePassedError,
    EventNotBookableError,
    ForbiddenError,
    InsufficientInventoryError,
    InvalidQuantityError,
    NotCancellableError,
    NotPendingError,
    NotFoundError,
    NotRefundPendingError,
    OrganizerSelfBookingError,
    PaymentNotRequiredError,
)
from eventhub.db.session import unit_of_work
from eventhub.models.booking import Booking
from eventhub.models.enums import NotificationType
from eventhub.models.event import Event
from eventhub.models.status import BookingStatus, EventStatus
from eventhub.services.booking_service import calculate_refund_amount


@pytest.mark.asyncio
async def test_book_and_cancel_with_full_refund(services, make_event, customer, reload):
    """Capacity 10 at 20.00: book 3, cancel well ahead of the event, get everything back."""
    event = await make_event(capacity=10, price="20.00")

    booking = await services.bookings.create_booking(event.id, customer.id, 3)
    assert booking.status is BookingStatus.CONFIRMED
    assert booking.total_price == Decimal("60.00")
    assert booking.booking_code.startswith("BK-")
    assert (await reload(Event, event.id)).available_tickets == 7

    cancelled = await services.bookings.cancel_booking(booking.id, customer.id, "Change of plans")
    assert cancelled.status is BookingStatus.REFUND_PENDING
    assert cancelled.refund_amount == Decimal("60.00")
    assert cancelled.cancellation_date is not None
    assert (await reload(Event, event.id)).available_tickets == 10


@pytest.mark.asyncio
async def test_approval_flow(services, make_event, organizer, customer):
    event = await make_event(requires_approval=True)

    booking = await services.bookings.create_booking(event.id, customer.id, 2)
    assert booking.status is BookingStatus.PENDING
    assert booking.qr_code is None

    confirmed = await services.bookings.confirm_booking(booking.id, organizer.id)
    assert confirmed.status is BookingStatus.CONFIRMED
    assert confirmed.qr_code == f"QR-{booking.booking_code}-{booking.id}"
    assert confirmed.payment_date is not None


@pytest.mark.asyncio
async def test_pending_booking_holds_inventory(services, make_event, customer, other_customer):
    """Tickets reserved by a PENDING booking are not handed to someone else."""
    event = await make_event(capacity=2, requires_approval=True)
    await services.bookings.create_booking(event.id, customer.id, 2)

    with pytest.raises(InsufficientInventoryError):
        await services.bookings.create_booking(event.id, other_customer.id, 1)


@pytest.mark.asyncio
async def test_no_oversell_under_concurrency(services, make_event, make_user, reload):
    """Gathered single-ticket bookings for the last ticket: exactly one wins.

    The service pool has one connection, so this covers the booking path end
    to end; the interleaved race lives in test_ledger.
    """
    event = await make_event(capacity=1)
    users = [await make_user() for _ in range(8)]

    results = await asyncio.gather(
        *(services.bookings.create_booking(event.id, u.id, 1) for u in users),
        return_exceptions=True,
    )

    succeeded = [r for r in results if isinstance(r, Booking)]
    failed = [r for r in results if isinstance(r, Exception)]
    assert len(succeeded) == 1
    assert len(failed) == 7
    assert all(isinstance(e, InsufficientInventoryError) for e in failed)

    stored = await reload(Event, event.id)
    assert stored.available_tickets == 0
    assert stored.status is EventStatus.SOLD_OUT


@pytest.mark.parametrize(
    "hours_before,expected",
    [(40, Decimal("50.00")), (100, Decimal("80.00")), (200, Decimal("100.00"))],
)
@pytest.mark.asyncio
async def test_refund_tiers(services, make_event, customer, clock, hours_before, expected):
    event = await make_event(price="100.00", starts_in=timedelta(days=10))
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    clock.set(event.start_date - timedelta(hours=hours_before))
    cancelled = await services.bookings.cancel_booking(booking.id, customer.id)

    assert cancelled.status is BookingStatus.REFUND_PENDING
    assert cancelled.refund_amount == expected


def test_refund_amount_rounding(settings):
    assert calculate_refund_amount(Decimal("33.33"), 10, settings) == Decimal("16.67")
    assert calculate_refund_amount(Decimal("0.00"), 10, settings) == Decimal("0.00")


@pytest.mark.asyncio
async def test_free_booking_cancels_without_refund(services, make_event, customer):
    event = await make_event(price="0.00")
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    cancelled = await services.bookings.cancel_booking(booking.id, customer.id)
    assert cancelled.status is BookingStatus.CANCELLED
    assert cancelled.refund_amount is None


@pytest.mark.asyncio
async def test_cancel_inside_default_cutoff_fails(services, make_event, customer, clock):
    event = await make_event()
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    clock.set(event.start_date - timedelta(hours=10))
    with pytest.raises(NotCancellableError):
        await services.bookings.cancel_booking(booking.id, customer.id)


@pytest.mark.asyncio
async def test_cancel_after_explicit_deadline_fails(services, make_event, customer, clock):
    event = await make_event(
        starts_in=timedelta(days=10),
        cancellation_deadline=clock.now() + timedelta(days=2),
    )
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    clock.advance(days=3)
    with pytest.raises(DeadlinePassedError):
        await services.bookings.cancel_booking(booking.id, customer.id)


@pytest.mark.asyncio
async def test_cancel_twice_fails(services, make_event, customer):
    event = await make_event()
    booking = await services.bookings.create_booking(event.id, customer.id, 1)
    await services.bookings.cancel_booking(booking.id, customer.id)

    with pytest.raises(NotCancellableError):
        await services.bookings.cancel_booking(booking.id, customer.id)


@pytest.mark.asyncio
async def test_only_owner_or_organizer_may_cancel(
    services, make_event, customer, other_customer, organizer
):
    event = await make_event()
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    with pytest.raises(ForbiddenError):
        await services.bookings.cancel_booking(booking.id, other_customer.id)

    cancelled = await services.bookings.cancel_booking(booking.id, organizer.id, "Venue change")
    assert cancelled.cancellation_reason == "Venue change"


@pytest.mark.asyncio
async def test_create_booking_preconditions(services, make_event, customer, organizer, clock):
    draft = await make_event(publish=False)
    with pytest.raises(EventNotBookableError):
        await services.bookings.create_booking(draft.id, customer.id, 1)

    event = await make_event(max_tickets_per_user=4, booking_deadline=clock.now() + timedelta(days=1))
    with pytest.raises(OrganizerSelfBookingError):
        await services.bookings.create_booking(event.id, organizer.id, 1)
    with pytest.raises(InvalidQuantityError):
        await services.bookings.create_booking(event.id, customer.id, 0)
    with pytest.raises(InvalidQuantityError):
        await services.bookings.create_booking(event.id, customer.id, 5)

    clock.advance(days=2)
    with pytest.raises(DeadlinePassedError):
        await services.bookings.create_booking(event.id, customer.id, 1)


@pytest.mark.asyncio
async def test_per_user_limit_is_cumulative(services, make_event, customer, reload):
    event = await make_event(capacity=50, max_tickets_per_user=4)
    await services.bookings.create_booking(event.id, customer.id, 3)

    with pytest.raises(InvalidQuantityError):
        await services.bookings.create_booking(event.id, customer.id, 2)

    # The rejected reservation was rolled back with the unit of work
    assert (await reload(Event, event.id)).available_tickets == 47
    second = await services.bookings.create_booking(event.id, customer.id, 1)
    assert second.status is BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_reject_releases_inventory(services, make_event, organizer, customer, reload):
    event = await make_event(capacity=5, requires_approval=True)
    booking = await services.bookings.create_booking(event.id, customer.id, 3)

    rejected = await services.bookings.reject_booking(booking.id, organizer.id, "Guest list full")
    assert rejected.status is BookingStatus.REJECTED
    assert (await reload(Event, event.id)).available_tickets == 5

    with pytest.raises(NotPendingError):
        await services.bookings.confirm_booking(booking.id, organizer.id)


@pytest.mark.asyncio
async def test_confirm_requires_organizer(services, make_event, customer, other_customer):
    event = await make_event(requires_approval=True)
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    with pytest.raises(ForbiddenError):
        await services.bookings.confirm_booking(booking.id, other_customer.id)


@pytest.mark.asyncio
async def test_admin_can_confirm(services, make_event, customer, admin):
    event = await make_event(requires_approval=True)
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    confirmed = await services.bookings.confirm_booking(booking.id, admin.id)
    assert confirmed.status is BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_payment_and_refund(services, make_event, organizer, customer):
    event = await make_event(requires_approval=True, price="15.00")
    booking = await services.bookings.create_booking(event.id, customer.id, 2)

    paid = await services.bookings.process_payment(booking.id, "card", "pay_123", actor_id=customer.id)
    assert paid.status is BookingStatus.CONFIRMED
    assert paid.payment_method == "card"
    assert paid.qr_code is not None

    with pytest.raises(PaymentNotRequiredError):
        await services.bookings.process_payment(booking.id, "card")
    with pytest.raises(NotRefundPendingError):
        await services.bookings.process_refund(booking.id, Decimal("30.00"))

    cancelled = await services.bookings.cancel_booking(booking.id, customer.id)
    assert cancelled.status is BookingStatus.REFUND_PENDING

    refunded = await services.bookings.process_refund(
        booking.id, cancelled.refund_amount, "rf_1", actor_id=organizer.id
    )
    assert refunded.status is BookingStatus.REFUNDED
    assert refunded.refund_date is not None


@pytest.mark.asyncio
async def test_check_in_window(services, make_event, customer, staff, clock):
    event = await make_event(starts_in=timedelta(days=2), duration=timedelta(hours=4))
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    clock.set(event.start_date - timedelta(hours=3))
    with pytest.raises(CannotCheckInError):
        await services.bookings.check_in_booking(booking.booking_code, staff.id)

    with pytest.raises(ForbiddenError):
        await services.bookings.check_in_booking(booking.booking_code, customer.id)

    clock.set(event.start_date - timedelta(hours=2))
    used = await services.bookings.check_in_booking(booking.booking_code, staff.id)
    assert used.status is BookingStatus.USED
    assert used.check_in_date == clock.now()

    with pytest.raises(CannotCheckInError):
        await services.bookings.check_in_booking(booking.booking_code, staff.id)


@pytest.mark.asyncio
async def test_check_in_closes_at_event_end(services, make_event, customer, organizer, clock):
    event = await make_event(starts_in=timedelta(days=2), duration=timedelta(hours=4))
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    clock.set(event.end_date)
    with pytest.raises(CannotCheckInError):
        await services.bookings.check_in_booking(booking.booking_code, organizer.id)


@pytest.mark.asyncio
async def test_expiry_sweep_is_idempotent(services, make_event, customer, other_customer, clock, reload):
    event = await make_event(capacity=10, requires_approval=True)
    stale = await services.bookings.create_booking(event.id, customer.id, 2)
    clock.advance(hours=20)
    fresh = await services.bookings.create_booking(event.id, other_customer.id, 3)

    clock.advance(hours=5)
    assert await services.bookings.process_expired_bookings() == 1

    assert (await reload(Booking, stale.id)).status is BookingStatus.EXPIRED
    assert (await reload(Booking, fresh.id)).status is BookingStatus.PENDING
    assert (await reload(Event, event.id)).available_tickets == 7

    assert await services.bookings.process_expired_bookings() == 0
    assert (await reload(Booking, stale.id)).status is BookingStatus.EXPIRED
    assert (await reload(Event, event.id)).available_tickets == 7


@pytest.mark.asyncio
async def test_stale_write_is_a_conflict(services, session_factory, make_event, organizer, customer, reload):
    """A writer holding an old version of the booking loses against a newer commit."""
    event = await make_event(requires_approval=True)
    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    async with session_factory() as session:
        stale = await session.get(Booking, booking.id)
        await session.commit()

        await services.bookings.confirm_booking(booking.id, organizer.id)

        with pytest.raises(ConcurrentModificationError):
            async with unit_of_work(lambda: session) as db:
                stale.status = stale.status.transition_to(BookingStatus.REJECTED)
                db.add(stale)

    assert (await reload(Booking, booking.id)).status is BookingStatus.CONFIRMED


@pytest.mark.asyncio
async def test_notification_failure_does_not_fail_booking(
    services, make_event, customer, reload, monkeypatch
):
    async def broken_publish(message):
        raise ConnectionError("queue down")

    monkeypatch.setattr(services.queue, "publish", broken_publish)
    event = await make_event(capacity=5)

    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    assert booking.status is BookingStatus.CONFIRMED
    assert (await reload(Booking, booking.id)) is not None
    assert (await reload(Event, event.id)).available_tickets == 4


@pytest.mark.asyncio
async def test_booking_notifications_are_queued(services, make_event, organizer, customer, queued):
    event = await make_event(capacity=1)
    await queued()

    booking = await services.bookings.create_booking(event.id, customer.id, 1)

    messages = await queued()
    kinds = [(m.kind, m.recipient_id) for m in messages]
    assert (NotificationType.BOOKING_CONFIRMATION, customer.id) in kinds
    assert (NotificationType.SOLD_OUT, organizer.id) in kinds
    confirmation = next(m for m in messages if m.kind is NotificationType.BOOKING_CONFIRMATION)
    assert confirmation.payload["booking_code"] == booking.booking_code


@pytest.mark.asyncio
async def test_event_reminders_sent_once(services, make_event, customer, clock, queued):
    event = await make_event(starts_in=timedelta(hours=36))
    await services.bookings.create_booking(event.id, customer.id, 1)
    await queued()

    assert await services.bookings.send_event_reminders() == 1
    assert await services.bookings.send_event_reminders() == 0

    messages = await queued()
    assert [m.kind for m in messages] == [NotificationType.EVENT_REMINDER]


@pytest.mark.asyncio
async def test_list_bookings(services, make_event, organizer, customer, other_customer):
    event = await make_event()
    mine = await services.bookings.create_booking(event.id, customer.id, 1)
    await services.bookings.create_booking(event.id, other_customer.id, 2)

    assert [b.id for b in await services.bookings.list_user_bookings(customer.id)] == [mine.id]
    assert len(await services.bookings.list_event_bookings(event.id, organizer.id)) == 2
    with pytest.raises(ForbiddenError):
        await services.bookings.list_event_bookings(event.id, customer.id)
    with pytest.raises(ForbiddenError):
        await services.bookings.get_booking(mine.id, other_customer.id)
    assert (await services.bookings.get_booking_by_code(mine.booking_code)).id == mine.id
    with pytest.raises(NotFoundError):
        await services.bookings.get_booking_by_code("NOPE")
