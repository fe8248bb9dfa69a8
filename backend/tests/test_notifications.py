"""
Tests for notification dispatch: producer, queue consumer, retries and the inbox.
"""

import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import select

from eventhub.core.exceptions import ForbiddenError, NotFoundError
from eventhub.models.enums import NotificationPriority, NotificationType
from eventhub.models.notification import Notification
from eventhub.services.interfaces.notification_queue import NotificationMessage
from eventhub.services.notification_service import (
    NotificationDispatcher,
    NotificationInbox,
    Notifier,
    render,
)

from conftest import RecordingEmailSender


def cancellation_payload(**extra):
    payload = {"event_id": 1, "event_title": "Test Concert", "reason": "Storm"}
    payload.update(extra)
    return payload


@pytest.mark.asyncio
async def test_drain_persists_and_emails(services, customer, email_sender, reload, clock):
    await services.notifier.send(
        NotificationType.EVENT_CANCELLATION, customer.id, cancellation_payload()
    )

    assert await services.dispatcher.drain() == 1

    [notification] = await services.inbox.list_notifications(customer.id)
    assert notification.priority is NotificationPriority.URGENT
    assert notification.message == "'Test Concert' has been cancelled. Storm"
    assert notification.expires_at == clock.now() + timedelta(hours=24)

    stored = await reload(Notification, notification.id)
    assert stored.email_sent is True
    assert stored.delivery_attempts == 1
    assert email_sender.sent == [
        ("customer@example.com", "Event cancelled", "'Test Concert' has been cancelled. Storm")
    ]


@pytest.mark.asyncio
async def test_check_in_is_in_app_only(services, customer, email_sender):
    await services.notifier.send(
        NotificationType.CHECK_IN_SUCCESS, customer.id, {"event_title": "Test Concert"}
    )
    await services.dispatcher.drain()

    assert await services.inbox.count_unread(customer.id) == 1
    assert email_sender.sent == []


@pytest.mark.asyncio
async def test_failed_delivery_is_retried(services, customer, email_sender, reload):
    email_sender.fail = True
    await services.notifier.send(
        NotificationType.EVENT_CANCELLATION, customer.id, cancellation_payload()
    )
    await services.dispatcher.drain()

    [notification] = await services.inbox.list_notifications(customer.id)
    stored = await reload(Notification, notification.id)
    assert stored.email_sent is False
    assert stored.delivery_attempts == 1
    assert stored.last_error == "smtp unavailable"

    email_sender.fail = False
    assert await services.dispatcher.retry_failed_notifications() == 1

    stored = await reload(Notification, notification.id)
    assert stored.email_sent is True
    assert stored.delivery_attempts == 2
    assert stored.last_error is None
    assert await services.dispatcher.retry_failed_notifications() == 0


class InspectingEmailSender(RecordingEmailSender):
    """Reads the notification row from its own session while sending."""

    def __init__(self, session_factory):
        super().__init__()
        self.session_factory = session_factory
        self.seen_attempts = []

    async def send(self, to_address: str, subject: str, body: str) -> None:
        async with self.session_factory() as session:
            attempts = await session.scalar(select(Notification.delivery_attempts))
        self.seen_attempts.append(attempts)
        await super().send(to_address, subject, body)


@pytest.mark.asyncio
async def test_sender_runs_outside_the_transaction(
    settings, session_factory, queue, clock, customer, reload
):
    # The test pool has one connection: holding it across send would block the sender
    sender = InspectingEmailSender(session_factory)
    dispatcher = NotificationDispatcher(session_factory, queue, sender, clock, settings)
    await Notifier(queue).send(
        NotificationType.EVENT_CANCELLATION, customer.id, cancellation_payload()
    )

    await asyncio.wait_for(dispatcher.drain(), timeout=10)

    assert sender.seen_attempts == [1]
    [stored] = await NotificationInbox(session_factory, clock).list_notifications(customer.id)
    assert (await reload(Notification, stored.id)).email_sent is True


@pytest.mark.asyncio
async def test_retry_stops_at_attempt_limit(services, settings, customer, email_sender, reload):
    email_sender.fail = True
    await services.notifier.send(
        NotificationType.EVENT_CANCELLATION, customer.id, cancellation_payload()
    )
    await services.dispatcher.drain()

    for _ in range(settings.NOTIFICATION_MAX_ATTEMPTS + 2):
        await services.dispatcher.retry_failed_notifications()

    [notification] = await services.inbox.list_notifications(customer.id)
    stored = await reload(Notification, notification.id)
    assert stored.delivery_attempts == settings.NOTIFICATION_MAX_ATTEMPTS


@pytest.mark.asyncio
async def test_cleanup_removes_expired(services, customer, clock):
    await services.notifier.send(
        NotificationType.EVENT_CANCELLATION, customer.id, cancellation_payload()
    )
    await services.notifier.send(
        NotificationType.CHECK_IN_SUCCESS, customer.id, {"event_title": "Test Concert"}
    )
    await services.dispatcher.drain()

    clock.advance(hours=25)
    assert await services.dispatcher.cleanup_expired_notifications() == 1

    [remaining] = await services.inbox.list_notifications(customer.id)
    assert remaining.type is NotificationType.CHECK_IN_SUCCESS


@pytest.mark.asyncio
async def test_inbox_read_markers(services, customer, other_customer):
    for _ in range(3):
        await services.notifier.send(
            NotificationType.SOLD_OUT, customer.id, {"event_title": "Test Concert"}
        )
    await services.dispatcher.drain()
    first, *_ = await services.inbox.list_notifications(customer.id)

    with pytest.raises(ForbiddenError):
        await services.inbox.mark_as_read(first.id, other_customer.id)
    with pytest.raises(NotFoundError):
        await services.inbox.mark_as_read(9999, customer.id)

    read = await services.inbox.mark_as_read(first.id, customer.id)
    assert read.is_read is True
    assert await services.inbox.count_unread(customer.id) == 2
    assert len(await services.inbox.list_notifications(customer.id, unread_only=True)) == 2

    assert await services.inbox.mark_all_as_read(customer.id) == 2
    assert await services.inbox.count_unread(customer.id) == 0


@pytest.mark.asyncio
async def test_booking_notifications_reach_the_inbox(services, test_event, customer):
    booking = await services.bookings.create_booking(test_event.id, customer.id, 2)
    await services.dispatcher.drain()

    [notification] = await services.inbox.list_notifications(customer.id)
    assert notification.type is NotificationType.BOOKING_CONFIRMATION
    assert notification.related_booking_id == booking.id
    assert booking.booking_code in notification.message


@pytest.mark.asyncio
async def test_notifier_never_raises(queue, monkeypatch):
    async def broken(message):
        raise ConnectionError("queue down")

    monkeypatch.setattr(queue, "publish", broken)
    notifier = Notifier(queue)

    assert await notifier.send(NotificationType.SOLD_OUT, 1, {}) is False
    assert await notifier.send(NotificationType.SOLD_OUT, None, {}) is False


def test_render_leaves_missing_placeholders_blank():
    priority, title, message = render(
        NotificationType.EVENT_CANCELLATION, {"event_title": "Gala", "reason": None}
    )

    assert priority is NotificationPriority.URGENT
    assert title == "Event cancelled"
    assert message == "'Gala' has been cancelled."


def test_message_json_encodes_rich_values():
    from datetime import datetime, timezone
    from decimal import Decimal

    message = NotificationMessage(
        kind=NotificationType.BOOKING_CANCELLATION,
        recipient_id=7,
        payload={
            "refund_amount": Decimal("12.50"),
            "start_date": datetime(2030, 1, 1, tzinfo=timezone.utc),
        },
    )

    decoded = NotificationMessage.from_json(message.to_json())
    assert decoded.kind is NotificationType.BOOKING_CANCELLATION
    assert decoded.recipient_id == 7
    assert decoded.payload == {
        "refund_amount": "12.50",
        "start_date": "2030-01-01T00:00:00+00:00",
    }
