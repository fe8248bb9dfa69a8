"""
Notification dispatch.

Producer side: `Notifier.send` is what the booking, event and resource
services call after a successful commit. It only enqueues and never raises,
so a broken queue can never fail or roll back a booking.

Consumer side: `NotificationDispatcher` drains the queue, persists each
message as an in-app Notification row and hands it to the EmailSender.
A failed delivery stays on the row (delivery_attempts, last_error) and is
picked up again by `retry_failed_notifications` until the attempt limit.

`NotificationInbox` serves the recipient-facing reads and read markers.
"""

import asyncio
from datetime import timedelta
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from eventhub.core.clock import Clock
from eventhub.core.config import Settings
from eventhub.core.exceptions import ForbiddenError, NotFoundError
from eventhub.core.logging import get_logger
from eventhub.core.metrics import notification_deliveries, notifications_enqueued
from eventhub.db.session import unit_of_work
from eventhub.models.enums import NotificationPriority, NotificationType
from eventhub.models.notification import Notification
from eventhub.models.user import User
from eventhub.services.interfaces.email_sender import EmailSender
from eventhub.services.interfaces.notification_queue import NotificationMessage, NotificationQueue

logger = get_logger(__name__)

# type -> (priority, title, message); placeholders are filled from the payload
TEMPLATES = {
    NotificationType.BOOKING_CONFIRMATION: (
        NotificationPriority.HIGH,
        "Booking confirmed",
        "Your booking for '{event_title}' is confirmed. Code: {booking_code}",
    ),
    NotificationType.BOOKING_PENDING: (
        NotificationPriority.NORMAL,
        "Booking received",
        "Your booking for '{event_title}' is awaiting organizer approval. Code: {booking_code}",
    ),
    NotificationType.BOOKING_REJECTED: (
        NotificationPriority.HIGH,
        "Booking rejected",
        "Your booking {booking_code} for '{event_title}' was rejected. {reason}",
    ),
    NotificationType.BOOKING_CANCELLATION: (
        NotificationPriority.NORMAL,
        "Booking cancelled",
        "Your booking for '{event_title}' has been cancelled. Code: {booking_code}. "
        "Refund: {refund_amount}",
    ),
    NotificationType.BOOKING_EXPIRED: (
        NotificationPriority.NORMAL,
        "Booking expired",
        "Your pending booking {booking_code} for '{event_title}' expired before it was confirmed.",
    ),
    NotificationType.PAYMENT_CONFIRMATION: (
        NotificationPriority.HIGH,
        "Payment confirmed",
        "Your payment of {total_price} for '{event_title}' has been processed.",
    ),
    NotificationType.REFUND_PROCESSED: (
        NotificationPriority.HIGH,
        "Refund processed",
        "A refund of {refund_amount} for booking {booking_code} has been issued.",
    ),
    NotificationType.CHECK_IN_SUCCESS: (
        NotificationPriority.LOW,
        "Checked in",
        "You are checked in to '{event_title}'. Enjoy the event!",
    ),
    NotificationType.EVENT_REMINDER: (
        NotificationPriority.HIGH,
        "Event reminder",
        "Don't forget: '{event_title}' starts at {start_date}.",
    ),
    NotificationType.EVENT_UPDATE: (
        NotificationPriority.NORMAL,
        "Event updated",
        "'{event_title}' has changed: {changes}",
    ),
    NotificationType.EVENT_CANCELLATION: (
        NotificationPriority.URGENT,
        "Event cancelled",
        "'{event_title}' has been cancelled. {reason}",
    ),
    NotificationType.SOLD_OUT: (
        NotificationPriority.NORMAL,
        "Event sold out",
        "All tickets for '{event_title}' are sold.",
    ),
    NotificationType.RESOURCE_ASSIGNMENT: (
        NotificationPriority.NORMAL,
        "Resource assigned",
        "You are now responsible for '{resource_name}' at '{event_title}'.",
    ),
    NotificationType.RESOURCE_UPDATE: (
        NotificationPriority.NORMAL,
        "Resource update",
        "'{resource_name}' is now {status}.",
    ),
    NotificationType.RESOURCE_ATTENTION: (
        NotificationPriority.HIGH,
        "Resource needs attention",
        "'{resource_name}' for '{event_title}' moved to {status}. {note}",
    ),
}


class _Blank(dict):
    def __missing__(self, key):
        return ""


def render(kind: NotificationType, payload: dict) -> tuple:
    priority, title, message = TEMPLATES[kind]
    values = _Blank({k: v for k, v in payload.items() if v is not None})
    return priority, title.format_map(values), message.format_map(values).strip()


class Notifier:
    """Fire-and-forget producer used by the core services."""

    def __init__(self, queue: NotificationQueue):
        self.queue = queue

    async def send(self, kind: NotificationType, recipient_id: Optional[int], payload: dict) -> bool:
        """Enqueue one notification. Returns False instead of raising on failure."""
        if recipient_id is None:
            return False
        message = NotificationMessage(kind=kind, recipient_id=recipient_id, payload=dict(payload))
        try:
            await self.queue.publish(message)
        except Exception as e:
            notifications_enqueued.labels(result="failed").inc()
            logger.error(
                "notification_enqueue_failed",
                kind=kind.value,
                recipient_id=recipient_id,
                error=str(e),
            )
            return False
        notifications_enqueued.labels(result="queued").inc()
        return True


class NotificationDispatcher:
    """Queue consumer: persist, then deliver by e-mail."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        queue: NotificationQueue,
        sender: EmailSender,
        clock: Clock,
        settings: Settings,
    ):
        self.session_factory = session_factory
        self.queue = queue
        self.sender = sender
        self.clock = clock
        self.settings = settings
        self._task: Optional[asyncio.Task] = None
        self._stopping = asyncio.Event()

    async def handle(self, message: NotificationMessage) -> Notification:
        priority, title, body = render(message.kind, message.payload)
        now = self.clock.now()
        payload = message.payload

        async with unit_of_work(self.session_factory) as db:
            notification = Notification(
                recipient_id=message.recipient_id,
                type=message.kind,
                priority=priority,
                title=title,
                message=body,
                related_event_id=payload.get("event_id"),
                related_booking_id=payload.get("booking_id"),
                related_resource_id=payload.get("resource_id"),
                expires_at=now + timedelta(hours=priority.expiry_hours),
                created_at=now,
            )
            db.add(notification)

        logger.info(
            "notification_stored",
            notification_id=notification.id,
            kind=message.kind.value,
            recipient_id=message.recipient_id,
        )
        if message.kind.sends_email:
            await self.deliver(notification.id)
        return notification

    async def deliver(self, notification_id: int) -> bool:
        """
        Send the e-mail for one stored notification and record the outcome.

        The attempt is counted and committed before the sender runs; no
        session is open while it does.
        """
        async with unit_of_work(self.session_factory) as db:
            notification = await db.get(Notification, notification_id)
            if notification is None or notification.email_sent:
                return False
            notification.delivery_attempts += 1
            attempt = notification.delivery_attempts
            recipient = await db.get(User, notification.recipient_id)
            if recipient is None:
                notification.last_error = "recipient not found"
                return False
            envelope = (recipient.email, notification.title, notification.message)

        try:
            await self.sender.send(*envelope)
        except Exception as e:
            await self._record_outcome(notification_id, error=str(e)[:500])
            notification_deliveries.labels(result="failed").inc()
            logger.warning(
                "notification_delivery_failed",
                notification_id=notification_id,
                attempt=attempt,
                error=str(e),
            )
            return False

        await self._record_outcome(notification_id)
        notification_deliveries.labels(result="sent").inc()
        return True

    async def _record_outcome(self, notification_id: int, error: Optional[str] = None) -> None:
        if error is None:
            values = {"email_sent": True, "email_sent_at": self.clock.now(), "last_error": None}
        else:
            values = {"last_error": error}
        async with unit_of_work(self.session_factory) as db:
            await db.execute(
                update(Notification)
                .where(Notification.id == notification_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    async def drain(self) -> int:
        """Handle every message currently queued. Returns how many were handled."""
        handled = 0
        while True:
            message = await self.queue.consume(timeout=0.01)
            if message is None:
                return handled
            await self._handle_safely(message)
            handled += 1

    async def _handle_safely(self, message: NotificationMessage) -> None:
        try:
            await self.handle(message)
        except Exception:
            logger.exception(
                "notification_handling_failed",
                kind=message.kind.value,
                recipient_id=message.recipient_id,
            )

    async def run(self) -> None:
        logger.info("notification_worker_started")
        while not self._stopping.is_set():
            message = await self.queue.consume(timeout=1.0)
            if message is not None:
                await self._handle_safely(message)
        logger.info("notification_worker_stopped")

    def start(self) -> None:
        if self._task is None:
            self._stopping.clear()
            self._task = asyncio.create_task(self.run(), name="notification-dispatcher")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        try:
            await asyncio.wait_for(self._task, timeout=5)
        except asyncio.TimeoutError:
            self._task.cancel()
        self._task = None

    async def retry_failed_notifications(self) -> int:
        """Re-send e-mails that have not gone out yet, below the attempt limit."""
        async with unit_of_work(self.session_factory) as db:
            ids = list(
                (
                    await db.execute(
                        select(Notification.id)
                        .where(
                            Notification.email_sent.is_(False),
                            Notification.delivery_attempts < self.settings.NOTIFICATION_MAX_ATTEMPTS,
                            Notification.type.notin_([
                                kind for kind in NotificationType if not kind.sends_email
                            ]),
                        )
                        .order_by(Notification.id)
                    )
                ).scalars()
            )

        sent = 0
        for notification_id in ids:
            if await self.deliver(notification_id):
                sent += 1
        logger.info("notification_retry_completed", candidates=len(ids), sent=sent)
        return sent

    async def cleanup_expired_notifications(self) -> int:
        async with unit_of_work(self.session_factory) as db:
            result = await db.execute(
                delete(Notification).where(Notification.expires_at < self.clock.now())
            )
        logger.info("notifications_expired_removed", count=result.rowcount)
        return result.rowcount


class NotificationInbox:
    """Recipient-facing reads and read markers."""

    def __init__(self, session_factory: async_sessionmaker, clock: Clock):
        self.session_factory = session_factory
        self.clock = clock

    async def list_notifications(
        self,
        user_id: int,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        query = select(Notification).where(Notification.recipient_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        query = query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit)
        async with unit_of_work(self.session_factory) as db:
            return list((await db.execute(query)).scalars().all())

    async def count_unread(self, user_id: int) -> int:
        async with unit_of_work(self.session_factory) as db:
            return int(
                await db.scalar(
                    select(func.count(Notification.id)).where(
                        Notification.recipient_id == user_id,
                        Notification.is_read.is_(False),
                    )
                )
            )

    async def mark_as_read(self, notification_id: int, user_id: int) -> Notification:
        async with unit_of_work(self.session_factory) as db:
            notification = await db.get(Notification, notification_id)
            if notification is None:
                raise NotFoundError.for_entity("Notification", notification_id)
            if notification.recipient_id != user_id:
                raise ForbiddenError("You can only mark your own notifications as read")
            if not notification.is_read:
                notification.is_read = True
                notification.read_at = self.clock.now()
        return notification

    async def mark_all_as_read(self, user_id: int) -> int:
        async with unit_of_work(self.session_factory) as db:
            result = await db.execute(
                update(Notification)
                .where(
                    Notification.recipient_id == user_id,
                    Notification.is_read.is_(False),
                )
                .values(is_read=True, read_at=self.clock.now())
                .execution_options(synchronize_session=False)
            )
        return result.rowcount
