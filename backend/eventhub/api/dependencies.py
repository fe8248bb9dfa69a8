"""
FastAPI dependencies: the service container and the acting user.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import async_sessionmaker

from eventhub.core.clock import Clock, SystemClock
from eventhub.core.config import Settings
from eventhub.services.booking_service import BookingService
from eventhub.services.event_service import EventService
from eventhub.services.interfaces.email_sender import EmailSender
from eventhub.services.interfaces.notification_queue import NotificationQueue
from eventhub.services.ledger import InventoryLedger
from eventhub.services.notification_service import (
    NotificationDispatcher,
    NotificationInbox,
    Notifier,
)
from eventhub.services.resource_service import ResourceService
from eventhub.services.scheduler import BatchScheduler


@dataclass
class ServiceContainer:
    queue: NotificationQueue
    notifier: Notifier
    dispatcher: NotificationDispatcher
    inbox: NotificationInbox
    bookings: BookingService
    events: EventService
    resources: ResourceService
    scheduler: BatchScheduler


def build_container(
    settings: Settings,
    session_factory: async_sessionmaker,
    queue: NotificationQueue,
    sender: EmailSender,
    clock: Optional[Clock] = None,
) -> ServiceContainer:
    clock = clock or SystemClock()
    ledger = InventoryLedger()
    notifier = Notifier(queue)
    common = dict(session_factory=session_factory, clock=clock, settings=settings)

    bookings = BookingService(notifier, ledger=ledger, **common)
    events = EventService(notifier, ledger=ledger, **common)
    dispatcher = NotificationDispatcher(session_factory, queue, sender, clock, settings)
    return ServiceContainer(
        queue=queue,
        notifier=notifier,
        dispatcher=dispatcher,
        inbox=NotificationInbox(session_factory, clock),
        bookings=bookings,
        events=events,
        resources=ResourceService(notifier, **common),
        scheduler=BatchScheduler.from_services(settings, bookings, events, dispatcher),
    )


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_current_user_id(x_user_id: Optional[int] = Header(None)) -> int:
    """
    Identify the caller from the X-User-Id header set by the upstream gateway.
    """
    if x_user_id is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id
