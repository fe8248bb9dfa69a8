"""
Pytest fixtures: per-test SQLite database, pinned clock, in-memory
notification queue, wired services and an HTTP client.

Each test gets a fresh database file created from Base.metadata. The pool is
limited to one connection so concurrent coroutines queue for it the way
concurrent requests queue for a row lock in PostgreSQL.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import AsyncAdaptedQueuePool

from eventhub.api.dependencies import ServiceContainer, build_container, get_container
from eventhub.core.clock import FixedClock
from eventhub.core.config import Settings
from eventhub.db.base import Base
from eventhub.main import app
from eventhub.models.enums import Role
from eventhub.models.event import Event
from eventhub.models.user import User
from eventhub.schemas.event import EventCreate
from eventhub.services.interfaces.email_sender import EmailDeliveryError, EmailSender
from eventhub.services.interfaces.memory_queue import MemoryNotificationQueue

NOW = datetime(2030, 1, 1, 12, 0, tzinfo=timezone.utc)


class RecordingEmailSender(EmailSender):
    """Keeps sent mail in memory; set `fail` to simulate an SMTP outage."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send(self, to_address: str, subject: str, body: str) -> None:
        if self.fail:
            raise EmailDeliveryError("smtp unavailable")
        self.sent.append((to_address, subject, body))


@pytest.fixture
def settings() -> Settings:
    return Settings(
        REDIS_ENABLED=False,
        SCHEDULER_ENABLED=False,
        NOTIFICATION_WORKER_ENABLED=False,
    )


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(NOW)


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker, None]:
    """Create tables, yield a session factory, then dispose the engine."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'eventhub_test.db'}",
        poolclass=AsyncAdaptedQueuePool,
        pool_size=1,
        max_overflow=0,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
def queue() -> MemoryNotificationQueue:
    return MemoryNotificationQueue()


@pytest.fixture
def email_sender() -> RecordingEmailSender:
    return RecordingEmailSender()


@pytest.fixture
def services(settings, session_factory, queue, email_sender, clock) -> ServiceContainer:
    return build_container(settings, session_factory, queue, email_sender, clock=clock)


@pytest_asyncio.fixture(scope="function")
async def client(services: ServiceContainer) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client that overrides the service container with the test wiring."""
    app.dependency_overrides[get_container] = lambda: services

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(session_factory):
    """Factory creating a user with the given role."""
    counter = {"n": 0}

    async def _make(role: Role = Role.CLIENT, name: str = None) -> User:
        counter["n"] += 1
        name = name or f"{role.value.lower()}{counter['n']}"
        async with session_factory() as session:
            user = User(email=f"{name}@example.com", username=name, role=role)
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make


@pytest_asyncio.fixture
async def admin(make_user) -> User:
    return await make_user(Role.ADMIN, "admin")


@pytest_asyncio.fixture
async def organizer(make_user) -> User:
    return await make_user(Role.ORGANIZER, "organizer")


@pytest_asyncio.fixture
async def customer(make_user) -> User:
    return await make_user(Role.CLIENT, "customer")


@pytest_asyncio.fixture
async def other_customer(make_user) -> User:
    return await make_user(Role.CLIENT, "other")


@pytest_asyncio.fixture
async def staff(make_user) -> User:
    return await make_user(Role.STAFF, "staff")


@pytest.fixture
def make_event(services, organizer, clock):
    """Factory creating an event through EventService; published unless told otherwise."""

    async def _make(
        capacity: int = 100,
        price: str = "20.00",
        starts_in: timedelta = timedelta(days=10),
        duration: timedelta = timedelta(hours=3),
        publish: bool = True,
        **fields,
    ) -> Event:
        start = clock.now() + starts_in
        data = EventCreate(
            title=fields.pop("title", "Test Concert"),
            location="Test Venue",
            start_date=start,
            end_date=start + duration,
            capacity=capacity,
            price=Decimal(price),
            **fields,
        )
        event = await services.events.create_event(data, organizer.id)
        if publish:
            event = await services.events.publish_event(event.id, organizer.id)
        return event

    return _make


@pytest_asyncio.fixture
async def test_event(make_event) -> Event:
    """Published event with 100 tickets at 20.00."""
    return await make_event()


@pytest.fixture
def reload(session_factory):
    """Fetch a fresh copy of a row in its own session."""

    async def _reload(model, key):
        async with session_factory() as session:
            return await session.get(model, key)

    return _reload


@pytest.fixture
def queued(queue):
    """Pop every queued notification message without handling it."""

    async def _queued() -> list:
        messages = []
        while True:
            message = await queue.consume(timeout=0.01)
            if message is None:
                return messages
            messages.append(message)

    return _queued
