"""
Event model with ticket inventory tracking.

Key design decisions:
- `available_tickets` is denormalized (avoids a SUM over bookings on every read)
  and owned by the inventory ledger; nothing else writes it
- CHECK constraints keep 0 <= available_tickets <= capacity at the DB level
- `version` is bumped by every ledger write
- Index on `start_date` for range queries (upcoming events, reminder window)
"""

from decimal import Decimal

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
)

from eventhub.db.base import Base, TimestampMixin, UTCDateTime
from eventhub.models.enums import EventCategory
from eventhub.models.status import EventStatus

DEFAULT_MAX_TICKETS_PER_USER = 10


class Event(Base, TimestampMixin):
    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(Enum(EventCategory, native_enum=False, length=30), nullable=True)
    location = Column(String(255), nullable=True)
    venue_address = Column(String(500), nullable=True)
    start_date = Column(UTCDateTime(), nullable=False)
    end_date = Column(UTCDateTime(), nullable=False)

    capacity = Column(Integer, nullable=False)
    available_tickets = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    status = Column(
        Enum(EventStatus, native_enum=False, length=30),
        nullable=False,
        default=EventStatus.DRAFT,
    )

    requires_approval = Column(Boolean, nullable=False, default=False)
    is_public = Column(Boolean, nullable=False, default=True)
    max_tickets_per_user = Column(Integer, nullable=False, default=DEFAULT_MAX_TICKETS_PER_USER)
    booking_deadline = Column(UTCDateTime(), nullable=True)
    cancellation_deadline = Column(UTCDateTime(), nullable=True)

    organizer_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("available_tickets >= 0", name="check_available_tickets_non_negative"),
        CheckConstraint("capacity > 0", name="check_capacity_positive"),
        CheckConstraint("available_tickets <= capacity", name="check_available_lte_capacity"),
        CheckConstraint("price >= 0", name="check_price_non_negative"),
        CheckConstraint("end_date > start_date", name="check_event_window"),
        Index("ix_events_start_date", "start_date"),
        Index("ix_events_status_start", "status", "start_date"),
    )

    @property
    def sold_tickets(self) -> int:
        return self.capacity - self.available_tickets

    def __repr__(self) -> str:
        return (
            f"<Event(id={self.id}, title={self.title}, status={self.status}, "
            f"available={self.available_tickets}/{self.capacity})>"
        )
