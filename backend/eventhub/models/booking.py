"""
Booking model representing a user's reservation of N tickets for an event.

Key design decisions:
- No unique (user, event) constraint: a user may hold several bookings for
  one event up to the event's cumulative max_tickets_per_user
- `total_price` is frozen at creation; later price changes never touch it
- `version` is the ORM optimistic-lock column: a concurrent status write
  against a stale version fails instead of overwriting
"""

from sqlalchemy import CheckConstraint, Column, Enum, ForeignKey, Index, Integer, Numeric, String

from eventhub.db.base import Base, TimestampMixin, UTCDateTime
from eventhub.models.status import BookingStatus


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    booking_code = Column(String(20), unique=True, index=True, nullable=False)
    ticket_quantity = Column(Integer, nullable=False, default=1)
    total_price = Column(Numeric(10, 2), nullable=False)
    status = Column(
        Enum(BookingStatus, native_enum=False, length=20),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    special_requests = Column(String(1000), nullable=True)

    booking_date = Column(UTCDateTime(), nullable=False)
    payment_date = Column(UTCDateTime(), nullable=True)
    payment_method = Column(String(50), nullable=True)
    payment_reference = Column(String(100), nullable=True)
    cancellation_date = Column(UTCDateTime(), nullable=True)
    cancellation_reason = Column(String(500), nullable=True)
    check_in_date = Column(UTCDateTime(), nullable=True)
    qr_code = Column(String(100), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_date = Column(UTCDateTime(), nullable=True)
    refund_reference = Column(String(100), nullable=True)
    reminder_sent_at = Column(UTCDateTime(), nullable=True)

    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    event_id = Column(
        Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True
    )

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("ticket_quantity > 0", name="check_booking_quantity_positive"),
        CheckConstraint("total_price >= 0", name="check_booking_total_non_negative"),
        # Holding-bookings lookup used by ledger recompute and per-user limit
        Index("ix_bookings_event_status", "event_id", "status"),
        # Expiry sweep: PENDING bookings ordered by age
        Index("ix_bookings_status_date", "status", "booking_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, code={self.booking_code}, user={self.user_id}, "
            f"event={self.event_id}, status={self.status})>"
        )
