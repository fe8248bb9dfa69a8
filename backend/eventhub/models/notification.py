"""
Persisted in-app notification, also the retry ledger for e-mail delivery.
"""

from sqlalchemy import Boolean, Column, Enum, ForeignKey, Index, Integer, String, Text

from eventhub.db.base import Base, UTCDateTime, utcnow
from eventhub.models.enums import NotificationPriority, NotificationType


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    type = Column(Enum(NotificationType, native_enum=False, length=40), nullable=False)
    priority = Column(
        Enum(NotificationPriority, native_enum=False, length=20),
        nullable=False,
        default=NotificationPriority.NORMAL,
    )
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)

    related_event_id = Column(Integer, nullable=True)
    related_booking_id = Column(Integer, nullable=True)
    related_resource_id = Column(Integer, nullable=True)

    is_read = Column(Boolean, nullable=False, default=False)
    read_at = Column(UTCDateTime(), nullable=True)
    email_sent = Column(Boolean, nullable=False, default=False)
    email_sent_at = Column(UTCDateTime(), nullable=True)
    delivery_attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(String(500), nullable=True)
    expires_at = Column(UTCDateTime(), nullable=True)
    created_at = Column(UTCDateTime(), nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_notifications_recipient_read", "recipient_id", "is_read"),
        Index("ix_notifications_email_pending", "email_sent", "delivery_attempts"),
    )

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.type}, recipient={self.recipient_id})>"
