"""
Closed vocabularies shared by the ORM models and the services.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "ADMIN"
    ORGANIZER = "ORGANIZER"
    CLIENT = "CLIENT"
    STAFF = "STAFF"
    MODERATOR = "MODERATOR"

    @property
    def can_organize_events(self) -> bool:
        return self in (Role.ADMIN, Role.ORGANIZER)


class EventCategory(str, Enum):
    CONFERENCE = "CONFERENCE"
    WORKSHOP = "WORKSHOP"
    CONCERT = "CONCERT"
    THEATER = "THEATER"
    SPORTS = "SPORTS"
    EXHIBITION = "EXHIBITION"
    PARTY = "PARTY"
    CORPORATE = "CORPORATE"
    FOOD = "FOOD"
    TECHNOLOGY = "TECHNOLOGY"
    ART_CULTURE = "ART_CULTURE"
    FAMILY = "FAMILY"
    HEALTH_WELLNESS = "HEALTH_WELLNESS"
    NETWORKING = "NETWORKING"
    VIRTUAL = "VIRTUAL"
    OTHER = "OTHER"


class ResourceType(str, Enum):
    AUDIO_VISUAL = "AUDIO_VISUAL"
    LIGHTING = "LIGHTING"
    FURNITURE = "FURNITURE"
    DECORATION = "DECORATION"
    CATERING = "CATERING"
    EQUIPMENT = "EQUIPMENT"
    TRANSPORT = "TRANSPORT"
    STAFF = "STAFF"
    CONSTRUCTION = "CONSTRUCTION"
    STAGE = "STAGE"
    SECURITY = "SECURITY"
    TECHNOLOGY = "TECHNOLOGY"
    CLEANING = "CLEANING"
    ENTERTAINMENT = "ENTERTAINMENT"
    OTHER = "OTHER"


class NotificationPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"
    URGENT = "URGENT"
    CRITICAL = "CRITICAL"

    @property
    def expiry_hours(self) -> int:
        return _PRIORITY_EXPIRY_HOURS[self]


_PRIORITY_EXPIRY_HOURS = {
    NotificationPriority.LOW: 168,
    NotificationPriority.NORMAL: 72,
    NotificationPriority.HIGH: 48,
    NotificationPriority.URGENT: 24,
    NotificationPriority.CRITICAL: 12,
}


class NotificationType(str, Enum):
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    BOOKING_PENDING = "BOOKING_PENDING"
    BOOKING_REJECTED = "BOOKING_REJECTED"
    BOOKING_CANCELLATION = "BOOKING_CANCELLATION"
    BOOKING_EXPIRED = "BOOKING_EXPIRED"
    PAYMENT_CONFIRMATION = "PAYMENT_CONFIRMATION"
    REFUND_PROCESSED = "REFUND_PROCESSED"
    CHECK_IN_SUCCESS = "CHECK_IN_SUCCESS"
    EVENT_REMINDER = "EVENT_REMINDER"
    EVENT_UPDATE = "EVENT_UPDATE"
    EVENT_CANCELLATION = "EVENT_CANCELLATION"
    SOLD_OUT = "SOLD_OUT"
    RESOURCE_ASSIGNMENT = "RESOURCE_ASSIGNMENT"
    RESOURCE_UPDATE = "RESOURCE_UPDATE"
    RESOURCE_ATTENTION = "RESOURCE_ATTENTION"

    @property
    def sends_email(self) -> bool:
        return self not in _IN_APP_ONLY


# Delivered in-app only, never e-mailed
_IN_APP_ONLY = frozenset({NotificationType.CHECK_IN_SUCCESS})
