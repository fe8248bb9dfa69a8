"""
Status state machines for events, bookings and event resources.

Each status is a closed str-valued enum with a static transition table
(state -> allowed targets). Every status write in the services goes through
`transition_to`, which rejects edges missing from the table and leaves the
entity untouched.
"""

from enum import Enum

from eventhub.core.exceptions import InvalidTransitionError


class _StatusMachine(str, Enum):
    """Behaviour shared by the three status enums."""

    @classmethod
    def _table(cls) -> dict:
        raise NotImplementedError

    def allowed_transitions(self) -> frozenset:
        return self._table().get(self, frozenset())

    def can_transition_to(self, target) -> bool:
        return target in self.allowed_transitions()

    @property
    def is_terminal(self) -> bool:
        return not self.allowed_transitions()

    def transition_to(self, target):
        """Return `target` if the edge exists, else raise InvalidTransitionError."""
        target = type(self)(target)
        if not self.can_transition_to(target):
            raise InvalidTransitionError(
                f"{type(self).__name__} cannot change from {self.value} to {target.value}",
                current=self,
                target=target,
            )
        return target


class EventStatus(_StatusMachine):
    DRAFT = "DRAFT"
    PENDING_APPROVAL = "PENDING_APPROVAL"
    PUBLISHED = "PUBLISHED"
    PAUSED = "PAUSED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    SOLD_OUT = "SOLD_OUT"
    POSTPONED = "POSTPONED"

    @classmethod
    def _table(cls) -> dict:
        return _EVENT_TRANSITIONS

    @property
    def is_bookable(self) -> bool:
        return self is EventStatus.PUBLISHED

    @property
    def is_editable(self) -> bool:
        return self in (EventStatus.DRAFT, EventStatus.PENDING_APPROVAL, EventStatus.PAUSED)

    @property
    def is_active(self) -> bool:
        return self in (EventStatus.PUBLISHED, EventStatus.SOLD_OUT)


class BookingStatus(_StatusMachine):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"
    REFUNDED = "REFUNDED"
    USED = "USED"
    NO_SHOW = "NO_SHOW"
    REFUND_PENDING = "REFUND_PENDING"
    REJECTED = "REJECTED"

    @classmethod
    def _table(cls) -> dict:
        return _BOOKING_TRANSITIONS

    @property
    def holds_inventory(self) -> bool:
        """Tickets of this booking are subtracted from the event's availability."""
        return self in HOLDING_STATUSES

    @property
    def is_cancellable(self) -> bool:
        return self in HOLDING_STATUSES

    @property
    def requires_payment(self) -> bool:
        return self is BookingStatus.PENDING

    @property
    def allows_check_in(self) -> bool:
        return self is BookingStatus.CONFIRMED


class ResourceStatus(_StatusMachine):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    IN_USE = "IN_USE"
    MAINTENANCE = "MAINTENANCE"
    OUT_OF_SERVICE = "OUT_OF_SERVICE"
    IN_TRANSIT = "IN_TRANSIT"
    SETUP = "SETUP"
    TEARDOWN = "TEARDOWN"
    LOST = "LOST"
    RETIRED = "RETIRED"
    PENDING_INSPECTION = "PENDING_INSPECTION"
    CLEANING = "CLEANING"

    @classmethod
    def _table(cls) -> dict:
        return _RESOURCE_TRANSITIONS

    @property
    def is_in_use(self) -> bool:
        return self in (
            ResourceStatus.RESERVED,
            ResourceStatus.IN_USE,
            ResourceStatus.SETUP,
            ResourceStatus.TEARDOWN,
        )

    @property
    def requires_attention(self) -> bool:
        return self in (
            ResourceStatus.OUT_OF_SERVICE,
            ResourceStatus.LOST,
            ResourceStatus.PENDING_INSPECTION,
        )

    @property
    def is_active(self) -> bool:
        return self not in (
            ResourceStatus.RETIRED,
            ResourceStatus.LOST,
            ResourceStatus.OUT_OF_SERVICE,
        )

    @property
    def admin_only(self) -> bool:
        """Only an admin may move a resource into this status."""
        return self in (
            ResourceStatus.OUT_OF_SERVICE,
            ResourceStatus.LOST,
            ResourceStatus.RETIRED,
            ResourceStatus.PENDING_INSPECTION,
        )


_EVENT_TRANSITIONS = {
    EventStatus.DRAFT: frozenset({
        EventStatus.PENDING_APPROVAL, EventStatus.PUBLISHED, EventStatus.CANCELLED,
    }),
    EventStatus.PENDING_APPROVAL: frozenset({
        EventStatus.PUBLISHED, EventStatus.DRAFT, EventStatus.CANCELLED,
    }),
    EventStatus.PUBLISHED: frozenset({
        EventStatus.PAUSED, EventStatus.CANCELLED, EventStatus.COMPLETED,
        EventStatus.SOLD_OUT, EventStatus.POSTPONED,
    }),
    EventStatus.PAUSED: frozenset({EventStatus.PUBLISHED, EventStatus.CANCELLED}),
    EventStatus.SOLD_OUT: frozenset({
        EventStatus.PUBLISHED, EventStatus.CANCELLED, EventStatus.COMPLETED,
    }),
    EventStatus.POSTPONED: frozenset({EventStatus.PUBLISHED, EventStatus.CANCELLED}),
    EventStatus.CANCELLED: frozenset(),
    EventStatus.COMPLETED: frozenset(),
}

_BOOKING_TRANSITIONS = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED, BookingStatus.CANCELLED,
        BookingStatus.EXPIRED, BookingStatus.REJECTED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED, BookingStatus.USED,
        BookingStatus.NO_SHOW, BookingStatus.REFUND_PENDING,
    }),
    BookingStatus.CANCELLED: frozenset({BookingStatus.REFUNDED, BookingStatus.REFUND_PENDING}),
    BookingStatus.REFUND_PENDING: frozenset({BookingStatus.REFUNDED}),
}

_RESOURCE_TRANSITIONS = {
    ResourceStatus.AVAILABLE: frozenset({
        ResourceStatus.RESERVED, ResourceStatus.MAINTENANCE,
        ResourceStatus.OUT_OF_SERVICE, ResourceStatus.PENDING_INSPECTION,
    }),
    ResourceStatus.RESERVED: frozenset({
        ResourceStatus.AVAILABLE, ResourceStatus.IN_USE,
        ResourceStatus.SETUP, ResourceStatus.IN_TRANSIT,
    }),
    ResourceStatus.IN_USE: frozenset({
        ResourceStatus.TEARDOWN, ResourceStatus.AVAILABLE, ResourceStatus.MAINTENANCE,
    }),
    ResourceStatus.MAINTENANCE: frozenset({
        ResourceStatus.AVAILABLE, ResourceStatus.OUT_OF_SERVICE,
        ResourceStatus.PENDING_INSPECTION,
    }),
    ResourceStatus.OUT_OF_SERVICE: frozenset({
        ResourceStatus.MAINTENANCE, ResourceStatus.RETIRED,
        ResourceStatus.PENDING_INSPECTION,
    }),
    ResourceStatus.IN_TRANSIT: frozenset({
        ResourceStatus.AVAILABLE, ResourceStatus.SETUP, ResourceStatus.LOST,
    }),
    ResourceStatus.SETUP: frozenset({
        ResourceStatus.IN_USE, ResourceStatus.AVAILABLE, ResourceStatus.MAINTENANCE,
    }),
    ResourceStatus.TEARDOWN: frozenset({
        ResourceStatus.AVAILABLE, ResourceStatus.CLEANING, ResourceStatus.MAINTENANCE,
    }),
    ResourceStatus.LOST: frozenset({ResourceStatus.AVAILABLE, ResourceStatus.RETIRED}),
    ResourceStatus.RETIRED: frozenset(),
    ResourceStatus.PENDING_INSPECTION: frozenset({
        ResourceStatus.AVAILABLE, ResourceStatus.MAINTENANCE,
        ResourceStatus.OUT_OF_SERVICE,
    }),
    ResourceStatus.CLEANING: frozenset({
        ResourceStatus.AVAILABLE, ResourceStatus.MAINTENANCE,
    }),
}

HOLDING_STATUSES = frozenset({BookingStatus.PENDING, BookingStatus.CONFIRMED})
