"""
Domain error taxonomy.

Every service failure is a DomainError subclass carrying a stable error code
and the HTTP status the API layer renders it with. Services raise these at
the boundary of the violating operation; none of them are retried.
"""

from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    INVALID_TRANSITION = "invalid_transition"
    INSUFFICIENT_INVENTORY = "insufficient_inventory"
    VALIDATION_FAILED = "validation_failed"
    DEADLINE_PASSED = "deadline_passed"
    CONCURRENT_MODIFICATION = "concurrent_modification"


class DomainError(Exception):
    code: ErrorCode = ErrorCode.VALIDATION_FAILED
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotFoundError(DomainError):
    code = ErrorCode.NOT_FOUND
    status_code = 404

    @classmethod
    def for_entity(cls, entity: str, key) -> "NotFoundError":
        return cls(f"{entity} {key} not found")


class ForbiddenError(DomainError):
    code = ErrorCode.FORBIDDEN
    status_code = 403


class InvalidTransitionError(DomainError):
    code = ErrorCode.INVALID_TRANSITION
    status_code = 409

    def __init__(self, message: str, current=None, target=None):
        super().__init__(message)
        self.current = current
        self.target = target


class InsufficientInventoryError(DomainError):
    code = ErrorCode.INSUFFICIENT_INVENTORY
    status_code = 409

    def __init__(self, event_id: int, requested: int, available: Optional[int] = None):
        if available is None:
            message = f"Not enough tickets for event {event_id}. Requested: {requested}"
        else:
            message = (
                f"Not enough tickets for event {event_id}. "
                f"Requested: {requested}, Available: {available}"
            )
        super().__init__(message)
        self.event_id = event_id
        self.requested = requested
        self.available = available


class ValidationFailedError(DomainError):
    code = ErrorCode.VALIDATION_FAILED
    status_code = 400


class DeadlinePassedError(DomainError):
    code = ErrorCode.DEADLINE_PASSED
    status_code = 409


class ConcurrentModificationError(DomainError):
    code = ErrorCode.CONCURRENT_MODIFICATION
    status_code = 409


# Named failures of the booking and resource engines

class EventNotBookableError(InvalidTransitionError):
    pass


class OrganizerSelfBookingError(ForbiddenError):
    pass


class InvalidQuantityError(ValidationFailedError):
    pass


class NotPendingError(InvalidTransitionError):
    pass


class NotCancellableError(InvalidTransitionError):
    pass


class CannotCheckInError(InvalidTransitionError):
    pass


class PaymentNotRequiredError(InvalidTransitionError):
    pass


class NotRefundPendingError(InvalidTransitionError):
    pass


class ResourceInUseError(InvalidTransitionError):
    pass
