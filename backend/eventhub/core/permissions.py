"""
Role-based permission checks shared by the services.

Admins may act on everything. Organizers may act on their own events and on
everything attached to them (bookings, resources).
"""

from eventhub.core.exceptions import ForbiddenError
from eventhub.models.enums import Role
from eventhub.models.event import Event
from eventhub.models.user import User


def is_admin(actor: User) -> bool:
    return actor.role is Role.ADMIN


def can_manage_event(actor: User, event: Event) -> bool:
    return is_admin(actor) or event.organizer_id == actor.id


def require_event_manager(actor: User, event: Event, action: str) -> None:
    if not can_manage_event(actor, event):
        raise ForbiddenError(f"Only the organizer or an admin can {action}")


def require_admin(actor: User, action: str) -> None:
    if not is_admin(actor):
        raise ForbiddenError(f"Only an admin can {action}")


def require_organizer_role(actor: User) -> None:
    if not actor.role.can_organize_events:
        raise ForbiddenError("Only organizers and admins can create events")


def can_check_in(actor: User, event: Event) -> bool:
    return can_manage_event(actor, event) or actor.role is Role.STAFF
