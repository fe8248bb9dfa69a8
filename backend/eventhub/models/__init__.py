from eventhub.models.booking import Booking
from eventhub.models.event import Event
from eventhub.models.notification import Notification
from eventhub.models.resource import EventResource
from eventhub.models.user import User

__all__ = ["User", "Event", "Booking", "EventResource", "Notification"]
