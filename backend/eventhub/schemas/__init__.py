from eventhub.schemas.booking import BookingCreate, BookingResponse
from eventhub.schemas.event import EventCreate, EventListResponse, EventResponse, EventUpdate
from eventhub.schemas.notification import NotificationResponse
from eventhub.schemas.resource import ResourceCreate, ResourceResponse, ResourceUpdate

__all__ = [
    "BookingCreate", "BookingResponse",
    "EventCreate", "EventUpdate", "EventResponse", "EventListResponse",
    "ResourceCreate", "ResourceUpdate", "ResourceResponse",
    "NotificationResponse",
]
