"""
Pydantic schemas for event-related request/response validation.
Only the shape is checked here; business rules live in EventService.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from eventhub.models.enums import EventCategory
from eventhub.models.event import DEFAULT_MAX_TICKETS_PER_USER
from eventhub.models.status import EventStatus


class EventCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[EventCategory] = None
    location: Optional[str] = Field(None, max_length=255)
    venue_address: Optional[str] = Field(None, max_length=500)
    start_date: datetime
    end_date: datetime
    capacity: int = Field(..., gt=0, le=100000)
    price: Decimal = Field(Decimal("0.00"), ge=0, decimal_places=2)
    requires_approval: bool = False
    is_public: bool = True
    max_tickets_per_user: int = Field(DEFAULT_MAX_TICKETS_PER_USER, ge=1)
    booking_deadline: Optional[datetime] = None
    cancellation_deadline: Optional[datetime] = None


class EventUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[EventCategory] = None
    location: Optional[str] = Field(None, max_length=255)
    venue_address: Optional[str] = Field(None, max_length=500)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    capacity: Optional[int] = Field(None, gt=0, le=100000)
    price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    requires_approval: Optional[bool] = None
    is_public: Optional[bool] = None
    max_tickets_per_user: Optional[int] = Field(None, ge=1)
    booking_deadline: Optional[datetime] = None
    cancellation_deadline: Optional[datetime] = None


class EventStatusChange(BaseModel):
    status: EventStatus


class EventCancel(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class EventResponse(BaseModel):
    id: int
    title: str
    description: Optional[str]
    category: Optional[EventCategory]
    location: Optional[str]
    venue_address: Optional[str]
    start_date: datetime
    end_date: datetime
    capacity: int
    available_tickets: int
    price: Decimal
    status: EventStatus
    requires_approval: bool
    is_public: bool
    max_tickets_per_user: int
    booking_deadline: Optional[datetime]
    cancellation_deadline: Optional[datetime]
    organizer_id: int
    created_at: datetime

    model_config = {"from_attributes": True}


class EventListResponse(BaseModel):
    events: list[EventResponse]
    total: int
    page: int
    page_size: int
