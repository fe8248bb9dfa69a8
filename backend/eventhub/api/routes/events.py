"""
Event endpoints: public listing plus the organizer-side lifecycle.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from eventhub.api.dependencies import ServiceContainer, get_container, get_current_user_id
from eventhub.models.status import BookingStatus
from eventhub.schemas.booking import BookingResponse
from eventhub.schemas.event import (
    EventCancel,
    EventCreate,
    EventListResponse,
    EventResponse,
    EventStatusChange,
    EventUpdate,
)

router = APIRouter(prefix="/events", tags=["Events"])


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event_endpoint(
    event_data: EventCreate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    """Create a DRAFT event. Requires the ORGANIZER or ADMIN role."""
    return await services.events.create_event(event_data, user_id)


@router.get("", response_model=EventListResponse)
async def list_events_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    upcoming_only: bool = Query(True),
    services: ServiceContainer = Depends(get_container),
):
    """List public events that are open or sold out, soonest first."""
    events, total = await services.events.list_events(page, page_size, upcoming_only)
    return EventListResponse(
        events=[EventResponse.model_validate(e) for e in events],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{event_id}", response_model=EventResponse)
async def get_event_endpoint(
    event_id: int,
    services: ServiceContainer = Depends(get_container),
):
    return await services.events.get_event(event_id)


@router.patch("/{event_id}", response_model=EventResponse)
async def update_event_endpoint(
    event_id: int,
    changes: EventUpdate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.events.update_event(event_id, changes, user_id)


@router.post("/{event_id}/status", response_model=EventResponse)
async def change_event_status_endpoint(
    event_id: int,
    body: EventStatusChange,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.events.change_status(event_id, body.status, user_id)


@router.post("/{event_id}/cancel", response_model=EventResponse)
async def cancel_event_endpoint(
    event_id: int,
    body: EventCancel,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    """Cancel the event; every booking holding tickets is cancelled and refunded in full."""
    return await services.events.cancel_event(event_id, user_id, body.reason)


@router.delete("/{event_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_event_endpoint(
    event_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    await services.events.delete_event(event_id, user_id)


@router.get("/{event_id}/bookings", response_model=list[BookingResponse])
async def list_event_bookings_endpoint(
    event_id: int,
    booking_status: Optional[BookingStatus] = Query(None, alias="status"),
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.list_event_bookings(event_id, user_id, booking_status)
