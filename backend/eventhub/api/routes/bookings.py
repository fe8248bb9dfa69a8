"""
Booking endpoints. Ticket inventory is reserved atomically by the ledger, so
concurrent requests for the last tickets cannot oversell an event.
"""

from fastapi import APIRouter, Depends, status

from eventhub.api.dependencies import ServiceContainer, get_container, get_current_user_id
from eventhub.schemas.booking import (
    BookingCreate,
    BookingReason,
    BookingResponse,
    CheckInRequest,
    PaymentRequest,
    RefundRequest,
)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking_endpoint(
    booking_data: BookingCreate,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    """
    Book tickets for an event.

    The booking is CONFIRMED straight away, or PENDING when the event requires
    organizer approval. Returns 409 when not enough tickets are left.
    """
    return await services.bookings.create_booking(
        booking_data.event_id,
        user_id,
        booking_data.ticket_quantity,
        booking_data.special_requests,
    )


@router.get("", response_model=list[BookingResponse])
async def list_user_bookings_endpoint(
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    """Get all bookings for the calling user."""
    return await services.bookings.list_user_bookings(user_id)


@router.post("/check-in", response_model=BookingResponse)
async def check_in_endpoint(
    body: CheckInRequest,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.check_in_booking(body.booking_code, user_id)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking_endpoint(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.get_booking(booking_id, user_id)


@router.post("/{booking_id}/confirm", response_model=BookingResponse)
async def confirm_booking_endpoint(
    booking_id: int,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.confirm_booking(booking_id, user_id)


@router.post("/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking_endpoint(
    booking_id: int,
    body: BookingReason,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.reject_booking(booking_id, user_id, body.reason)


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking_endpoint(
    booking_id: int,
    body: BookingReason,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    """Cancel a booking and release its tickets. Refund tier depends on time left before the event."""
    return await services.bookings.cancel_booking(booking_id, user_id, body.reason)


@router.post("/{booking_id}/payment", response_model=BookingResponse)
async def payment_endpoint(
    booking_id: int,
    body: PaymentRequest,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.process_payment(
        booking_id, body.method, body.reference, actor_id=user_id
    )


@router.post("/{booking_id}/refund", response_model=BookingResponse)
async def refund_endpoint(
    booking_id: int,
    body: RefundRequest,
    user_id: int = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_container),
):
    return await services.bookings.process_refund(
        booking_id, body.amount, body.reference, actor_id=user_id
    )
