"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from eventhub.models.status import BookingStatus


class BookingCreate(BaseModel):
    event_id: int
    ticket_quantity: int = Field(default=1, gt=0)
    special_requests: Optional[str] = Field(None, max_length=1000)


class BookingReason(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class PaymentRequest(BaseModel):
    method: str = Field(..., min_length=1, max_length=50)
    reference: Optional[str] = Field(None, max_length=100)


class RefundRequest(BaseModel):
    amount: Decimal = Field(..., ge=0, decimal_places=2)
    reference: Optional[str] = Field(None, max_length=100)


class CheckInRequest(BaseModel):
    booking_code: str = Field(..., min_length=1, max_length=20)


class BookingResponse(BaseModel):
    id: int
    booking_code: str
    user_id: int
    event_id: int
    ticket_quantity: int
    total_price: Decimal
    status: BookingStatus
    booking_date: datetime
    payment_date: Optional[datetime]
    payment_method: Optional[str]
    cancellation_date: Optional[datetime]
    cancellation_reason: Optional[str]
    check_in_date: Optional[datetime]
    qr_code: Optional[str]
    refund_amount: Optional[Decimal]
    refund_date: Optional[datetime]
    special_requests: Optional[str]

    model_config = {"from_attributes": True}
