"""
Pydantic schemas for booking-related request/response validation.
"""

from datetime import date, datetime, time
from typing import Optional
from pydantic import BaseModel, Field

from app.models.enums import BookingStatus
from app.services.interfaces.records import BookingView


class BookingCreate(BaseModel):
    class_id: int = Field(..., gt=0)
    booking_date: date


class SessionRequest(BaseModel):
    """Identifies one class session for complete / undo-complete."""

    class_id: int = Field(..., gt=0)
    booking_date: date


class BookingResponse(BaseModel):
    id: int
    user_id: int
    class_id: int
    booking_date: date
    status: BookingStatus
    used_concession: bool
    is_late_cancellation: bool
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class BookingDetailResponse(BookingResponse):
    """Booking joined with the class fields shown in booking lists."""

    class_name: str
    class_time: time
    instructor: str
    duration_minutes: int

    @classmethod
    def from_view(cls, view: BookingView) -> "BookingDetailResponse":
        return cls(
            **BookingResponse.model_validate(view.booking).model_dump(),
            class_name=view.class_name,
            class_time=view.class_time,
            instructor=view.instructor,
            duration_minutes=view.duration_minutes,
        )


class BookingCreateResponse(BaseModel):
    message: str
    booking: BookingResponse
    concession_balance: int
    used_credit: bool


class BookingCancelResponse(BaseModel):
    message: str
    booking: BookingResponse
    is_late_cancellation: bool
    concession_refunded: bool
    concession_balance: int


class SessionTransitionResponse(BaseModel):
    message: str
    class_id: int
    booking_date: date
    updated_bookings: int
