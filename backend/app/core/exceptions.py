"""
Typed errors raised by the booking engine.

Every business-rule violation is detected before any write and surfaces to the
caller as one of these. The API layer renders them through a single exception
handler using `status_code` and `code`.
"""

from typing import Any, Optional

from fastapi import status


class BookingError(Exception):
    """Base class for all booking-domain errors."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "booking_error"
    default_message: str = "Booking request failed"

    def __init__(self, message: Optional[str] = None, **details: Any) -> None:
        self.message = message or self.default_message
        self.details = details
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class InvalidBookingDate(BookingError):
    code = "invalid_booking_date"
    default_message = "You can only book classes up to 14 days in advance"


class ClassNotAvailable(BookingError):
    code = "class_not_available"
    default_message = "This class is not currently available for booking"


class CreditLimitExceeded(BookingError):
    code = "credit_limit_exceeded"
    default_message = (
        "You have reached the maximum credit limit. "
        "Please make a payment to continue booking classes."
    )


class ClassFull(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "class_full"
    default_message = "This class is fully booked for the selected date"


class DuplicateBooking(BookingError):
    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_booking"
    default_message = "You have already booked this class for this date"


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"
    default_message = "Resource not found"


class Forbidden(BookingError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"
    default_message = "You do not have permission to perform this action"


class InvalidTransition(BookingError):
    code = "invalid_transition"
    default_message = "Only confirmed bookings can be cancelled"


class Unauthenticated(BookingError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"
    default_message = "Could not validate credentials"


class InternalError(BookingError):
    """Storage failure. The underlying cause is logged, never returned."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "internal_error"
    default_message = "Unable to process the booking request. Please try again."
