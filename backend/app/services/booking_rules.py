"""
Pure booking rules: no I/O, no clock reads.

Each rule takes the instant or date it needs as an argument, so both store
adapters and the tests evaluate exactly the same logic.
"""

from datetime import date, datetime, time, tzinfo
from enum import Enum
from typing import Optional

from app.models.enums import BookingStatus, ClassStatus
from app.services.interfaces.records import ClassSnapshot

DEFAULT_WINDOW_DAYS = 14
DEFAULT_LATE_HOURS = 24


class CancellationKind(str, Enum):
    EARLY = "early"
    LATE = "late"


# Legal moves; anything not listed is rejected.
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.CANCELLED,
        BookingStatus.LATE_CANCELLED,
        BookingStatus.COMPLETED,
    }),
    BookingStatus.COMPLETED: frozenset({BookingStatus.CONFIRMED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.LATE_CANCELLED: frozenset(),
}


def can_transition(from_status: BookingStatus, to_status: BookingStatus) -> bool:
    return to_status in ALLOWED_TRANSITIONS[from_status]


def is_within_booking_window(
    today: date,
    requested_date: date,
    window_days: int = DEFAULT_WINDOW_DAYS,
) -> bool:
    """
    Same-day bookings and bookings exactly `window_days` ahead are allowed.
    The difference is counted in calendar days, never in elapsed hours.
    """
    days_ahead = (requested_date - today).days
    return 0 <= days_ahead <= window_days


def is_class_bookable(gym_class: ClassSnapshot, today: date, booking_date: date) -> bool:
    """
    Draft and archived classes are never bookable. Scheduled classes open once
    their publish date has arrived. A class with an end date only takes
    bookings for sessions before that date.
    """
    if gym_class.status == ClassStatus.PUBLISHED:
        published = True
    elif gym_class.status == ClassStatus.SCHEDULED:
        published = gym_class.publish_date is not None and gym_class.publish_date <= today
    else:
        published = False

    if not published:
        return False
    if gym_class.end_date is not None and booking_date >= gym_class.end_date:
        return False
    return True


def has_credit(balance: int, floor: int) -> bool:
    """A member at (or somehow below) the floor cannot take another concession."""
    return balance > floor


def class_starts_at(booking_date: date, start_time: time, tz: Optional[tzinfo]) -> datetime:
    return datetime.combine(booking_date, start_time, tzinfo=tz)


def hours_until_class(
    booking_date: date,
    start_time: time,
    now: datetime,
) -> float:
    starts_at = class_starts_at(booking_date, start_time, now.tzinfo)
    return (starts_at - now).total_seconds() / 3600


def classify_cancellation(
    booking_date: date,
    start_time: time,
    now: datetime,
    late_hours: int = DEFAULT_LATE_HOURS,
) -> CancellationKind:
    """
    Late iff the class starts within the next `late_hours` hours.
    Once the class has started the cancellation counts as early again.
    """
    hours = hours_until_class(booking_date, start_time, now)
    if 0 < hours <= late_hours:
        return CancellationKind.LATE
    return CancellationKind.EARLY
