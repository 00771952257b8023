"""
Plain value objects passed across the booking store port.

Adapters translate their own storage rows into these, so the booking engine
never touches ORM instances or dictionaries directly.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Optional

from app.models.enums import BookingStatus, ClassStatus, UserRole


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as supplied by the auth collaborator."""

    id: int
    role: UserRole
    concession_balance: int

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN


@dataclass(frozen=True)
class ClassSnapshot:
    id: int
    name: str
    instructor: str
    start_time: time
    duration_minutes: int
    max_capacity: int
    status: ClassStatus
    days_of_week: list[str] = field(default_factory=list)
    publish_date: Optional[date] = None
    end_date: Optional[date] = None


@dataclass(frozen=True)
class BookingRecord:
    id: int
    user_id: int
    class_id: int
    booking_date: date
    status: BookingStatus
    used_concession: bool
    is_late_cancellation: bool
    created_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


@dataclass(frozen=True)
class BookingView:
    """A booking joined with the class fields members see in their list."""

    booking: BookingRecord
    class_name: str
    class_time: time
    instructor: str
    duration_minutes: int
