"""
Read-only class queries: timetable listing and per-session availability.

Class definitions are maintained elsewhere; this module only reads them.
"""

from datetime import date

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound
from app.core.logging import get_logger
from app.models.booking import Booking
from app.models.enums import BookingStatus
from app.models.gym_class import GymClass
from app.services.booking_rules import is_class_bookable
from app.services.sql_store import to_class_snapshot

logger = get_logger(__name__)


async def get_class(db: AsyncSession, class_id: int) -> GymClass:
    """Get a single class by ID."""
    result = await db.execute(select(GymClass).where(GymClass.id == class_id))
    gym_class = result.scalar_one_or_none()

    if not gym_class:
        raise NotFound(f"Class {class_id} not found")
    return gym_class


async def list_classes(
    db: AsyncSession,
    today: date,
    include_unpublished: bool = False,
) -> list[GymClass]:
    """
    Classes ordered by start time. Members only see classes bookable today;
    admins may ask for drafts, scheduled and archived classes as well.
    """
    result = await db.execute(select(GymClass).order_by(GymClass.start_time.asc(), GymClass.id.asc()))
    classes = list(result.scalars().all())

    if include_unpublished:
        return classes
    return [c for c in classes if is_class_bookable(to_class_snapshot(c), today, today)]


async def get_availability(db: AsyncSession, class_id: int, booking_date: date) -> dict:
    """Confirmed seats vs capacity for one session. Display only."""
    gym_class = await get_class(db, class_id)

    result = await db.execute(
        select(func.count(Booking.id)).where(
            Booking.class_id == class_id,
            Booking.booking_date == booking_date,
            Booking.status == BookingStatus.CONFIRMED.value,
        )
    )
    confirmed = result.scalar_one()

    return {
        "class_id": class_id,
        "booking_date": booking_date,
        "max_capacity": gym_class.max_capacity,
        "confirmed_bookings": confirmed,
        "spots_left": max(gym_class.max_capacity - confirmed, 0),
        "is_full": confirmed >= gym_class.max_capacity,
    }
