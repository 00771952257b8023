"""
Class endpoints: timetable, session availability and session roster.
Listings and availability are cached in Redis; bookings invalidate them.
"""

from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_booking_engine
from app.core.clock import Clock, get_clock
from app.core.exceptions import Forbidden
from app.core.security import get_current_principal, require_admin
from app.core.logging import get_logger
from app.db.session import get_db
from app.models.enums import BookingStatus
from app.schemas.booking import BookingDetailResponse
from app.schemas.gym_class import ClassAvailabilityResponse, GymClassListResponse, GymClassResponse
from app.services.booking_service import BookingStateMachine
from app.services.cache_service import (
    get_cached_availability,
    get_cached_classes,
    set_cached_availability,
    set_cached_classes,
)
from app.services.class_service import get_availability, get_class, list_classes
from app.services.interfaces import Principal

logger = get_logger(__name__)
router = APIRouter(prefix="/classes", tags=["Classes"])


@router.get("/", response_model=GymClassListResponse)
async def list_classes_endpoint(
    include_unpublished: bool = Query(False),
    principal: Principal = Depends(get_current_principal),
    clock: Clock = Depends(get_clock),
    db: AsyncSession = Depends(get_db),
):
    """
    Classes open for booking today.
    Admins may pass include_unpublished=true to see drafts and scheduled classes.
    """
    if include_unpublished and not principal.is_admin:
        raise Forbidden("Admin access required")

    today = clock().date()
    cached = await get_cached_classes(today, include_unpublished)
    if cached:
        logger.info("classes_list_cache_hit", on=today.isoformat())
        cached["cached"] = True
        return GymClassListResponse(**cached)

    classes = await list_classes(db, today, include_unpublished)
    response_data = {
        "classes": [GymClassResponse.model_validate(c).model_dump(mode="json") for c in classes],
        "total": len(classes),
        "cached": False,
    }
    await set_cached_classes(today, include_unpublished, response_data)

    return GymClassListResponse(**response_data)


@router.get("/{class_id}", response_model=GymClassResponse)
async def get_class_endpoint(
    class_id: int,
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    return await get_class(db, class_id)


@router.get("/{class_id}/availability", response_model=ClassAvailabilityResponse)
async def class_availability_endpoint(
    class_id: int,
    booking_date: date = Query(...),
    principal: Principal = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
):
    """Seats taken and left for one session. Advisory; booking re-checks capacity."""
    cached = await get_cached_availability(class_id, booking_date)
    if cached:
        cached["cached"] = True
        return ClassAvailabilityResponse(**cached)

    availability = await get_availability(db, class_id, booking_date)
    await set_cached_availability(
        class_id,
        booking_date,
        ClassAvailabilityResponse(**availability).model_dump(mode="json"),
    )
    return ClassAvailabilityResponse(**availability)


@router.get("/{class_id}/bookings", response_model=list[BookingDetailResponse])
async def class_roster_endpoint(
    class_id: int,
    booking_date: date = Query(...),
    principal: Principal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """Confirmed attendees of one session (admin only)."""
    await get_class(db, class_id)
    views = await engine.list_bookings(
        principal,
        status=BookingStatus.CONFIRMED,
        booking_date=booking_date,
        class_id=class_id,
    )
    return [BookingDetailResponse.from_view(view) for view in views]
