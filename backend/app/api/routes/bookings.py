"""
Booking endpoints: create, cancel, class completion and booking lists.
"""

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from app.api.deps import get_booking_engine
from app.schemas.booking import (
    BookingCreate,
    BookingCreateResponse,
    BookingCancelResponse,
    BookingDetailResponse,
    BookingResponse,
    SessionRequest,
    SessionTransitionResponse,
)
from app.models.enums import BookingStatus
from app.services.booking_service import BookingStateMachine, SessionTransitionResult
from app.services.cache_service import invalidate_class_cache
from app.services.interfaces import Principal
from app.core.security import get_current_principal, require_admin

router = APIRouter(prefix="/bookings", tags=["Bookings"])


def _transition_response(result: SessionTransitionResult) -> SessionTransitionResponse:
    return SessionTransitionResponse(
        message=result.message,
        class_id=result.class_id,
        booking_date=result.booking_date,
        updated_bookings=result.updated_bookings,
    )


@router.post("/", response_model=BookingCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    principal: Principal = Depends(get_current_principal),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """
    Book one seat in a class session, paid with one concession.

    Members may run up to 5 concessions into credit. The response carries the
    balance after the debit so clients do not need to re-fetch the account.
    """
    result = await engine.create(principal, booking_data.class_id, booking_data.booking_date)
    await invalidate_class_cache(booking_data.class_id)
    return BookingCreateResponse(
        message=result.message,
        booking=BookingResponse.model_validate(result.booking),
        concession_balance=result.concession_balance,
        used_credit=result.used_credit,
    )


@router.patch("/complete-class", response_model=SessionTransitionResponse)
async def complete_class(
    session: SessionRequest,
    principal: Principal = Depends(require_admin),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """Mark every confirmed booking of a session as completed (admin only)."""
    result = await engine.complete_class(principal, session.class_id, session.booking_date)
    await invalidate_class_cache(session.class_id)
    return _transition_response(result)


@router.patch("/undo-complete-class", response_model=SessionTransitionResponse)
async def undo_complete_class(
    session: SessionRequest,
    principal: Principal = Depends(require_admin),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """Return completed bookings of a session to confirmed (admin only)."""
    result = await engine.undo_complete_class(principal, session.class_id, session.booking_date)
    await invalidate_class_cache(session.class_id)
    return _transition_response(result)


@router.patch("/{booking_id}/cancel", response_model=BookingCancelResponse)
async def cancel_booking(
    booking_id: int,
    principal: Principal = Depends(get_current_principal),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """
    Cancel a confirmed booking. Owners may cancel their own bookings and
    admins any booking. Cancelling within 24 hours of the class start
    forfeits the concession.
    """
    result = await engine.cancel(principal, booking_id)
    await invalidate_class_cache(result.booking.class_id)
    return BookingCancelResponse(
        message=result.message,
        booking=BookingResponse.model_validate(result.booking),
        is_late_cancellation=result.is_late_cancellation,
        concession_refunded=result.concession_refunded,
        concession_balance=result.concession_balance,
    )


@router.get("/my-bookings", response_model=list[BookingDetailResponse])
async def list_my_bookings(
    principal: Principal = Depends(get_current_principal),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """All bookings of the authenticated member, newest session first."""
    views = await engine.list_my_bookings(principal)
    return [BookingDetailResponse.from_view(view) for view in views]


@router.get("/", response_model=list[BookingDetailResponse])
async def list_bookings(
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    booking_date: Optional[date] = Query(None),
    user_id: Optional[int] = Query(None, gt=0),
    class_id: Optional[int] = Query(None, gt=0),
    principal: Principal = Depends(require_admin),
    engine: BookingStateMachine = Depends(get_booking_engine),
):
    """Filterable list of every booking (admin only)."""
    views = await engine.list_bookings(
        principal,
        status=status_filter,
        booking_date=booking_date,
        user_id=user_id,
        class_id=class_id,
    )
    return [BookingDetailResponse.from_view(view) for view in views]
