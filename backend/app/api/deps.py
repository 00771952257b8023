"""
Shared route dependencies.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.clock import Clock, get_clock
from app.db.session import get_db
from app.services.booking_service import BookingStateMachine
from app.services.sql_store import SqlBookingStore


def get_booking_engine(
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
) -> BookingStateMachine:
    return BookingStateMachine(SqlBookingStore(db), clock=clock)
