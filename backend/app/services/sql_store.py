"""
Relational booking store over an async SQLAlchemy session.

Locking:
  - PostgreSQL: `pg_advisory_xact_lock(class_id, booking_date ordinal)` gives
    a per-session mutex that is released automatically on commit/rollback.
    Creates for other classes or other dates do not contend.
  - SQLite (tests, local runs): engines get `enable_sqlite_write_lock`, so
    each transaction opens with BEGIN IMMEDIATE and holds the database write
    lock from its first read. Transactions are serialised as a whole and
    `lock_session` has nothing left to do.

Ledger updates are single conditional UPDATE statements with RETURNING, so
the balance is never written from a value read earlier in Python.
"""

from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Optional

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import InternalError
from app.core.logging import get_logger
from app.models.booking import Booking
from app.models.enums import BookingStatus, ClassStatus
from app.models.gym_class import GymClass
from app.models.user import User
from app.services.interfaces import (
    BookingRecord,
    BookingStore,
    BookingTransaction,
    BookingView,
    ClassSnapshot,
)

logger = get_logger(__name__)


def to_class_snapshot(gym_class: GymClass) -> ClassSnapshot:
    return ClassSnapshot(
        id=gym_class.id,
        name=gym_class.name,
        instructor=gym_class.instructor,
        start_time=gym_class.start_time,
        duration_minutes=gym_class.duration_minutes,
        max_capacity=gym_class.max_capacity,
        status=ClassStatus(gym_class.status),
        days_of_week=list(gym_class.days_of_week or []),
        publish_date=gym_class.publish_date,
        end_date=gym_class.end_date,
    )


def to_booking_record(booking: Booking) -> BookingRecord:
    return BookingRecord(
        id=booking.id,
        user_id=booking.user_id,
        class_id=booking.class_id,
        booking_date=booking.booking_date,
        status=BookingStatus(booking.status),
        used_concession=booking.used_concession,
        is_late_cancellation=booking.is_late_cancellation,
        created_at=booking.created_at,
        cancelled_at=booking.cancelled_at,
    )


class SqlBookingTransaction(BookingTransaction):
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_class(self, class_id: int) -> Optional[ClassSnapshot]:
        result = await self.db.execute(select(GymClass).where(GymClass.id == class_id))
        gym_class = result.scalar_one_or_none()
        return to_class_snapshot(gym_class) if gym_class else None

    async def get_balance(self, user_id: int) -> Optional[int]:
        result = await self.db.execute(select(User.concessions).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def find_confirmed_booking(
        self, user_id: int, class_id: int, booking_date: date
    ) -> Optional[BookingRecord]:
        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.user_id == user_id,
                Booking.class_id == class_id,
                Booking.booking_date == booking_date,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
            .execution_options(populate_existing=True)
        )
        booking = result.scalars().first()
        return to_booking_record(booking) if booking else None

    async def lock_session(self, class_id: int, booking_date: date) -> None:
        if self.db.get_bind().dialect.name != "postgresql":
            # SQLite transactions already hold the write lock (BEGIN IMMEDIATE)
            return
        await self.db.execute(
            text("SELECT pg_advisory_xact_lock(:class_key, :date_key)"),
            {"class_key": class_id, "date_key": booking_date.toordinal()},
        )

    async def count_confirmed(self, class_id: int, booking_date: date) -> int:
        # Uses ix_bookings_class_date_status
        result = await self.db.execute(
            select(func.count(Booking.id)).where(
                Booking.class_id == class_id,
                Booking.booking_date == booking_date,
                Booking.status == BookingStatus.CONFIRMED.value,
            )
        )
        return result.scalar_one()

    async def list_session_bookings(
        self, class_id: int, booking_date: date, status: BookingStatus
    ) -> list[BookingRecord]:
        result = await self.db.execute(
            select(Booking)
            .where(
                Booking.class_id == class_id,
                Booking.booking_date == booking_date,
                Booking.status == status.value,
            )
            .order_by(Booking.id)
            .execution_options(populate_existing=True)
        )
        return [to_booking_record(booking) for booking in result.scalars().all()]

    async def debit_concession(self, user_id: int, floor: int) -> Optional[int]:
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id, User.concessions > floor)
            .values(concessions=User.concessions - 1)
            .returning(User.concessions)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one_or_none()

    async def credit_concession(self, user_id: int) -> int:
        result = await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(concessions=User.concessions + 1)
            .returning(User.concessions)
            .execution_options(synchronize_session=False)
        )
        return result.scalar_one()

    async def insert_booking(
        self,
        user_id: int,
        class_id: int,
        booking_date: date,
        used_concession: bool,
        created_at: datetime,
    ) -> BookingRecord:
        booking = Booking(
            user_id=user_id,
            class_id=class_id,
            booking_date=booking_date,
            status=BookingStatus.CONFIRMED.value,
            used_concession=used_concession,
            is_late_cancellation=False,
            created_at=created_at,
        )
        self.db.add(booking)
        await self.db.flush()
        await self.db.refresh(booking)
        return to_booking_record(booking)

    async def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        result = await self.db.execute(
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        booking = result.scalar_one_or_none()
        return to_booking_record(booking) if booking else None

    async def mark_cancelled(
        self,
        booking_id: int,
        status: BookingStatus,
        is_late: bool,
        cancelled_at: datetime,
    ) -> Optional[BookingRecord]:
        # Conditional on the current status so a concurrent cancel cannot refund twice
        result = await self.db.execute(
            update(Booking)
            .where(Booking.id == booking_id, Booking.status == BookingStatus.CONFIRMED.value)
            .values(status=status.value, is_late_cancellation=is_late, cancelled_at=cancelled_at)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None
        return await self.get_booking(booking_id)

    async def transition_session(
        self,
        class_id: int,
        booking_date: date,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> int:
        result = await self.db.execute(
            update(Booking)
            .where(
                Booking.class_id == class_id,
                Booking.booking_date == booking_date,
                Booking.status == from_status.value,
            )
            .values(status=to_status.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount


class SqlBookingStore(BookingStore):
    def __init__(self, db: AsyncSession):
        self.db = db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[BookingTransaction]:
        # End any implicit transaction left by earlier reads (e.g. auth lookup)
        # so the booking work starts on a fresh snapshot.
        if self.db.in_transaction():
            await self.db.commit()
        try:
            yield SqlBookingTransaction(self.db)
            await self.db.commit()
        except SQLAlchemyError as exc:
            await self.db.rollback()
            logger.error("booking_transaction_failed", error=str(exc), error_type=type(exc).__name__)
            raise InternalError() from exc
        except BaseException:
            await self.db.rollback()
            raise

    def _booking_views(self):
        return (
            select(
                Booking,
                GymClass.name,
                GymClass.start_time,
                GymClass.instructor,
                GymClass.duration_minutes,
            )
            .join(GymClass, Booking.class_id == GymClass.id)
            .order_by(Booking.booking_date.desc(), GymClass.start_time.desc(), Booking.id.desc())
            .execution_options(populate_existing=True)
        )

    async def _fetch_views(self, query) -> list[BookingView]:
        try:
            result = await self.db.execute(query)
        except SQLAlchemyError as exc:
            logger.error("booking_query_failed", error=str(exc))
            raise InternalError() from exc
        return [
            BookingView(
                booking=to_booking_record(booking),
                class_name=name,
                class_time=start_time,
                instructor=instructor,
                duration_minutes=duration,
            )
            for booking, name, start_time, instructor, duration in result.all()
        ]

    async def list_user_bookings(self, user_id: int) -> list[BookingView]:
        return await self._fetch_views(self._booking_views().where(Booking.user_id == user_id))

    async def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        booking_date: Optional[date] = None,
        user_id: Optional[int] = None,
        class_id: Optional[int] = None,
    ) -> list[BookingView]:
        query = self._booking_views()
        if status is not None:
            query = query.where(Booking.status == status.value)
        if booking_date is not None:
            query = query.where(Booking.booking_date == booking_date)
        if user_id is not None:
            query = query.where(Booking.user_id == user_id)
        if class_id is not None:
            query = query.where(Booking.class_id == class_id)
        return await self._fetch_views(query)
