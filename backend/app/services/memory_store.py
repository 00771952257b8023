"""
In-memory booking store.

Used by the engine tests and for running the API logic without a database.
One asyncio.Lock serialises whole transactions, which trivially satisfies
the per-session lock and the atomic ledger updates. Atomicity comes from
snapshot/restore: state is copied on entry and put back if the block raises.
"""

import asyncio
import copy
from contextlib import asynccontextmanager
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from typing import AsyncIterator, Optional

from app.core.logging import get_logger
from app.models.enums import BookingStatus
from app.services.interfaces import (
    BookingRecord,
    BookingStore,
    BookingTransaction,
    BookingView,
    ClassSnapshot,
)

logger = get_logger(__name__)


@dataclass
class _State:
    classes: dict[int, ClassSnapshot] = field(default_factory=dict)
    balances: dict[int, int] = field(default_factory=dict)
    bookings: dict[int, BookingRecord] = field(default_factory=dict)
    next_booking_id: int = 1


class InMemoryTransaction(BookingTransaction):
    def __init__(self, state: _State):
        self._state = state

    async def get_class(self, class_id: int) -> Optional[ClassSnapshot]:
        return self._state.classes.get(class_id)

    async def get_balance(self, user_id: int) -> Optional[int]:
        return self._state.balances.get(user_id)

    async def find_confirmed_booking(
        self, user_id: int, class_id: int, booking_date: date
    ) -> Optional[BookingRecord]:
        for booking in self._state.bookings.values():
            if (
                booking.user_id == user_id
                and booking.class_id == class_id
                and booking.booking_date == booking_date
                and booking.status == BookingStatus.CONFIRMED
            ):
                return booking
        return None

    async def lock_session(self, class_id: int, booking_date: date) -> None:
        # The store-wide transaction lock is already held
        return None

    async def count_confirmed(self, class_id: int, booking_date: date) -> int:
        return sum(
            1
            for booking in self._state.bookings.values()
            if booking.class_id == class_id
            and booking.booking_date == booking_date
            and booking.status == BookingStatus.CONFIRMED
        )

    async def list_session_bookings(
        self, class_id: int, booking_date: date, status: BookingStatus
    ) -> list[BookingRecord]:
        return [
            booking
            for booking in self._state.bookings.values()
            if booking.class_id == class_id
            and booking.booking_date == booking_date
            and booking.status == status
        ]

    async def debit_concession(self, user_id: int, floor: int) -> Optional[int]:
        balance = self._state.balances.get(user_id)
        if balance is None or balance <= floor:
            return None
        self._state.balances[user_id] = balance - 1
        return balance - 1

    async def credit_concession(self, user_id: int) -> int:
        self._state.balances[user_id] = self._state.balances.get(user_id, 0) + 1
        return self._state.balances[user_id]

    async def insert_booking(
        self,
        user_id: int,
        class_id: int,
        booking_date: date,
        used_concession: bool,
        created_at: datetime,
    ) -> BookingRecord:
        booking = BookingRecord(
            id=self._state.next_booking_id,
            user_id=user_id,
            class_id=class_id,
            booking_date=booking_date,
            status=BookingStatus.CONFIRMED,
            used_concession=used_concession,
            is_late_cancellation=False,
            created_at=created_at,
        )
        self._state.bookings[booking.id] = booking
        self._state.next_booking_id += 1
        return booking

    async def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        return self._state.bookings.get(booking_id)

    async def mark_cancelled(
        self,
        booking_id: int,
        status: BookingStatus,
        is_late: bool,
        cancelled_at: datetime,
    ) -> Optional[BookingRecord]:
        booking = self._state.bookings.get(booking_id)
        if booking is None or booking.status != BookingStatus.CONFIRMED:
            return None
        updated = replace(booking, status=status, is_late_cancellation=is_late, cancelled_at=cancelled_at)
        self._state.bookings[booking_id] = updated
        return updated

    async def transition_session(
        self,
        class_id: int,
        booking_date: date,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> int:
        moved = 0
        for booking_id, booking in list(self._state.bookings.items()):
            if (
                booking.class_id == class_id
                and booking.booking_date == booking_date
                and booking.status == from_status
            ):
                self._state.bookings[booking_id] = replace(booking, status=to_status)
                moved += 1
        return moved


class InMemoryBookingStore(BookingStore):
    def __init__(self):
        self._state = _State()
        self._lock = asyncio.Lock()

    # Collaborator-side setup. These stand in for class CRUD and user admin,
    # which live outside the booking engine.

    def add_class(self, gym_class: ClassSnapshot) -> None:
        self._state.classes[gym_class.id] = gym_class

    def add_user(self, user_id: int, concessions: int = 5) -> None:
        self._state.balances[user_id] = concessions

    def balance_of(self, user_id: int) -> int:
        return self._state.balances[user_id]

    def bookings(self) -> list[BookingRecord]:
        return list(self._state.bookings.values())

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[BookingTransaction]:
        async with self._lock:
            snapshot = copy.deepcopy(self._state)
            try:
                yield InMemoryTransaction(self._state)
            except BaseException:
                self._state = snapshot
                logger.debug("memory_transaction_rolled_back")
                raise

    async def list_user_bookings(self, user_id: int) -> list[BookingView]:
        return await self.list_bookings(user_id=user_id)

    async def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        booking_date: Optional[date] = None,
        user_id: Optional[int] = None,
        class_id: Optional[int] = None,
    ) -> list[BookingView]:
        views = []
        for booking in self._state.bookings.values():
            if status is not None and booking.status != status:
                continue
            if booking_date is not None and booking.booking_date != booking_date:
                continue
            if user_id is not None and booking.user_id != user_id:
                continue
            if class_id is not None and booking.class_id != class_id:
                continue
            gym_class = self._state.classes[booking.class_id]
            views.append(BookingView(
                booking=booking,
                class_name=gym_class.name,
                class_time=gym_class.start_time,
                instructor=gym_class.instructor,
                duration_minutes=gym_class.duration_minutes,
            ))
        views.sort(key=lambda v: (v.booking.booking_date, v.class_time), reverse=True)
        return views
