"""
Booking store port.

The booking engine is written once against these interfaces and runs
unchanged over the relational adapter (production) and the in-memory adapter
(tests, local demos).

Contract for adapters:
  - `BookingStore.transaction()` is all-or-nothing. Leaving the block with an
    exception must discard every write made through the transaction.
  - `lock_session()` must serialise concurrent transactions for the same
    (class, date) until the transaction ends, so count-then-insert is safe.
  - `debit_concession()` / `credit_concession()` are atomic read-modify-write
    operations on the user's balance; they return the new balance.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from typing import AsyncContextManager, Optional

from app.models.enums import BookingStatus
from app.services.interfaces.records import BookingRecord, BookingView, ClassSnapshot


class BookingTransaction(ABC):
    """Operations available inside one store transaction."""

    @abstractmethod
    async def get_class(self, class_id: int) -> Optional[ClassSnapshot]:
        ...

    @abstractmethod
    async def get_balance(self, user_id: int) -> Optional[int]:
        """Current concession balance, or None if the user does not exist."""

    @abstractmethod
    async def find_confirmed_booking(
        self, user_id: int, class_id: int, booking_date: date
    ) -> Optional[BookingRecord]:
        ...

    @abstractmethod
    async def lock_session(self, class_id: int, booking_date: date) -> None:
        ...

    @abstractmethod
    async def count_confirmed(self, class_id: int, booking_date: date) -> int:
        ...

    @abstractmethod
    async def list_session_bookings(
        self, class_id: int, booking_date: date, status: BookingStatus
    ) -> list[BookingRecord]:
        """Bookings of one class session in `status`."""

    @abstractmethod
    async def debit_concession(self, user_id: int, floor: int) -> Optional[int]:
        """
        Decrement the balance by one unless it is already at or below `floor`.
        Returns the new balance, or None when the floor blocked the debit.
        """

    @abstractmethod
    async def credit_concession(self, user_id: int) -> int:
        ...

    @abstractmethod
    async def insert_booking(
        self,
        user_id: int,
        class_id: int,
        booking_date: date,
        used_concession: bool,
        created_at: datetime,
    ) -> BookingRecord:
        ...

    @abstractmethod
    async def get_booking(self, booking_id: int) -> Optional[BookingRecord]:
        ...

    @abstractmethod
    async def mark_cancelled(
        self,
        booking_id: int,
        status: BookingStatus,
        is_late: bool,
        cancelled_at: datetime,
    ) -> Optional[BookingRecord]:
        """
        Move a confirmed booking to `status`.
        Returns None if the booking was no longer confirmed.
        """

    @abstractmethod
    async def transition_session(
        self,
        class_id: int,
        booking_date: date,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> int:
        """Bulk status change for one session. Returns the number of rows moved."""


class BookingStore(ABC):
    """Factory for transactions plus read-only queries."""

    @abstractmethod
    def transaction(self) -> AsyncContextManager[BookingTransaction]:
        ...

    @abstractmethod
    async def list_user_bookings(self, user_id: int) -> list[BookingView]:
        ...

    @abstractmethod
    async def list_bookings(
        self,
        status: Optional[BookingStatus] = None,
        booking_date: Optional[date] = None,
        user_id: Optional[int] = None,
        class_id: Optional[int] = None,
    ) -> list[BookingView]:
        ...
