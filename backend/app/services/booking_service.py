"""
Booking lifecycle engine: create, cancel, complete and undo-complete.

CONCURRENCY STRATEGY: Session Lock + Conditional Ledger Update
==============================================================

Problem:
  Two members try to take the last seat of the same class session.
  Both count 19/20 confirmed bookings, both insert, the class ends at 21/20.
  The same shape of race exists on the concession balance: two debits that
  each read -4 would both write -5 and one concession is lost.

Solution:
  1. Every create takes a lock scoped to the (class, booking_date) session
     before checking duplicates and capacity. Creates for other sessions
     never wait on it.
  2. The balance is never written from a value read earlier. Debits are
     `UPDATE ... SET concessions = concessions - 1 WHERE concessions > floor`
     and refunds are `concessions + 1`, so they cannot lose updates.
  3. All checks run before the first write, and all writes of one operation
     share one store transaction. A rejected or aborted request leaves
     bookings and balances untouched.

Every rule lives in `booking_rules`; this module only sequences them against
a `BookingStore`, so the relational and in-memory adapters behave the same.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.core.clock import Clock, system_clock
from app.core.config import Settings, get_settings
from app.core.exceptions import (
    BookingError,
    ClassFull,
    ClassNotAvailable,
    CreditLimitExceeded,
    DuplicateBooking,
    Forbidden,
    InvalidBookingDate,
    InvalidTransition,
    NotFound,
)
from app.core.logging import get_logger
from app.core.metrics import (
    booking_latency,
    credit_bookings,
    record_booking_attempt,
    record_cancellation,
    record_completion,
    record_ledger_operation,
)
from app.models.enums import BookingStatus
from app.services.booking_rules import (
    CancellationKind,
    can_transition,
    classify_cancellation,
    has_credit,
    is_class_bookable,
    is_within_booking_window,
)
from app.services.interfaces import (
    BookingRecord,
    BookingStore,
    BookingTransaction,
    BookingView,
    Principal,
)

logger = get_logger(__name__)

CREATED_MESSAGE = "Booking created successfully"
CREATED_ON_CREDIT_MESSAGE = (
    "Booking created using credit. Please make a payment soon to avoid booking restrictions."
)
LATE_CANCEL_MESSAGE = "Late cancellation: You have been charged a concession"
EARLY_CANCEL_MESSAGE = "Booking cancelled successfully. Your concession has been refunded."
CANCEL_NO_REFUND_MESSAGE = "Booking cancelled successfully"


@dataclass(frozen=True)
class CreateBookingResult:
    booking: BookingRecord
    concession_balance: int
    used_credit: bool
    message: str


@dataclass(frozen=True)
class CancelBookingResult:
    booking: BookingRecord
    is_late_cancellation: bool
    concession_refunded: bool
    concession_balance: int
    message: str


@dataclass(frozen=True)
class SessionTransitionResult:
    class_id: int
    booking_date: date
    updated_bookings: int
    message: str


class BookingStateMachine:
    """
    Orchestrates the booking window, class availability, concession ledger,
    capacity gate and cancellation policy into atomic transactions.
    """

    def __init__(
        self,
        store: BookingStore,
        clock: Clock = system_clock,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.clock = clock
        self.settings = settings or get_settings()

    async def create(self, principal: Principal, class_id: int, booking_date: date) -> CreateBookingResult:
        log = logger.bind(user_id=principal.id, class_id=class_id, booking_date=booking_date.isoformat())
        with booking_latency.labels(operation="create").time():
            try:
                result = await self._create(principal, class_id, booking_date)
            except BookingError as exc:
                record_booking_attempt(exc.code)
                log.warning("booking_rejected", reason=exc.code)
                raise

        record_booking_attempt("success")
        record_ledger_operation("debit")
        if result.used_credit:
            credit_bookings.inc()
        log.info(
            "booking_created",
            booking_id=result.booking.id,
            concession_balance=result.concession_balance,
            used_credit=result.used_credit,
        )
        return result

    async def _create(self, principal: Principal, class_id: int, booking_date: date) -> CreateBookingResult:
        floor = self.settings.CREDIT_FLOOR
        window = self.settings.BOOKING_WINDOW_DAYS
        today = self.clock().date()

        if not is_within_booking_window(today, booking_date, window):
            raise InvalidBookingDate(f"You can only book classes up to {window} days in advance")

        async with self.store.transaction() as tx:
            gym_class = await tx.get_class(class_id)
            if gym_class is None:
                raise NotFound("The selected class does not exist")
            if not is_class_bookable(gym_class, today, booking_date):
                raise ClassNotAvailable()

            # Held until commit: duplicate and capacity checks below see a stable session
            await tx.lock_session(class_id, booking_date)

            if await tx.find_confirmed_booking(principal.id, class_id, booking_date) is not None:
                raise DuplicateBooking()

            balance = await tx.get_balance(principal.id)
            if balance is None:
                raise NotFound("User not found")
            if not has_credit(balance, floor):
                raise CreditLimitExceeded()

            confirmed = await tx.count_confirmed(class_id, booking_date)
            if confirmed >= gym_class.max_capacity:
                raise ClassFull()

            new_balance = await tx.debit_concession(principal.id, floor)
            if new_balance is None:
                # Another request spent the last credit between the read and the update
                raise CreditLimitExceeded()

            booking = await tx.insert_booking(
                user_id=principal.id,
                class_id=class_id,
                booking_date=booking_date,
                used_concession=True,
                created_at=self.clock(),
            )

        used_credit = new_balance < 0
        return CreateBookingResult(
            booking=booking,
            concession_balance=new_balance,
            used_credit=used_credit,
            message=CREATED_ON_CREDIT_MESSAGE if used_credit else CREATED_MESSAGE,
        )

    async def cancel(self, principal: Principal, booking_id: int) -> CancelBookingResult:
        log = logger.bind(user_id=principal.id, booking_id=booking_id)
        with booking_latency.labels(operation="cancel").time():
            try:
                result = await self._cancel(principal, booking_id)
            except BookingError as exc:
                log.warning("cancellation_rejected", reason=exc.code)
                raise

        record_cancellation(result.is_late_cancellation)
        if result.concession_refunded:
            record_ledger_operation("credit")
        log.info(
            "booking_cancelled",
            owner_id=result.booking.user_id,
            status=result.booking.status.value,
            refunded=result.concession_refunded,
            concession_balance=result.concession_balance,
        )
        return result

    async def _cancel(self, principal: Principal, booking_id: int) -> CancelBookingResult:
        now = self.clock()

        async with self.store.transaction() as tx:
            booking = await tx.get_booking(booking_id)
            if booking is None:
                raise NotFound("Booking not found")
            if not principal.is_admin and booking.user_id != principal.id:
                raise Forbidden("You can only cancel your own bookings")
            if booking.status != BookingStatus.CONFIRMED:
                raise InvalidTransition("Only confirmed bookings can be cancelled")

            gym_class = await tx.get_class(booking.class_id)
            if gym_class is None:
                raise NotFound("Class not found")

            kind = classify_cancellation(
                booking.booking_date,
                gym_class.start_time,
                now,
                self.settings.LATE_CANCELLATION_HOURS,
            )
            is_late = kind == CancellationKind.LATE
            target = BookingStatus.LATE_CANCELLED if is_late else BookingStatus.CANCELLED

            updated = await tx.mark_cancelled(booking.id, target, is_late, now)
            if updated is None:
                raise InvalidTransition("Only confirmed bookings can be cancelled")

            # Refund follows the flag captured at booking time
            refunded = not is_late and booking.used_concession
            if refunded:
                balance = await tx.credit_concession(booking.user_id)
            else:
                balance = await tx.get_balance(booking.user_id)
                if balance is None:
                    raise NotFound("User not found")

        if is_late:
            message = LATE_CANCEL_MESSAGE
        elif refunded:
            message = EARLY_CANCEL_MESSAGE
        else:
            message = CANCEL_NO_REFUND_MESSAGE

        return CancelBookingResult(
            booking=updated,
            is_late_cancellation=is_late,
            concession_refunded=refunded,
            concession_balance=balance,
            message=message,
        )

    async def complete_class(
        self, principal: Principal, class_id: int, booking_date: date
    ) -> SessionTransitionResult:
        count = await self._transition_session(
            principal, class_id, booking_date, BookingStatus.CONFIRMED, BookingStatus.COMPLETED
        )
        record_completion("complete", count)
        return SessionTransitionResult(
            class_id=class_id,
            booking_date=booking_date,
            updated_bookings=count,
            message=f"Class marked as completed for {count} booking(s)",
        )

    async def undo_complete_class(
        self, principal: Principal, class_id: int, booking_date: date
    ) -> SessionTransitionResult:
        count = await self._transition_session(
            principal, class_id, booking_date, BookingStatus.COMPLETED, BookingStatus.CONFIRMED
        )
        record_completion("undo", count)
        return SessionTransitionResult(
            class_id=class_id,
            booking_date=booking_date,
            updated_bookings=count,
            message=f"Class completion undone for {count} booking(s)",
        )

    async def _transition_session(
        self,
        principal: Principal,
        class_id: int,
        booking_date: date,
        from_status: BookingStatus,
        to_status: BookingStatus,
    ) -> int:
        if not principal.is_admin:
            logger.warning("session_transition_forbidden", user_id=principal.id, class_id=class_id)
            raise Forbidden("Admin access required")
        if not can_transition(from_status, to_status):
            raise InvalidTransition(f"Cannot move bookings from {from_status.value} to {to_status.value}")

        operation = "complete" if to_status == BookingStatus.COMPLETED else "undo_complete"
        with booking_latency.labels(operation=operation).time():
            async with self.store.transaction() as tx:
                await tx.lock_session(class_id, booking_date)
                if to_status == BookingStatus.CONFIRMED:
                    await self._check_session_can_reopen(tx, class_id, booking_date)
                count = await tx.transition_session(class_id, booking_date, from_status, to_status)

        logger.info(
            "session_transitioned",
            class_id=class_id,
            booking_date=booking_date.isoformat(),
            from_status=from_status.value,
            to_status=to_status.value,
            updated=count,
        )
        return count

    async def _check_session_can_reopen(
        self, tx: BookingTransaction, class_id: int, booking_date: date
    ) -> None:
        """
        Completed bookings do not hold a seat, so the session may have been
        re-booked since it was completed. Undo must not create a second
        confirmed booking for a member or push the session over capacity.
        """
        completed = await tx.list_session_bookings(class_id, booking_date, BookingStatus.COMPLETED)
        if not completed:
            return
        confirmed = await tx.list_session_bookings(class_id, booking_date, BookingStatus.CONFIRMED)

        rebooked = {b.user_id for b in confirmed} & {b.user_id for b in completed}
        if rebooked:
            logger.warning(
                "undo_complete_rejected",
                class_id=class_id,
                booking_date=booking_date.isoformat(),
                reason="rebooked",
                user_ids=sorted(rebooked),
            )
            raise InvalidTransition(
                "Cannot undo completion: a member has booked this session again"
            )

        gym_class = await tx.get_class(class_id)
        if gym_class is None:
            raise NotFound("Class not found")
        if len(confirmed) + len(completed) > gym_class.max_capacity:
            logger.warning(
                "undo_complete_rejected",
                class_id=class_id,
                booking_date=booking_date.isoformat(),
                reason="capacity",
                confirmed=len(confirmed),
                completed=len(completed),
            )
            raise ClassFull("Cannot undo completion: the session has been re-booked to capacity")

    async def list_my_bookings(self, principal: Principal) -> list[BookingView]:
        return await self.store.list_user_bookings(principal.id)

    async def list_bookings(
        self,
        principal: Principal,
        status: Optional[BookingStatus] = None,
        booking_date: Optional[date] = None,
        user_id: Optional[int] = None,
        class_id: Optional[int] = None,
    ) -> list[BookingView]:
        if not principal.is_admin:
            raise Forbidden("Admin access required")
        return await self.store.list_bookings(
            status=status, booking_date=booking_date, user_id=user_id, class_id=class_id
        )
