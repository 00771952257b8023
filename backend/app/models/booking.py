"""
Booking model representing a member's seat in one class session.

Key design decisions:
- Partial unique index on (user_id, class_id, booking_date) WHERE confirmed:
  one live booking per member per session, while cancelled history stays
  and the slot can be booked again
- Status field allows cancellation/completion without deleting records
- used_concession is written once at creation and decides refunds
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, ForeignKey, Index, CheckConstraint, text,
)
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin
from app.models.enums import BookingStatus, sql_in

CONFIRMED_ONLY = text(f"status = '{BookingStatus.CONFIRMED.value}'")


class Booking(Base, TimestampMixin):
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    class_id = Column(Integer, ForeignKey("gym_classes.id"), nullable=False, index=True)
    booking_date = Column(Date, nullable=False)
    status = Column(String(20), nullable=False, default=BookingStatus.CONFIRMED.value)
    used_concession = Column(Boolean, nullable=False, default=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    is_late_cancellation = Column(Boolean, nullable=False, default=False)

    user = relationship("User", back_populates="bookings")
    gym_class = relationship("GymClass", back_populates="bookings")

    __table_args__ = (
        CheckConstraint(f"status IN ({sql_in(BookingStatus)})", name="check_booking_status"),
        # Capacity count: WHERE class_id = ? AND booking_date = ? AND status = 'confirmed'
        Index("ix_bookings_class_date_status", "class_id", "booking_date", "status"),
        Index(
            "uq_bookings_confirmed_user_class_date",
            "user_id", "class_id", "booking_date",
            unique=True,
            postgresql_where=CONFIRMED_ONLY,
            sqlite_where=CONFIRMED_ONLY,
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<Booking(id={self.id}, user={self.user_id}, class={self.class_id}, "
            f"date={self.booking_date}, status={self.status})>"
        )
