"""
Recurring gym class definition.

Key design decisions:
- `start_time` is a time of day in the gym's timezone; a concrete session is
  the pair (class, booking_date)
- `status` + `publish_date` decide member visibility and bookability
- Capacity is NOT denormalized here: seats are counted from confirmed
  bookings per date, since every date is its own session
"""

from sqlalchemy import Column, Integer, String, Time, Date, JSON, Index, CheckConstraint
from sqlalchemy.orm import relationship

from app.db.base import Base, TimestampMixin
from app.models.enums import ClassStatus, sql_in


class GymClass(Base, TimestampMixin):
    __tablename__ = "gym_classes"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    instructor = Column(String(255), nullable=False)
    description = Column(String(1000), nullable=True)
    start_time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)
    days_of_week = Column(JSON, nullable=False, default=list)  # ["Monday", "Wednesday"]
    max_capacity = Column(Integer, nullable=False, default=20)
    status = Column(String(20), nullable=False, default=ClassStatus.PUBLISHED.value)
    publish_date = Column(Date, nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)

    bookings = relationship("Booking", back_populates="gym_class", lazy="select")

    __table_args__ = (
        CheckConstraint("max_capacity > 0", name="check_max_capacity_positive"),
        CheckConstraint(f"status IN ({sql_in(ClassStatus)})", name="check_class_status"),
        Index("ix_gym_classes_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<GymClass(id={self.id}, name={self.name}, status={self.status})>"
