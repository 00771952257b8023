"""
User model carrying the concession balance.

`concessions` is only ever changed by the booking engine's ledger operations
(atomic increment/decrement). The CHECK constraint is built from
CREDIT_FLOOR, so the database and the booking engine share one floor.
"""

from sqlalchemy import Column, Integer, String, Boolean, CheckConstraint
from sqlalchemy.orm import relationship

from app.core.config import get_settings
from app.db.base import Base, TimestampMixin
from app.models.enums import UserRole, sql_in


class User(Base, TimestampMixin):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.MEMBER.value)
    concessions = Column(Integer, nullable=False, default=5)
    is_active = Column(Boolean, default=True, nullable=False)

    bookings = relationship("Booking", back_populates="user", lazy="select")

    __table_args__ = (
        CheckConstraint(f"role IN ({sql_in(UserRole)})", name="check_user_role"),
        CheckConstraint(f"concessions >= {get_settings().CREDIT_FLOOR}", name="check_concessions_above_floor"),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, concessions={self.concessions})>"
