"""
Status vocabularies shared by the ORM models, the schemas and the booking engine.
Stored as plain strings and guarded by CHECK constraints.
"""

from enum import Enum


class UserRole(str, Enum):
    MEMBER = "member"
    ADMIN = "admin"


class ClassStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    SCHEDULED = "scheduled"
    ARCHIVED = "archived"


class BookingStatus(str, Enum):
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    LATE_CANCELLED = "late-cancelled"


def sql_in(enum_cls: type[Enum]) -> str:
    """Render an enum's values as a SQL IN list for CHECK constraints."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
