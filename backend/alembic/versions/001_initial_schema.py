"""Initial schema: users, gym_classes, bookings with indexes and constraints.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

from app.core.config import get_settings

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default=sa.text("'member'")),
        sa.Column("concessions", sa.Integer(), nullable=False, server_default=sa.text("5")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('member', 'admin')", name="check_user_role"),
        # Credit floor. The booking engine checks it first; this is the last line.
        sa.CheckConstraint(
            f"concessions >= {get_settings().CREDIT_FLOOR}", name="check_concessions_above_floor"
        ),
    )
    op.create_index("ix_users_id", "users", ["id"])
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    # Gym classes table
    op.create_table(
        "gym_classes",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("instructor", sa.String(255), nullable=False),
        sa.Column("description", sa.String(1000), nullable=True),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default=sa.text("60")),
        sa.Column("days_of_week", sa.JSON(), nullable=False),
        sa.Column("max_capacity", sa.Integer(), nullable=False, server_default=sa.text("20")),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'published'")),
        sa.Column("publish_date", sa.Date(), nullable=True),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("max_capacity > 0", name="check_max_capacity_positive"),
        sa.CheckConstraint(
            "status IN ('draft', 'published', 'scheduled', 'archived')", name="check_class_status"
        ),
    )
    op.create_index("ix_gym_classes_id", "gym_classes", ["id"])
    op.create_index("ix_gym_classes_status", "gym_classes", ["status"])

    # Bookings table
    op.create_table(
        "bookings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("class_id", sa.Integer(), sa.ForeignKey("gym_classes.id"), nullable=False),
        sa.Column("booking_date", sa.Date(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default=sa.text("'confirmed'")),
        sa.Column("used_concession", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("is_late_cancellation", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('confirmed', 'cancelled', 'completed', 'late-cancelled')",
            name="check_booking_status",
        ),
    )
    op.create_index("ix_bookings_id", "bookings", ["id"])
    op.create_index("ix_bookings_user_id", "bookings", ["user_id"])
    op.create_index("ix_bookings_class_id", "bookings", ["class_id"])
    # CAPACITY COUNT INDEX: every create runs
    #   SELECT count(*) WHERE class_id = ? AND booking_date = ? AND status = 'confirmed'
    # while holding the session lock, so this must stay an index-only lookup.
    op.create_index("ix_bookings_class_date_status", "bookings", ["class_id", "booking_date", "status"])
    # One confirmed booking per member per session. Cancelled and completed
    # rows are history and do not block booking the same session again.
    op.create_index(
        "uq_bookings_confirmed_user_class_date",
        "bookings",
        ["user_id", "class_id", "booking_date"],
        unique=True,
        postgresql_where=sa.text("status = 'confirmed'"),
        sqlite_where=sa.text("status = 'confirmed'"),
    )


def downgrade() -> None:
    op.drop_table("bookings")
    op.drop_table("gym_classes")
    op.drop_table("users")
