"""Initial schema

Revision ID: 20261017_0001
Revises:
Create Date: 2026-10-17 10:00:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261017_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


role_enum = sa.Enum("student", "tutor", "admin", name="role_enum", native_enum=False)
session_status_enum = sa.Enum(
    "pending",
    "scheduled",
    "declined",
    "cancelled",
    "completed",
    name="session_status_enum",
    native_enum=False,
)
approval_status_enum = sa.Enum(
    "pending",
    "approved",
    "declined",
    "not_required",
    name="approval_status_enum",
    native_enum=False,
)
notification_kind_enum = sa.Enum(
    "session.requested",
    "session.scheduled",
    "session.accepted",
    "session.declined",
    "session.cancelled",
    "session.rescheduled",
    "session.completed",
    name="notification_kind_enum",
    native_enum=False,
    length=32,
)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def upgrade() -> None:
    op.create_table(
        "roles",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("name", role_enum, nullable=False),
        sa.UniqueConstraint("name", name="uq_roles_name"),
    )

    op.create_table(
        "users",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_users_role_id_roles", ondelete="RESTRICT"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "availability_windows",
        sa.Column("id", sa.String(length=255), primary_key=True, nullable=False),
        _created_col(),
        _updated_col(),
        sa.Column("tutor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("course", sa.String(length=64), nullable=True),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("recurring", sa.Boolean(), nullable=False),
        sa.Column("recurring_event_id", sa.String(length=255), nullable=True),
        sa.Column("source_calendar_id", sa.String(length=255), nullable=True),
        sa.Column("html_link", sa.String(length=1024), nullable=True),
        sa.CheckConstraint("end_at > start_at", name="ck_availability_windows_window_range"),
        sa.ForeignKeyConstraint(
            ["tutor_id"],
            ["users.id"],
            name="fk_availability_windows_tutor_id_users",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_availability_windows_tutor_id", "availability_windows", ["tutor_id"], unique=False)
    op.create_index("ix_availability_windows_course", "availability_windows", ["course"], unique=False)
    op.create_index("ix_availability_windows_start_at", "availability_windows", ["start_at"], unique=False)

    op.create_table(
        "tutoring_sessions",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("tutor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("course", sa.String(length=64), nullable=False),
        sa.Column("scheduled_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("scheduled_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("price", sa.Integer(), nullable=False),
        sa.Column("status", session_status_enum, nullable=False),
        sa.Column("approval_status", approval_status_enum, nullable=False),
        sa.Column("parent_availability_id", sa.String(length=255), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("slot_id", sa.String(length=300), nullable=False),
        sa.Column("calendar_event_id", sa.String(length=255), nullable=True),
        sa.Column("calendar_html_link", sa.String(length=1024), nullable=True),
        sa.Column("accepted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("declined_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decline_reason", sa.String(length=512), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_by_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("rescheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reschedule_reason", sa.String(length=512), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("rating_comment", sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(
            ["tutor_id"],
            ["users.id"],
            name="fk_tutoring_sessions_tutor_id_users",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["student_id"],
            ["users.id"],
            name="fk_tutoring_sessions_student_id_users",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["cancelled_by_id"],
            ["users.id"],
            name="fk_tutoring_sessions_cancelled_by_id_users",
            ondelete="SET NULL",
        ),
    )
    op.create_index("ix_tutoring_sessions_tutor_id", "tutoring_sessions", ["tutor_id"], unique=False)
    op.create_index("ix_tutoring_sessions_student_id", "tutoring_sessions", ["student_id"], unique=False)
    op.create_index(
        "ix_tutoring_sessions_scheduled_start_at",
        "tutoring_sessions",
        ["scheduled_start_at"],
        unique=False,
    )
    op.create_index("ix_tutoring_sessions_status", "tutoring_sessions", ["status"], unique=False)

    op.create_table(
        "slot_bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("parent_availability_id", sa.String(length=255), nullable=False),
        sa.Column("slot_index", sa.Integer(), nullable=False),
        sa.Column("slot_id", sa.String(length=300), nullable=False),
        sa.Column("tutor_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("tutor_email", sa.String(length=255), nullable=True),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_email", sa.String(length=255), nullable=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("slot_start_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("slot_end_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("course", sa.String(length=64), nullable=False),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["tutor_id"], ["users.id"], name="fk_slot_bookings_tutor_id_users", ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(
            ["student_id"],
            ["users.id"],
            name="fk_slot_bookings_student_id_users",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["session_id"],
            ["tutoring_sessions.id"],
            name="fk_slot_bookings_session_id_tutoring_sessions",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint(
            "parent_availability_id",
            "slot_index",
            name="uq_slot_bookings_parent_availability_id_slot_index",
        ),
        sa.UniqueConstraint("session_id", name="uq_slot_bookings_session_id"),
    )
    op.create_index(
        "ix_slot_bookings_parent_availability_id",
        "slot_bookings",
        ["parent_availability_id"],
        unique=False,
    )
    op.create_index("ix_slot_bookings_tutor_id", "slot_bookings", ["tutor_id"], unique=False)
    op.create_index("ix_slot_bookings_student_id", "slot_bookings", ["student_id"], unique=False)

    op.create_table(
        "notifications",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("kind", notification_kind_enum, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_read", sa.Boolean(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_notifications_user_id_users", ondelete="CASCADE"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_is_read", "notifications", ["is_read"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_notifications_is_read", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_slot_bookings_student_id", table_name="slot_bookings")
    op.drop_index("ix_slot_bookings_tutor_id", table_name="slot_bookings")
    op.drop_index("ix_slot_bookings_parent_availability_id", table_name="slot_bookings")
    op.drop_table("slot_bookings")

    op.drop_index("ix_tutoring_sessions_status", table_name="tutoring_sessions")
    op.drop_index("ix_tutoring_sessions_scheduled_start_at", table_name="tutoring_sessions")
    op.drop_index("ix_tutoring_sessions_student_id", table_name="tutoring_sessions")
    op.drop_index("ix_tutoring_sessions_tutor_id", table_name="tutoring_sessions")
    op.drop_table("tutoring_sessions")

    op.drop_index("ix_availability_windows_start_at", table_name="availability_windows")
    op.drop_index("ix_availability_windows_course", table_name="availability_windows")
    op.drop_index("ix_availability_windows_tutor_id", table_name="availability_windows")
    op.drop_table("availability_windows")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.drop_table("roles")
