"""Initial schema

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


# Non-native enums persist member names.
role_enum = sa.Enum("STUDENT", "TEACHER", "ADMIN", name="role_enum", native_enum=False)
lesson_type_enum = sa.Enum("THEORETICAL", "PRACTICAL", "EXAM_PREP", name="lesson_type_enum", native_enum=False)
schedule_status_enum = sa.Enum(
    "AVAILABLE", "BOOKED", "COMPLETED", "CANCELLED", name="schedule_status_enum", native_enum=False
)
booking_status_enum = sa.Enum("CONFIRMED", "CANCELLED", "COMPLETED", name="booking_status_enum", native_enum=False)
exam_type_enum = sa.Enum("THEORY", "PRACTICAL", "ROAD_TEST", name="exam_type_enum", native_enum=False)
exam_request_status_enum = sa.Enum(
    "PENDING",
    "APPROVED",
    "REJECTED",
    "SCHEDULED",
    "COMPLETED",
    "CANCELLED",
    name="exam_request_status_enum",
    native_enum=False,
)
exam_result_enum = sa.Enum("PASSED", "FAILED", name="exam_result_enum", native_enum=False)
notification_status_enum = sa.Enum(
    "PENDING", "SENT", "READ", "FAILED", name="notification_status_enum", native_enum=False
)
outbox_status_enum = sa.Enum("PENDING", "PROCESSED", "FAILED", name="outbox_status_enum", native_enum=False)


def _id_col() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _created_col() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False)


def _updated_col() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False)


def _user_fk(column: str, table: str, ondelete: str) -> sa.ForeignKeyConstraint:
    return sa.ForeignKeyConstraint([column], ["users.id"], name=f"fk_{table}_{column}_users", ondelete=ondelete)


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
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("role_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.ForeignKeyConstraint(["role_id"], ["roles.id"], name="fk_users_role_id_roles", ondelete="RESTRICT"),
        sa.UniqueConstraint("email", name="uq_users_email"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=False)

    op.create_table(
        "schedules",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("teacher_name", sa.String(length=255), nullable=False),
        sa.Column("lesson_type", lesson_type_enum, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=False),
        sa.Column("end_time", sa.String(length=8), nullable=False),
        sa.Column("max_students", sa.Integer(), nullable=False),
        sa.Column("booked_student_ids", postgresql.ARRAY(postgresql.UUID(as_uuid=True)), nullable=False),
        sa.Column("status", schedule_status_enum, nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_by_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        _user_fk("teacher_id", "schedules", "RESTRICT"),
        _user_fk("created_by_id", "schedules", "RESTRICT"),
        sa.CheckConstraint("max_students >= 1", name="ck_schedules_max_students_positive"),
        sa.CheckConstraint(
            "cardinality(booked_student_ids) <= max_students",
            name="ck_schedules_booked_within_capacity",
        ),
    )
    op.create_index("ix_schedules_teacher_id_date", "schedules", ["teacher_id", "date"], unique=False)
    op.create_index("ix_schedules_lesson_type", "schedules", ["lesson_type"], unique=False)
    op.create_index("ix_schedules_date", "schedules", ["date"], unique=False)
    op.create_index("ix_schedules_status", "schedules", ["status"], unique=False)

    op.create_table(
        "bookings",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("schedule_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_name", sa.String(length=255), nullable=False),
        sa.Column("student_email", sa.String(length=255), nullable=False),
        sa.Column("teacher_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("teacher_name", sa.String(length=255), nullable=False),
        sa.Column("lesson_type", lesson_type_enum, nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.String(length=8), nullable=False),
        sa.Column("end_time", sa.String(length=8), nullable=False),
        sa.Column("location", sa.String(length=255), nullable=True),
        sa.Column("status", booking_status_enum, nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("booked_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("teacher_notes", sa.Text(), nullable=True),
        sa.Column("teacher_notes_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("teacher_notes_updated_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancellation_reason", sa.String(length=512), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("hours_completed", sa.Float(), nullable=True),
        sa.Column("performance_rating", sa.Integer(), nullable=True),
        sa.Column("skills_improved", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("areas_to_improve", sa.Text(), nullable=True),
        sa.Column("ready_for_next_level", sa.Boolean(), nullable=True),
        _user_fk("student_id", "bookings", "RESTRICT"),
        _user_fk("teacher_id", "bookings", "RESTRICT"),
        _user_fk("teacher_notes_updated_by", "bookings", "SET NULL"),
        _user_fk("completed_by", "bookings", "SET NULL"),
        sa.CheckConstraint(
            "performance_rating IS NULL OR performance_rating BETWEEN 1 AND 5",
            name="ck_bookings_performance_rating_range",
        ),
    )
    op.create_index("ix_bookings_schedule_id", "bookings", ["schedule_id"], unique=False)
    op.create_index("ix_bookings_student_id_status", "bookings", ["student_id", "status"], unique=False)
    op.create_index("ix_bookings_teacher_id_status", "bookings", ["teacher_id", "status"], unique=False)
    op.create_index(
        "uq_bookings_confirmed_schedule_student",
        "bookings",
        ["schedule_id", "student_id"],
        unique=True,
        postgresql_where=sa.text("status = 'CONFIRMED'"),
    )

    op.create_table(
        "exam_requests",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_name", sa.String(length=255), nullable=False),
        sa.Column("student_email", sa.String(length=255), nullable=False),
        sa.Column("exam_type", exam_type_enum, nullable=False),
        sa.Column("status", exam_request_status_enum, nullable=False),
        sa.Column("requested_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scheduled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("student_notes", sa.String(length=500), nullable=True),
        sa.Column("admin_notes", sa.String(length=500), nullable=True),
        sa.Column("rejection_reason", sa.String(length=500), nullable=True),
        sa.Column("exam_result", exam_result_enum, nullable=True),
        sa.Column("reviewed_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("student_id", "exam_requests", "RESTRICT"),
        _user_fk("reviewed_by", "exam_requests", "SET NULL"),
    )
    op.create_index("ix_exam_requests_student_id_status", "exam_requests", ["student_id", "status"], unique=False)
    op.create_index("ix_exam_requests_status", "exam_requests", ["status"], unique=False)

    op.create_table(
        "notifications",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("channel", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column("status", notification_status_enum, nullable=False),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _user_fk("user_id", "notifications", "CASCADE"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index("ix_notifications_status", "notifications", ["status"], unique=False)

    op.create_table(
        "outbox_events",
        _id_col(),
        _created_col(),
        _updated_col(),
        sa.Column("aggregate_type", sa.String(length=64), nullable=False),
        sa.Column("aggregate_id", sa.String(length=64), nullable=False),
        sa.Column("event_type", sa.String(length=128), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("status", outbox_status_enum, nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("retries", sa.Integer(), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
    )
    op.create_index("ix_outbox_events_aggregate_type", "outbox_events", ["aggregate_type"], unique=False)
    op.create_index("ix_outbox_events_aggregate_id", "outbox_events", ["aggregate_id"], unique=False)
    op.create_index(
        "ix_outbox_events_status_occurred_at",
        "outbox_events",
        ["status", "occurred_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_outbox_events_status_occurred_at", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_id", table_name="outbox_events")
    op.drop_index("ix_outbox_events_aggregate_type", table_name="outbox_events")
    op.drop_table("outbox_events")

    op.drop_index("ix_notifications_status", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")

    op.drop_index("ix_exam_requests_status", table_name="exam_requests")
    op.drop_index("ix_exam_requests_student_id_status", table_name="exam_requests")
    op.drop_table("exam_requests")

    op.drop_index("uq_bookings_confirmed_schedule_student", table_name="bookings")
    op.drop_index("ix_bookings_teacher_id_status", table_name="bookings")
    op.drop_index("ix_bookings_student_id_status", table_name="bookings")
    op.drop_index("ix_bookings_schedule_id", table_name="bookings")
    op.drop_table("bookings")

    op.drop_index("ix_schedules_status", table_name="schedules")
    op.drop_index("ix_schedules_date", table_name="schedules")
    op.drop_index("ix_schedules_lesson_type", table_name="schedules")
    op.drop_index("ix_schedules_teacher_id_date", table_name="schedules")
    op.drop_table("schedules")

    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")

    op.drop_table("roles")
