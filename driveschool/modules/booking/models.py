"""Booking ORM models."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from driveschool.core.database import Base, BaseModelMixin
from driveschool.core.enums import BookingStatusEnum, LessonTypeEnum
from driveschool.shared.utils import utc_now


class Booking(BaseModelMixin, Base):
    """Student reservation against a schedule, with its completion record.

    ``schedule_id`` is intentionally not a foreign key: bookings outlive the
    hard delete of their schedule. Student, teacher and slot fields are a
    snapshot taken when the booking was created.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        # Enum columns store member names.
        Index(
            "uq_bookings_confirmed_schedule_student",
            "schedule_id",
            "student_id",
            unique=True,
            postgresql_where=text("status = 'CONFIRMED'"),
        ),
        CheckConstraint(
            "performance_rating IS NULL OR performance_rating BETWEEN 1 AND 5",
            name="performance_rating_range",
        ),
        Index("ix_bookings_student_id_status", "student_id", "status"),
        Index("ix_bookings_teacher_id_status", "teacher_id", "status"),
    )

    schedule_id: Mapped[UUID] = mapped_column(PGUUID(as_uuid=True), nullable=False, index=True)
    student_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_email: Mapped[str] = mapped_column(String(255), nullable=False)
    teacher_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    teacher_name: Mapped[str] = mapped_column(String(255), nullable=False)

    lesson_type: Mapped[LessonTypeEnum] = mapped_column(
        SAEnum(LessonTypeEnum, name="lesson_type_enum", native_enum=False),
        nullable=False,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[BookingStatusEnum] = mapped_column(
        SAEnum(BookingStatusEnum, name="booking_status_enum", native_enum=False),
        default=BookingStatusEnum.CONFIRMED,
        nullable=False,
    )
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    booked_at: Mapped[dt.datetime] = mapped_column(DateTime(timezone=True), default=utc_now, nullable=False)

    teacher_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    teacher_notes_updated_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    teacher_notes_updated_by: Mapped[UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    cancelled_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(512), nullable=True)

    completed_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    hours_completed: Mapped[float | None] = mapped_column(Float, nullable=True)
    performance_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)
    skills_improved: Mapped[list[str]] = mapped_column(JSONB, default=list, nullable=False)
    areas_to_improve: Mapped[str | None] = mapped_column(Text, nullable=True)
    ready_for_next_level: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
