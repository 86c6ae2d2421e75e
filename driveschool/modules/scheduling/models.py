"""Scheduling ORM models."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, Enum as SAEnum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import ARRAY, UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from driveschool.core.database import Base, BaseModelMixin
from driveschool.core.enums import LessonTypeEnum, ScheduleStatusEnum


class Schedule(BaseModelMixin, Base):
    """Teacher-published lesson slot with a fixed number of seats.

    ``start_time``/``end_time`` are wall-clock ``HH:MM`` strings on ``date`` in
    the school timezone. ``booked_student_ids`` is the authoritative seat set;
    ``status`` is only a display label. The array is always reassigned, never
    mutated in place, so the ORM sees every change.
    """

    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("max_students >= 1", name="max_students_positive"),
        CheckConstraint("cardinality(booked_student_ids) <= max_students", name="booked_within_capacity"),
        Index("ix_schedules_teacher_id_date", "teacher_id", "date"),
    )

    teacher_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    teacher_name: Mapped[str] = mapped_column(String(255), nullable=False)
    lesson_type: Mapped[LessonTypeEnum] = mapped_column(
        SAEnum(LessonTypeEnum, name="lesson_type_enum", native_enum=False),
        nullable=False,
        index=True,
    )
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    start_time: Mapped[str] = mapped_column(String(8), nullable=False)
    end_time: Mapped[str] = mapped_column(String(8), nullable=False)
    max_students: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    booked_student_ids: Mapped[list[UUID]] = mapped_column(
        ARRAY(PGUUID(as_uuid=True)),
        default=list,
        nullable=False,
    )
    status: Mapped[ScheduleStatusEnum] = mapped_column(
        SAEnum(ScheduleStatusEnum, name="schedule_status_enum", native_enum=False),
        default=ScheduleStatusEnum.AVAILABLE,
        nullable=False,
        index=True,
    )
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}
