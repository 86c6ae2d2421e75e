"""Scheduling schemas."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, computed_field

from driveschool.core.enums import LessonTypeEnum, ScheduleStatusEnum
from driveschool.modules.booking.schemas import BookingRead


class ScheduleCreate(BaseModel):
    """Publish a lesson slot.

    Times are ``HH:MM`` wall-clock values on ``date`` in the school timezone.
    ``teacher_id`` is only read when an administrator creates the slot.
    """

    teacher_id: UUID | None = None
    lesson_type: LessonTypeEnum
    date: dt.date
    start_time: str = Field(max_length=32)
    end_time: str = Field(max_length=32)
    max_students: int = 1
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)


class ScheduleUpdate(BaseModel):
    """Partial schedule update."""

    lesson_type: LessonTypeEnum | None = None
    date: dt.date | None = None
    start_time: str | None = Field(default=None, max_length=32)
    end_time: str | None = Field(default=None, max_length=32)
    max_students: int | None = None
    location: str | None = Field(default=None, max_length=255)
    notes: str | None = Field(default=None, max_length=2000)


class ScheduleFilters(BaseModel):
    """Availability search filters; date bounds are inclusive calendar days."""

    date_from: dt.date | None = None
    date_to: dt.date | None = None
    lesson_type: LessonTypeEnum | None = None
    location: str | None = None
    teacher_id: UUID | None = None
    teacher_name_contains: str | None = None
    include_all_statuses: bool = False


class ScheduleRead(BaseModel):
    """Schedule response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    teacher_id: UUID
    teacher_name: str
    lesson_type: LessonTypeEnum
    date: dt.date
    start_time: str
    end_time: str
    max_students: int
    booked_student_ids: list[UUID]
    status: ScheduleStatusEnum
    location: str | None
    notes: str | None
    created_by_id: UUID
    created_at: dt.datetime
    updated_at: dt.datetime

    @computed_field
    @property
    def available_seats(self) -> int:
        return max(self.max_students - len(self.booked_student_ids), 0)


class ScheduleDetailsRead(BaseModel):
    """Schedule with every booking that references it."""

    schedule: ScheduleRead
    bookings: list[BookingRead]


class ScheduleDeleteResult(BaseModel):
    """Outcome of a cascading schedule delete."""

    schedule_id: UUID
    cancelled_booking_ids: list[UUID]
