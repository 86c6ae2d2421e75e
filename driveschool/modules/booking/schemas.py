"""Booking schemas."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from driveschool.core.enums import BookingStatusEnum, LessonTypeEnum


class BookingCreate(BaseModel):
    """Reserve a seat on a schedule."""

    schedule_id: UUID
    notes: str | None = Field(default=None, max_length=1000)


class BookingCancelRequest(BaseModel):
    """Cancel booking request."""

    reason: str | None = Field(default=None, max_length=512)


class TeacherNoteUpdate(BaseModel):
    """Teacher annotation; blank text clears the note."""

    text: str = Field(default="", max_length=2000)


class BookingRead(BaseModel):
    """Booking response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    schedule_id: UUID
    student_id: UUID
    student_name: str
    student_email: str
    teacher_id: UUID
    teacher_name: str
    lesson_type: LessonTypeEnum
    date: dt.date
    start_time: str
    end_time: str
    location: str | None
    status: BookingStatusEnum
    notes: str | None
    booked_at: dt.datetime
    teacher_notes: str | None
    teacher_notes_updated_at: dt.datetime | None
    cancelled_at: dt.datetime | None
    cancellation_reason: str | None
    completed_at: dt.datetime | None
    completed_by: UUID | None
    hours_completed: float | None
    performance_rating: int | None
    skills_improved: list[str]
    areas_to_improve: str | None
    ready_for_next_level: bool | None
    created_at: dt.datetime
    updated_at: dt.datetime
