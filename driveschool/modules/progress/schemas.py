"""Progress schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel


class StudentProgressRead(BaseModel):
    """Cumulative progress derived from a student's completed lessons."""

    student_id: UUID
    total_hours: float
    total_lessons: int
    average_rating: float
    top_skills: list[str]
    last_lesson: datetime | None
    bookings_by_type: dict[str, int]
    hours_to_exam: float
    ready_for_exam: bool


class ExamEligibilityRead(BaseModel):
    """Exam readiness snapshot with the thresholds it was judged against."""

    student_id: UUID
    eligible: bool
    total_hours: float
    average_rating: float
    min_hours_for_exam: float
    min_rating_for_exam: float
