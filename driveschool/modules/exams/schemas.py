"""Exam request schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from driveschool.core.enums import ExamRequestStatusEnum, ExamResultEnum, ExamReviewActionEnum, ExamTypeEnum


class ExamRequestCreate(BaseModel):
    """Student exam request.

    ``requested_date`` accepts an ISO-8601 string or a datetime.
    """

    exam_type: ExamTypeEnum
    requested_date: datetime | str | None = None
    student_notes: str | None = Field(default=None, max_length=500)


class ExamReviewRequest(BaseModel):
    """Administrator decision on a pending request."""

    action: ExamReviewActionEnum
    scheduled_date: datetime | str | None = None
    admin_notes: str | None = Field(default=None, max_length=500)
    rejection_reason: str | None = Field(default=None, max_length=500)


class ExamResultUpdate(BaseModel):
    """Outcome of a scheduled exam."""

    result: ExamResultEnum


class ExamRequestFilters(BaseModel):
    """Administrator listing filters."""

    status: ExamRequestStatusEnum | None = None
    exam_type: ExamTypeEnum | None = None


class ExamRequestRead(BaseModel):
    """Exam request response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    student_id: UUID
    student_name: str
    student_email: str
    exam_type: ExamTypeEnum
    status: ExamRequestStatusEnum
    requested_date: datetime | None
    scheduled_date: datetime | None
    student_notes: str | None
    admin_notes: str | None
    rejection_reason: str | None
    exam_result: ExamResultEnum | None
    reviewed_by: UUID | None
    reviewed_at: datetime | None
    completed_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime
