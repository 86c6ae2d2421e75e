"""Exam request ORM models."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import DateTime, Enum as SAEnum, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from driveschool.core.database import Base, BaseModelMixin
from driveschool.core.enums import ExamRequestStatusEnum, ExamResultEnum, ExamTypeEnum


class ExamRequest(BaseModelMixin, Base):
    """Student request to sit a theory, practical or road-test exam."""

    __tablename__ = "exam_requests"
    __table_args__ = (Index("ix_exam_requests_student_id_status", "student_id", "status"),)

    student_id: Mapped[UUID] = mapped_column(ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    student_name: Mapped[str] = mapped_column(String(255), nullable=False)
    student_email: Mapped[str] = mapped_column(String(255), nullable=False)
    exam_type: Mapped[ExamTypeEnum] = mapped_column(
        SAEnum(ExamTypeEnum, name="exam_type_enum", native_enum=False),
        nullable=False,
    )
    status: Mapped[ExamRequestStatusEnum] = mapped_column(
        SAEnum(ExamRequestStatusEnum, name="exam_request_status_enum", native_enum=False),
        default=ExamRequestStatusEnum.PENDING,
        nullable=False,
        index=True,
    )
    requested_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    scheduled_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    student_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    exam_result: Mapped[ExamResultEnum | None] = mapped_column(
        SAEnum(ExamResultEnum, name="exam_result_enum", native_enum=False),
        nullable=True,
    )
    reviewed_by: Mapped[UUID | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
