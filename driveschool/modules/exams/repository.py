"""Exam request repository layer."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.enums import ExamRequestStatusEnum, ExamTypeEnum
from driveschool.modules.exams.models import ExamRequest


class ExamsRepository:
    """DB operations for exam requests."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_request(self, **fields: Any) -> ExamRequest:
        request = ExamRequest(**fields)
        self.session.add(request)
        await self.session.flush()
        return request

    async def get_request_by_id(self, request_id: UUID, *, for_update: bool = False) -> ExamRequest | None:
        stmt = select(ExamRequest).where(ExamRequest.id == request_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def list_requests(
        self,
        *,
        student_id: UUID | None = None,
        statuses: Iterable[ExamRequestStatusEnum] | None = None,
        exam_type: ExamTypeEnum | None = None,
    ) -> list[ExamRequest]:
        stmt = select(ExamRequest)
        if student_id is not None:
            stmt = stmt.where(ExamRequest.student_id == student_id)
        if statuses is not None:
            stmt = stmt.where(ExamRequest.status.in_(tuple(statuses)))
        if exam_type is not None:
            stmt = stmt.where(ExamRequest.exam_type == exam_type)
        stmt = stmt.order_by(ExamRequest.created_at.desc())
        return list((await self.session.scalars(stmt)).all())

    async def save(self, request: ExamRequest) -> ExamRequest:
        await self.session.flush()
        return request
