"""Exam requests API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from driveschool.core.enums import ExamRequestStatusEnum, ExamTypeEnum
from driveschool.modules.exams.schemas import (
    ExamRequestCreate,
    ExamRequestFilters,
    ExamRequestRead,
    ExamResultUpdate,
    ExamReviewRequest,
)
from driveschool.modules.exams.service import ExamsService, get_exams_service
from driveschool.modules.identity.service import get_current_user
from driveschool.shared.pagination import Page, build_page, get_pagination_params, slice_page

router = APIRouter(prefix="/exams", tags=["exams"])


@router.post("/requests", response_model=ExamRequestRead, status_code=status.HTTP_201_CREATED)
async def submit_exam_request(
    payload: ExamRequestCreate,
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> ExamRequestRead:
    """Request an exam."""
    request = await service.submit_request(payload, current_user)
    return ExamRequestRead.model_validate(request)


@router.get("/requests", response_model=Page[ExamRequestRead])
async def list_exam_requests(
    request_status: ExamRequestStatusEnum | None = Query(default=None, alias="status"),
    exam_type: ExamTypeEnum | None = Query(default=None),
    pagination=Depends(get_pagination_params),
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> Page[ExamRequestRead]:
    """List all exam requests (admin)."""
    requests = await service.list_all_requests(
        ExamRequestFilters(status=request_status, exam_type=exam_type),
        current_user,
    )
    items, total = slice_page(requests, pagination.limit, pagination.offset)
    serialized = [ExamRequestRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/requests/{request_id}", response_model=ExamRequestRead)
async def get_exam_request(
    request_id: UUID,
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> ExamRequestRead:
    """Read one exam request."""
    request = await service.get_request(request_id, current_user)
    return ExamRequestRead.model_validate(request)


@router.get("/students/{student_id}/requests", response_model=list[ExamRequestRead])
async def list_student_exam_requests(
    student_id: UUID,
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> list[ExamRequestRead]:
    """List one student's exam requests."""
    requests = await service.list_student_requests(student_id, current_user)
    return [ExamRequestRead.model_validate(item) for item in requests]


@router.post("/requests/{request_id}/review", response_model=ExamRequestRead)
async def review_exam_request(
    request_id: UUID,
    payload: ExamReviewRequest,
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> ExamRequestRead:
    """Approve or reject a pending request."""
    request = await service.review_request(request_id, payload, current_user)
    return ExamRequestRead.model_validate(request)


@router.post("/requests/{request_id}/result", response_model=ExamRequestRead)
async def set_exam_result(
    request_id: UUID,
    payload: ExamResultUpdate,
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> ExamRequestRead:
    """Record the result of a scheduled exam."""
    request = await service.set_result(request_id, payload, current_user)
    return ExamRequestRead.model_validate(request)


@router.post("/requests/{request_id}/cancel", response_model=ExamRequestRead)
async def cancel_exam_request(
    request_id: UUID,
    service: ExamsService = Depends(get_exams_service),
    current_user=Depends(get_current_user),
) -> ExamRequestRead:
    """Withdraw an active request."""
    request = await service.cancel_request(request_id, current_user)
    return ExamRequestRead.model_validate(request)
