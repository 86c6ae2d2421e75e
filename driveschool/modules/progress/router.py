"""Progress API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from driveschool.modules.identity.service import get_current_user
from driveschool.modules.progress.schemas import ExamEligibilityRead, StudentProgressRead
from driveschool.modules.progress.service import ProgressService, get_progress_service

router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("/me", response_model=StudentProgressRead)
async def get_my_progress(
    service: ProgressService = Depends(get_progress_service),
    current_user=Depends(get_current_user),
) -> StudentProgressRead:
    """Progress of the current student."""
    return await service.compute_progress(current_user.id, current_user)


@router.get("/students/{student_id}", response_model=StudentProgressRead)
async def get_student_progress(
    student_id: UUID,
    service: ProgressService = Depends(get_progress_service),
    current_user=Depends(get_current_user),
) -> StudentProgressRead:
    """Progress of one student."""
    return await service.compute_progress(student_id, current_user)


@router.get("/students/{student_id}/exam-eligibility", response_model=ExamEligibilityRead)
async def get_exam_eligibility(
    student_id: UUID,
    service: ProgressService = Depends(get_progress_service),
    current_user=Depends(get_current_user),
) -> ExamEligibilityRead:
    """Whether a student meets the exam thresholds."""
    return await service.check_exam_eligibility(student_id, current_user)
