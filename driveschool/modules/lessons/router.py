"""Lessons API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends

from driveschool.modules.booking.schemas import BookingRead
from driveschool.modules.identity.service import get_current_user
from driveschool.modules.lessons.schemas import LessonCompletionRequest
from driveschool.modules.lessons.service import (
    DRIVING_SKILLS,
    LessonCompletionService,
    get_lesson_completion_service,
)

router = APIRouter(prefix="/lessons", tags=["lessons"])


@router.get("/skills", response_model=list[str])
async def list_driving_skills() -> list[str]:
    """Skill vocabulary accepted in completion records."""
    return list(DRIVING_SKILLS)


@router.post("/bookings/{booking_id}/complete", response_model=BookingRead)
async def complete_lesson(
    booking_id: UUID,
    payload: LessonCompletionRequest,
    service: LessonCompletionService = Depends(get_lesson_completion_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Record lesson outcome for a confirmed booking."""
    booking = await service.complete_lesson(booking_id, payload, current_user)
    return BookingRead.model_validate(booking)


@router.get("/teachers/{teacher_id}/pending-completion", response_model=list[BookingRead])
async def list_pending_completion(
    teacher_id: UUID,
    service: LessonCompletionService = Depends(get_lesson_completion_service),
    current_user=Depends(get_current_user),
) -> list[BookingRead]:
    """Past lessons still waiting for a completion record."""
    items = await service.list_pending_completion(teacher_id, current_user)
    return [BookingRead.model_validate(item) for item in items]
