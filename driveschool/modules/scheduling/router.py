"""Scheduling API router."""

from __future__ import annotations

import datetime as dt
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from driveschool.core.enums import LessonTypeEnum
from driveschool.modules.booking.schemas import BookingRead
from driveschool.modules.identity.service import get_current_user
from driveschool.modules.scheduling.schemas import (
    ScheduleCreate,
    ScheduleDeleteResult,
    ScheduleDetailsRead,
    ScheduleFilters,
    ScheduleRead,
    ScheduleUpdate,
)
from driveschool.modules.scheduling.service import SchedulingService, get_scheduling_service
from driveschool.shared.pagination import Page, build_page, get_pagination_params

router = APIRouter(prefix="/scheduling", tags=["scheduling"])


def get_schedule_filters(
    date_from: dt.date | None = Query(default=None),
    date_to: dt.date | None = Query(default=None),
    lesson_type: LessonTypeEnum | None = Query(default=None),
    location: str | None = Query(default=None),
    teacher_id: UUID | None = Query(default=None),
    teacher_name: str | None = Query(default=None, max_length=255),
    include_all_statuses: bool = Query(default=False),
) -> ScheduleFilters:
    """FastAPI dependency for availability filters."""
    return ScheduleFilters(
        date_from=date_from,
        date_to=date_to,
        lesson_type=lesson_type,
        location=location,
        teacher_id=teacher_id,
        teacher_name_contains=teacher_name,
        include_all_statuses=include_all_statuses,
    )


@router.post("/schedules", response_model=ScheduleRead, status_code=status.HTTP_201_CREATED)
async def create_schedule(
    payload: ScheduleCreate,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> ScheduleRead:
    """Publish a lesson slot."""
    schedule = await service.create_schedule(payload, current_user)
    return ScheduleRead.model_validate(schedule)


@router.get("/schedules/available", response_model=Page[ScheduleRead])
async def list_available_schedules(
    filters: ScheduleFilters = Depends(get_schedule_filters),
    pagination=Depends(get_pagination_params),
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> Page[ScheduleRead]:
    """List bookable slots."""
    items, total = await service.list_available(filters, pagination.limit, pagination.offset)
    serialized = [ScheduleRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/locations", response_model=list[str])
async def list_schedule_locations(
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[str]:
    """Locations to filter available slots by."""
    return await service.list_locations()


@router.get("/lesson-types", response_model=list[str])
async def list_lesson_types() -> list[str]:
    """Lesson types to filter available slots by."""
    return sorted(lesson_type.value for lesson_type in LessonTypeEnum)


@router.get("/teachers/{teacher_id}/schedules", response_model=list[ScheduleRead])
async def list_teacher_schedules(
    teacher_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> list[ScheduleRead]:
    """List all slots of a teacher."""
    items = await service.list_teacher_schedules(teacher_id, current_user)
    return [ScheduleRead.model_validate(item) for item in items]


@router.get("/schedules/{schedule_id}", response_model=ScheduleRead)
async def get_schedule(
    schedule_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> ScheduleRead:
    """Return one slot."""
    schedule = await service.get_schedule(schedule_id)
    return ScheduleRead.model_validate(schedule)


@router.get("/schedules/{schedule_id}/details", response_model=ScheduleDetailsRead)
async def get_schedule_details(
    schedule_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> ScheduleDetailsRead:
    """Return a slot with its bookings."""
    schedule, bookings = await service.get_schedule_details(schedule_id, current_user)
    return ScheduleDetailsRead(
        schedule=ScheduleRead.model_validate(schedule),
        bookings=[BookingRead.model_validate(item) for item in bookings],
    )


@router.patch("/schedules/{schedule_id}", response_model=ScheduleRead)
async def update_schedule(
    schedule_id: UUID,
    payload: ScheduleUpdate,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> ScheduleRead:
    """Edit a slot."""
    schedule = await service.update_schedule(schedule_id, payload, current_user)
    return ScheduleRead.model_validate(schedule)


@router.delete("/schedules/{schedule_id}", response_model=ScheduleDeleteResult)
async def delete_schedule(
    schedule_id: UUID,
    service: SchedulingService = Depends(get_scheduling_service),
    current_user=Depends(get_current_user),
) -> ScheduleDeleteResult:
    """Delete a slot and cancel its confirmed bookings."""
    cancelled = await service.delete_schedule(schedule_id, current_user)
    return ScheduleDeleteResult(
        schedule_id=schedule_id,
        cancelled_booking_ids=[booking.id for booking in cancelled],
    )
