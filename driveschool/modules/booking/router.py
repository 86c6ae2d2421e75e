"""Booking API router."""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from driveschool.core.enums import BookingStatusEnum
from driveschool.modules.booking.schemas import BookingCancelRequest, BookingCreate, BookingRead, TeacherNoteUpdate
from driveschool.modules.booking.service import BookingService, get_booking_service
from driveschool.modules.identity.service import get_current_user
from driveschool.shared.pagination import Page, build_page, get_pagination_params, slice_page

router = APIRouter(prefix="/booking", tags=["booking"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
async def create_booking(
    payload: BookingCreate,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Book a seat on a lesson."""
    booking = await service.create_booking(payload, current_user)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/cancel", response_model=BookingRead)
async def cancel_booking(
    booking_id: UUID,
    payload: BookingCancelRequest,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Cancel booking outside the cancellation window."""
    booking = await service.cancel_booking(booking_id, payload, current_user)
    return BookingRead.model_validate(booking)


@router.put("/{booking_id}/teacher-notes", response_model=BookingRead)
async def update_teacher_notes(
    booking_id: UUID,
    payload: TeacherNoteUpdate,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Set or clear the teacher note on a booking."""
    booking = await service.add_teacher_note(booking_id, payload, current_user)
    return BookingRead.model_validate(booking)


@router.get("/my", response_model=Page[BookingRead])
async def list_my_bookings(
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> Page[BookingRead]:
    """List bookings of the current student."""
    bookings = await service.list_student_bookings(current_user)
    items, total = slice_page(bookings, pagination.limit, pagination.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/teachers/{teacher_id}", response_model=Page[BookingRead])
async def list_teacher_bookings(
    teacher_id: UUID,
    statuses: list[BookingStatusEnum] | None = Query(default=None, alias="status"),
    pagination=Depends(get_pagination_params),
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> Page[BookingRead]:
    """List bookings on a teacher's lessons."""
    bookings = await service.list_teacher_bookings(teacher_id, current_user, statuses)
    items, total = slice_page(bookings, pagination.limit, pagination.offset)
    serialized = [BookingRead.model_validate(item) for item in items]
    return build_page(serialized, total, pagination)


@router.get("/{booking_id}", response_model=BookingRead)
async def get_booking(
    booking_id: UUID,
    service: BookingService = Depends(get_booking_service),
    current_user=Depends(get_current_user),
) -> BookingRead:
    """Return one booking."""
    booking = await service.get_booking(booking_id, current_user)
    return BookingRead.model_validate(booking)
