"""Booking business logic layer."""

from __future__ import annotations

from collections.abc import Iterable
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.config import SchedulingPolicy, get_settings
from driveschool.core.database import get_db_session
from driveschool.core.enums import BookingStatusEnum, RoleEnum
from driveschool.core.metrics import record_booking_outcome, record_cancellation_outcome
from driveschool.modules.audit.repository import AuditRepository
from driveschool.modules.booking.models import Booking
from driveschool.modules.booking.repository import BookingRepository
from driveschool.modules.booking.schemas import BookingCancelRequest, BookingCreate, TeacherNoteUpdate
from driveschool.modules.identity.models import User
from driveschool.modules.scheduling.repository import CLOSED_SCHEDULE_STATUSES, SchedulingRepository
from driveschool.modules.scheduling.service import add_student, has_free_seat, release_student, schedule_start
from driveschool.shared.exceptions import (
    CancellationWindowExpiredException,
    CapacityExceededException,
    DuplicateBookingException,
    InvalidStateTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from driveschool.shared.time_normalizer import combine_date_and_time, is_representable
from driveschool.shared.utils import clean_text, hours_between, utc_now


class BookingService:
    """Booking domain service with capacity and cancellation-window rules."""

    def __init__(
        self,
        booking_repository: BookingRepository,
        scheduling_repository: SchedulingRepository,
        audit_repository: AuditRepository,
        policy: SchedulingPolicy,
    ) -> None:
        self.booking_repository = booking_repository
        self.scheduling_repository = scheduling_repository
        self.audit_repository = audit_repository
        self.policy = policy

    def _validate_actor_access(self, booking: Booking, actor: User) -> None:
        if actor.role.name == RoleEnum.ADMIN:
            return
        if actor.role.name == RoleEnum.STUDENT and booking.student_id == actor.id:
            return
        if actor.role.name == RoleEnum.TEACHER and booking.teacher_id == actor.id:
            return
        raise UnauthorizedException("You cannot access this booking")

    async def _get_booking(self, booking_id: UUID) -> Booking:
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        return booking

    async def create_booking(self, payload: BookingCreate, actor: User) -> Booking:
        """Reserve one seat on a schedule for the acting student."""
        if actor.role.name != RoleEnum.STUDENT:
            raise UnauthorizedException("Only students can book lessons")

        async with self.scheduling_repository.lock_schedule(payload.schedule_id) as schedule:
            if schedule is None:
                raise NotFoundException("Schedule not found")
            if schedule.status in CLOSED_SCHEDULE_STATUSES:
                raise ValidationException(
                    "This lesson is not open for booking",
                    {"schedule_id": f"Schedule is {schedule.status}"},
                )

            start_at = schedule_start(schedule, self.policy.tzinfo)
            if not is_representable(start_at):
                raise ValidationException(
                    "This lesson has an invalid start time",
                    {"start_time": "Not a recognizable time"},
                )
            if start_at <= utc_now():
                raise ValidationException(
                    "Cannot book a lesson that has already started",
                    {"schedule_id": "Lesson start is in the past"},
                )
            # Booking uses the same lead time as cancelling.
            lead_hours = self.policy.cancellation_window_hours
            if hours_between(utc_now(), start_at) < lead_hours:
                raise ValidationException(
                    f"Lessons must be booked at least {lead_hours:g} hours before they start",
                    {"schedule_id": f"Lesson starts in less than {lead_hours:g} hours"},
                )

            if not has_free_seat(schedule):
                record_booking_outcome("capacity_exceeded")
                raise CapacityExceededException("This lesson is fully booked")
            if actor.id in (schedule.booked_student_ids or []):
                record_booking_outcome("duplicate")
                raise DuplicateBookingException("You have already booked this lesson")

            add_student(schedule, actor.id)
            await self.scheduling_repository.save(schedule)

            booking = await self.booking_repository.create_booking(
                schedule_id=schedule.id,
                student_id=actor.id,
                student_name=actor.display_name,
                student_email=actor.email,
                teacher_id=schedule.teacher_id,
                teacher_name=schedule.teacher_name,
                lesson_type=schedule.lesson_type,
                date=schedule.date,
                start_time=schedule.start_time,
                end_time=schedule.end_time,
                location=schedule.location,
                status=BookingStatusEnum.CONFIRMED,
                notes=clean_text(payload.notes),
                booked_at=utc_now(),
            )
            await self.audit_repository.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.confirmed",
                payload={
                    "booking_id": str(booking.id),
                    "schedule_id": str(schedule.id),
                    "student_id": str(actor.id),
                    "teacher_id": str(schedule.teacher_id),
                    "date": schedule.date.isoformat(),
                    "start_time": schedule.start_time,
                },
            )

        record_booking_outcome("confirmed")
        return booking

    async def cancel_booking(
        self,
        booking_id: UUID,
        payload: BookingCancelRequest,
        actor: User,
    ) -> Booking:
        """Cancel a confirmed booking and release its seat.

        Refused with ``CancellationWindowExpiredException`` once fewer than
        ``policy.cancellation_window_hours`` remain before the lesson start.
        """
        booking = await self._get_booking(booking_id)
        is_owner = actor.role.name == RoleEnum.STUDENT and booking.student_id == actor.id
        if actor.role.name != RoleEnum.ADMIN and not is_owner:
            raise UnauthorizedException("You cannot cancel this booking")

        async with self.scheduling_repository.lock_schedule(booking.schedule_id) as schedule:
            booking = await self.booking_repository.get_booking_by_id(booking_id, for_update=True)
            if booking is None:
                raise NotFoundException("Booking not found")
            if booking.status != BookingStatusEnum.CONFIRMED:
                raise InvalidStateTransitionException("booking", booking.id, booking.status, "cancel")

            start_at = combine_date_and_time(booking.date, booking.start_time, self.policy.tzinfo)
            if not is_representable(start_at):
                raise ValidationException(
                    "This booking has an invalid start time",
                    {"start_time": "Not a recognizable time"},
                )
            hours_until_start = hours_between(utc_now(), start_at)
            if hours_until_start < self.policy.cancellation_window_hours:
                record_cancellation_outcome("window_expired")
                raise CancellationWindowExpiredException(
                    hours_until_start,
                    self.policy.cancellation_window_hours,
                )

            booking.status = BookingStatusEnum.CANCELLED
            booking.cancelled_at = utc_now()
            booking.cancellation_reason = clean_text(payload.reason)
            await self.booking_repository.save(booking)

            if schedule is not None:
                release_student(schedule, booking.student_id)
                await self.scheduling_repository.save(schedule)

            await self.audit_repository.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.cancelled",
                payload={
                    "booking_id": str(booking.id),
                    "schedule_id": str(booking.schedule_id),
                    "student_id": str(booking.student_id),
                    "teacher_id": str(booking.teacher_id),
                    "reason": booking.cancellation_reason,
                },
            )

        record_cancellation_outcome("cancelled")
        return booking

    async def add_teacher_note(self, booking_id: UUID, payload: TeacherNoteUpdate, actor: User) -> Booking:
        """Set or clear the teacher's note; allowed in every booking status."""
        booking = await self._get_booking(booking_id)
        is_owner = actor.role.name == RoleEnum.TEACHER and booking.teacher_id == actor.id
        if actor.role.name != RoleEnum.ADMIN and not is_owner:
            raise UnauthorizedException("Only the lesson teacher can annotate this booking")

        booking.teacher_notes = clean_text(payload.text)
        booking.teacher_notes_updated_at = utc_now()
        booking.teacher_notes_updated_by = actor.id
        await self.booking_repository.save(booking)

        if booking.teacher_notes is not None:
            await self.audit_repository.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.teacher_note.added",
                payload={
                    "booking_id": str(booking.id),
                    "student_id": str(booking.student_id),
                    "teacher_id": str(booking.teacher_id),
                },
            )
        return booking

    async def get_booking(self, booking_id: UUID, actor: User) -> Booking:
        """Return one booking visible to the actor."""
        booking = await self._get_booking(booking_id)
        self._validate_actor_access(booking, actor)
        return booking

    async def list_student_bookings(self, actor: User) -> list[Booking]:
        """Own bookings of the acting student, newest first."""
        if actor.role.name != RoleEnum.STUDENT:
            raise UnauthorizedException("Only students have bookings")
        return await self.booking_repository.list_student_bookings(actor.id)

    async def list_teacher_bookings(
        self,
        teacher_id: UUID,
        actor: User,
        statuses: Iterable[BookingStatusEnum] | None = None,
    ) -> list[Booking]:
        """Bookings on a teacher's lessons, most recent lesson first."""
        if actor.role.name != RoleEnum.ADMIN and actor.id != teacher_id:
            raise UnauthorizedException("You can only view bookings for your own lessons")
        return await self.booking_repository.list_teacher_bookings(teacher_id, statuses)


async def get_booking_service(session: AsyncSession = Depends(get_db_session)) -> BookingService:
    """Dependency provider for booking service."""
    return BookingService(
        booking_repository=BookingRepository(session),
        scheduling_repository=SchedulingRepository(session),
        audit_repository=AuditRepository(session),
        policy=get_settings().scheduling_policy(),
    )
