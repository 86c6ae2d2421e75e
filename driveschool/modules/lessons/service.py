"""Lesson completion business logic layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.config import SchedulingPolicy, get_settings
from driveschool.core.database import get_db_session
from driveschool.core.enums import BookingStatusEnum, RoleEnum
from driveschool.modules.audit.repository import AuditRepository
from driveschool.modules.booking.models import Booking
from driveschool.modules.booking.repository import BookingRepository
from driveschool.modules.identity.models import User
from driveschool.modules.lessons.schemas import LessonCompletionRequest
from driveschool.modules.scheduling.repository import SchedulingRepository
from driveschool.modules.scheduling.service import release_student
from driveschool.shared.exceptions import (
    InvalidStateTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from driveschool.shared.time_normalizer import combine_date_and_time, is_representable
from driveschool.shared.utils import clean_text, utc_now

DRIVING_SKILLS: tuple[str, ...] = (
    "Steering Control",
    "Gear Changes",
    "Smooth Braking",
    "Clutch Control",
    "Parallel Parking",
    "Reverse Parking",
    "Bay Parking",
    "Highway Merging",
    "Lane Discipline",
    "Mirror Usage",
    "Turn Signals",
    "Speed Control",
    "Hazard Awareness",
    "Roundabout Navigation",
    "Pedestrian Awareness",
    "Traffic Light Compliance",
    "Safe Following Distance",
    "Emergency Stops",
    "Hill Starts",
    "Three-Point Turn",
)


class LessonCompletionService:
    """Turns a past confirmed booking into a completion record.

    Completion is terminal: there is no edit or undo path.
    """

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

    def _validate_payload(self, payload: LessonCompletionRequest) -> tuple[list[str], str]:
        errors: dict[str, str] = {}

        if payload.hours_completed not in self.policy.allowed_lesson_hours:
            allowed = ", ".join(f"{hours:g}" for hours in self.policy.allowed_lesson_hours)
            errors["hours_completed"] = f"Must be one of {allowed}"

        rating = payload.performance_rating
        if not self.policy.min_rating <= rating <= self.policy.max_rating:
            errors["performance_rating"] = (
                f"Must be an integer from {self.policy.min_rating} to {self.policy.max_rating}"
            )

        skills = [skill.strip() for skill in payload.skills_improved]
        unknown = [skill for skill in skills if skill not in DRIVING_SKILLS]
        if not skills:
            errors["skills_improved"] = "Select at least one skill"
        elif len(set(skills)) != len(skills):
            errors["skills_improved"] = "Skills must not repeat"
        elif unknown:
            errors["skills_improved"] = f"Unknown skills: {', '.join(unknown)}"

        areas = clean_text(payload.areas_to_improve)
        if areas is None:
            errors["areas_to_improve"] = "Describe what the student should work on"

        if errors:
            raise ValidationException("Invalid lesson completion", errors)
        return skills, areas

    async def complete_lesson(
        self,
        booking_id: UUID,
        payload: LessonCompletionRequest,
        actor: User,
    ) -> Booking:
        """Record the outcome of a lesson that has already started."""
        booking = await self.booking_repository.get_booking_by_id(booking_id)
        if booking is None:
            raise NotFoundException("Booking not found")
        is_owner = actor.role.name == RoleEnum.TEACHER and booking.teacher_id == actor.id
        if actor.role.name != RoleEnum.ADMIN and not is_owner:
            raise UnauthorizedException("Only the lesson teacher can complete this lesson")

        async with self.scheduling_repository.lock_schedule(booking.schedule_id) as schedule:
            booking = await self.booking_repository.get_booking_by_id(booking_id, for_update=True)
            if booking is None:
                raise NotFoundException("Booking not found")
            if booking.status != BookingStatusEnum.CONFIRMED:
                raise InvalidStateTransitionException("booking", booking.id, booking.status, "complete")

            start_at = combine_date_and_time(booking.date, booking.start_time, self.policy.tzinfo)
            if not is_representable(start_at):
                raise ValidationException(
                    "This booking has an invalid start time",
                    {"start_time": "Not a recognizable time"},
                )
            now = utc_now()
            if start_at >= now:
                raise ValidationException(
                    "Cannot complete a lesson that has not started yet",
                    {"booking_id": "Lesson has not started"},
                )

            skills, areas = self._validate_payload(payload)

            booking.status = BookingStatusEnum.COMPLETED
            booking.completed_at = now
            booking.completed_by = actor.id
            booking.hours_completed = payload.hours_completed
            booking.performance_rating = payload.performance_rating
            booking.skills_improved = skills
            booking.areas_to_improve = areas
            booking.ready_for_next_level = payload.ready_for_next_level
            await self.booking_repository.save(booking)

            if schedule is not None:
                release_student(schedule, booking.student_id)
                await self.scheduling_repository.save(schedule)

            await self.audit_repository.create_outbox_event(
                aggregate_type="booking",
                aggregate_id=str(booking.id),
                event_type="booking.completed",
                payload={
                    "booking_id": str(booking.id),
                    "student_id": str(booking.student_id),
                    "teacher_id": str(booking.teacher_id),
                    "hours_completed": booking.hours_completed,
                    "performance_rating": booking.performance_rating,
                    "ready_for_next_level": booking.ready_for_next_level,
                },
            )

        return booking

    async def list_pending_completion(self, teacher_id: UUID, actor: User) -> list[Booking]:
        """Confirmed bookings of a teacher whose lesson has already ended, oldest first."""
        if actor.role.name != RoleEnum.ADMIN and actor.id != teacher_id:
            raise UnauthorizedException("You can only view your own lessons")

        now = utc_now()
        tz = self.policy.tzinfo
        pending: list[tuple[datetime, Booking]] = []
        for booking in await self.booking_repository.list_teacher_bookings(
            teacher_id,
            statuses=(BookingStatusEnum.CONFIRMED,),
        ):
            end_at = combine_date_and_time(booking.date, booking.end_time, tz)
            if is_representable(end_at) and end_at < now:
                pending.append((end_at, booking))

        pending.sort(key=lambda item: (item[0], str(item[1].id)))
        return [booking for _, booking in pending]


async def get_lesson_completion_service(
    session: AsyncSession = Depends(get_db_session),
) -> LessonCompletionService:
    """Dependency provider for lesson completion service."""
    return LessonCompletionService(
        booking_repository=BookingRepository(session),
        scheduling_repository=SchedulingRepository(session),
        audit_repository=AuditRepository(session),
        policy=get_settings().scheduling_policy(),
    )
