"""Scheduling business logic layer."""

from __future__ import annotations

import datetime as dt
import logging
from datetime import datetime, tzinfo
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.config import SchedulingPolicy, get_settings
from driveschool.core.database import get_db_session
from driveschool.core.enums import BookingStatusEnum, RoleEnum, ScheduleStatusEnum
from driveschool.modules.audit.repository import AuditRepository
from driveschool.modules.booking.models import Booking
from driveschool.modules.booking.repository import BookingRepository
from driveschool.modules.identity.models import User
from driveschool.modules.identity.repository import IdentityRepository
from driveschool.modules.scheduling.models import Schedule
from driveschool.modules.scheduling.repository import CLOSED_SCHEDULE_STATUSES, SchedulingRepository
from driveschool.modules.scheduling.schemas import ScheduleCreate, ScheduleFilters, ScheduleUpdate
from driveschool.shared.exceptions import (
    ConflictException,
    InvalidStateTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from driveschool.shared.pagination import slice_page
from driveschool.shared.time_normalizer import (
    NormalizedInstant,
    combine_date_and_time,
    is_representable,
    require_instant,
)
from driveschool.shared.utils import clean_text, utc_now

logger = logging.getLogger(__name__)

SCHEDULE_DELETED_REASON = "Schedule deleted by administrator"


def schedule_start(schedule: Schedule, tz: tzinfo) -> NormalizedInstant:
    """Start instant of a slot, or NOT_REPRESENTABLE for malformed rows."""
    return combine_date_and_time(schedule.date, schedule.start_time, tz)


def schedule_end(schedule: Schedule, tz: tzinfo) -> NormalizedInstant:
    return combine_date_and_time(schedule.date, schedule.end_time, tz)


def seats_taken(schedule: Schedule) -> int:
    return len(schedule.booked_student_ids or [])


def has_free_seat(schedule: Schedule) -> bool:
    """Capacity check from the seat set itself, never from the status label."""
    return seats_taken(schedule) < schedule.max_students


def occupancy_status(schedule: Schedule) -> ScheduleStatusEnum:
    """Display label matching the current seat count."""
    if schedule.status in CLOSED_SCHEDULE_STATUSES:
        return schedule.status
    if has_free_seat(schedule):
        return ScheduleStatusEnum.AVAILABLE
    return ScheduleStatusEnum.BOOKED


def add_student(schedule: Schedule, student_id: UUID) -> None:
    schedule.booked_student_ids = [*(schedule.booked_student_ids or []), student_id]
    schedule.status = occupancy_status(schedule)


def release_student(schedule: Schedule, student_id: UUID) -> None:
    schedule.booked_student_ids = [
        booked_id for booked_id in (schedule.booked_student_ids or []) if booked_id != student_id
    ]
    schedule.status = occupancy_status(schedule)


def _format_clock(instant: datetime) -> str:
    return instant.strftime("%H:%M:%S") if instant.second else instant.strftime("%H:%M")


class SchedulingService:
    """Scheduling domain service."""

    def __init__(
        self,
        repository: SchedulingRepository,
        booking_repository: BookingRepository,
        identity_repository: IdentityRepository,
        audit_repository: AuditRepository,
        policy: SchedulingPolicy,
    ) -> None:
        self.repository = repository
        self.booking_repository = booking_repository
        self.identity_repository = identity_repository
        self.audit_repository = audit_repository
        self.policy = policy

    def _parse_clock(self, schedule_date: dt.date, value: str, field: str) -> tuple[datetime, str]:
        tz = self.policy.tzinfo
        instant = require_instant(value, field, base_date=schedule_date, tz=tz)
        local = instant.astimezone(tz)
        if local.date() != schedule_date:
            raise ValidationException(
                f"Invalid {field}",
                {field: "Must be a time of day on the schedule date"},
            )
        return instant, _format_clock(local)

    def _validate_time_window(
        self,
        schedule_date: dt.date,
        start_value: str,
        end_value: str,
    ) -> tuple[datetime, datetime, str, str]:
        start_at, start_time = self._parse_clock(schedule_date, start_value, "start_time")
        end_at, end_time = self._parse_clock(schedule_date, end_value, "end_time")
        if end_at <= start_at:
            raise ValidationException(
                "Schedule end time must be after start time",
                {"end_time": "Must be after start_time"},
            )
        if start_at <= utc_now():
            raise ValidationException(
                "Schedule must start in the future",
                {"date": "Schedule start is in the past"},
            )
        return start_at, end_at, start_time, end_time

    @staticmethod
    def _validate_capacity(max_students: int, booked_count: int = 0) -> None:
        if isinstance(max_students, bool) or not isinstance(max_students, int) or max_students < 1:
            raise ValidationException(
                "Schedule capacity must be at least one student",
                {"max_students": "Must be an integer of at least 1"},
            )
        if max_students < booked_count:
            raise ValidationException(
                "Schedule capacity cannot drop below booked seats",
                {"max_students": f"{booked_count} students are already booked"},
            )

    async def _ensure_no_overlap(
        self,
        teacher_id: UUID,
        schedule_date: dt.date,
        start_at: datetime,
        end_at: datetime,
        exclude_id: UUID | None = None,
    ) -> None:
        tz = self.policy.tzinfo
        for other in await self.repository.list_teacher_schedules(teacher_id, on_date=schedule_date):
            if other.id == exclude_id or other.status == ScheduleStatusEnum.CANCELLED:
                continue
            other_start = schedule_start(other, tz)
            other_end = schedule_end(other, tz)
            if not (is_representable(other_start) and is_representable(other_end)):
                continue
            if start_at < other_end and other_start < end_at:
                raise ConflictException(
                    "Teacher already has a lesson scheduled at this time",
                    {"schedule_id": str(other.id)},
                )

    @staticmethod
    def _ensure_can_manage(schedule: Schedule, actor: User) -> None:
        if actor.role.name == RoleEnum.ADMIN:
            return
        if actor.role.name == RoleEnum.TEACHER and schedule.teacher_id == actor.id:
            return
        raise UnauthorizedException("You cannot manage this schedule")

    async def _resolve_teacher(self, payload: ScheduleCreate, actor: User) -> User:
        if actor.role.name == RoleEnum.TEACHER:
            if payload.teacher_id not in (None, actor.id):
                raise UnauthorizedException("Teachers can only create their own schedules")
            return actor

        if actor.role.name != RoleEnum.ADMIN:
            raise UnauthorizedException("Only teachers and administrators can create schedules")
        if payload.teacher_id is None:
            raise ValidationException("Teacher is required", {"teacher_id": "Required for administrators"})

        teacher = await self.identity_repository.get_user_by_id(payload.teacher_id)
        if teacher is None:
            raise NotFoundException("Teacher not found")
        if teacher.role.name != RoleEnum.TEACHER:
            raise ValidationException("Selected user is not a teacher", {"teacher_id": "Not a teacher"})
        return teacher

    async def create_schedule(self, payload: ScheduleCreate, actor: User) -> Schedule:
        """Publish a new lesson slot."""
        teacher = await self._resolve_teacher(payload, actor)
        self._validate_capacity(payload.max_students)
        start_at, end_at, start_time, end_time = self._validate_time_window(
            payload.date,
            payload.start_time,
            payload.end_time,
        )
        await self._ensure_no_overlap(teacher.id, payload.date, start_at, end_at)

        return await self.repository.create_schedule(
            teacher_id=teacher.id,
            teacher_name=teacher.display_name,
            lesson_type=payload.lesson_type,
            date=payload.date,
            start_time=start_time,
            end_time=end_time,
            max_students=payload.max_students,
            booked_student_ids=[],
            status=ScheduleStatusEnum.AVAILABLE,
            location=clean_text(payload.location),
            notes=clean_text(payload.notes),
            created_by_id=actor.id,
        )

    async def get_schedule(self, schedule_id: UUID) -> Schedule:
        """Return schedule by id."""
        schedule = await self.repository.get_schedule_by_id(schedule_id)
        if schedule is None:
            raise NotFoundException("Schedule not found")
        return schedule

    async def list_available(
        self,
        filters: ScheduleFilters,
        limit: int,
        offset: int,
        now: datetime | None = None,
    ) -> tuple[list[Schedule], int]:
        """Bookable slots ordered by start instant.

        Unless ``include_all_statuses`` is set, only slots that can still be
        booked are returned: a free seat, an open status and a start at least
        the booking lead time after ``now``. Slots whose start cannot be
        normalized are never listed.
        """
        now = now or utc_now()
        tz = self.policy.tzinfo
        only_open = not filters.include_all_statuses
        bookable_from = now + dt.timedelta(hours=self.policy.cancellation_window_hours)

        date_from = filters.date_from
        if only_open:
            today = now.astimezone(tz).date()
            date_from = max(date_from, today) if date_from else today

        candidates = await self.repository.list_schedules(
            date_from=date_from,
            date_to=filters.date_to,
            lesson_type=filters.lesson_type,
            location=filters.location,
            teacher_id=filters.teacher_id,
            teacher_name_contains=clean_text(filters.teacher_name_contains),
            only_open=only_open,
        )

        visible: list[tuple[datetime, Schedule]] = []
        for schedule in candidates:
            start_at = schedule_start(schedule, tz)
            if not is_representable(start_at):
                logger.warning("Skipping schedule %s with unreadable start time", schedule.id)
                continue
            if only_open and (
                start_at < bookable_from
                or start_at <= now
                or not has_free_seat(schedule)
                or schedule.status in CLOSED_SCHEDULE_STATUSES
            ):
                continue
            visible.append((start_at, schedule))

        visible.sort(key=lambda item: (item[0], str(item[1].id)))
        return slice_page([schedule for _, schedule in visible], limit, offset)

    async def list_locations(self) -> list[str]:
        """Distinct locations in use, for the availability filter."""
        return await self.repository.list_locations()

    async def list_teacher_schedules(self, teacher_id: UUID, actor: User) -> list[Schedule]:
        """All slots of one teacher, by date and start time."""
        if actor.role.name != RoleEnum.ADMIN and actor.id != teacher_id:
            raise UnauthorizedException("You can only view your own schedules")
        return await self.repository.list_teacher_schedules(teacher_id)

    async def update_schedule(self, schedule_id: UUID, payload: ScheduleUpdate, actor: User) -> Schedule:
        """Edit a slot; confirmed bookings receive the new slot details."""
        changes = payload.model_dump(exclude_unset=True)

        async with self.repository.lock_schedule(schedule_id) as schedule:
            if schedule is None:
                raise NotFoundException("Schedule not found")
            self._ensure_can_manage(schedule, actor)
            if schedule.status in CLOSED_SCHEDULE_STATUSES:
                raise InvalidStateTransitionException("schedule", schedule.id, schedule.status, "update")

            booked_count = seats_taken(schedule)
            if actor.role.name != RoleEnum.ADMIN and booked_count:
                raise ConflictException("Schedules with booked students can only be changed by an administrator")

            if changes.keys() & {"date", "start_time", "end_time"}:
                new_date = changes.get("date") or schedule.date
                start_at, end_at, start_time, end_time = self._validate_time_window(
                    new_date,
                    changes.get("start_time") or schedule.start_time,
                    changes.get("end_time") or schedule.end_time,
                )
                await self._ensure_no_overlap(schedule.teacher_id, new_date, start_at, end_at, exclude_id=schedule.id)
                schedule.date = new_date
                schedule.start_time = start_time
                schedule.end_time = end_time

            if changes.get("max_students") is not None:
                self._validate_capacity(changes["max_students"], booked_count)
                schedule.max_students = changes["max_students"]
            if changes.get("lesson_type") is not None:
                schedule.lesson_type = changes["lesson_type"]
            if "location" in changes:
                schedule.location = clean_text(changes["location"])
            if "notes" in changes:
                schedule.notes = clean_text(changes["notes"])

            schedule.status = occupancy_status(schedule)
            await self.repository.save(schedule)

            confirmed = await self.booking_repository.list_schedule_bookings(
                schedule.id,
                statuses=(BookingStatusEnum.CONFIRMED,),
            )
            for booking in confirmed:
                booking.lesson_type = schedule.lesson_type
                booking.date = schedule.date
                booking.start_time = schedule.start_time
                booking.end_time = schedule.end_time
                booking.location = schedule.location
                await self.booking_repository.save(booking)

        return schedule

    async def get_schedule_details(self, schedule_id: UUID, actor: User) -> tuple[Schedule, list[Booking]]:
        """Schedule plus every booking that references it."""
        schedule = await self.get_schedule(schedule_id)
        self._ensure_can_manage(schedule, actor)
        bookings = await self.booking_repository.list_schedule_bookings(schedule.id)
        return schedule, bookings

    async def delete_schedule(self, schedule_id: UUID, actor: User) -> list[Booking]:
        """Delete a slot and cancel every confirmed booking on it as one unit."""
        async with self.repository.lock_schedule(schedule_id) as schedule:
            if schedule is None:
                raise NotFoundException("Schedule not found")
            self._ensure_can_manage(schedule, actor)
            if actor.role.name != RoleEnum.ADMIN and seats_taken(schedule):
                raise ConflictException("Schedules with booked students can only be deleted by an administrator")

            confirmed = await self.booking_repository.list_schedule_bookings(
                schedule.id,
                statuses=(BookingStatusEnum.CONFIRMED,),
            )
            now = utc_now()
            for booking in confirmed:
                booking.status = BookingStatusEnum.CANCELLED
                booking.cancelled_at = now
                booking.cancellation_reason = SCHEDULE_DELETED_REASON
                await self.booking_repository.save(booking)
                await self.audit_repository.create_outbox_event(
                    aggregate_type="booking",
                    aggregate_id=str(booking.id),
                    event_type="booking.cancelled",
                    payload={
                        "booking_id": str(booking.id),
                        "schedule_id": str(schedule.id),
                        "student_id": str(booking.student_id),
                        "teacher_id": str(booking.teacher_id),
                        "reason": SCHEDULE_DELETED_REASON,
                    },
                )

            teacher_id = schedule.teacher_id
            await self.repository.delete_schedule(schedule)
            await self.audit_repository.create_outbox_event(
                aggregate_type="schedule",
                aggregate_id=str(schedule_id),
                event_type="schedule.deleted",
                payload={
                    "schedule_id": str(schedule_id),
                    "teacher_id": str(teacher_id),
                    "deleted_by": str(actor.id),
                    "cancelled_booking_ids": [str(booking.id) for booking in confirmed],
                },
            )

        logger.info("Deleted schedule %s, cancelled %d bookings", schedule_id, len(confirmed))
        return confirmed


async def get_scheduling_service(session: AsyncSession = Depends(get_db_session)) -> SchedulingService:
    """Dependency provider for scheduling service."""
    return SchedulingService(
        repository=SchedulingRepository(session),
        booking_repository=BookingRepository(session),
        identity_repository=IdentityRepository(session),
        audit_repository=AuditRepository(session),
        policy=get_settings().scheduling_policy(),
    )
