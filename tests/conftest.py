from __future__ import annotations

import asyncio
import copy
import datetime as dt
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from typing import Any
from uuid import UUID, uuid4

import pytest

import driveschool.modules.booking.service as booking_service_module
import driveschool.modules.exams.service as exams_service_module
import driveschool.modules.lessons.service as lessons_service_module
import driveschool.modules.scheduling.service as scheduling_service_module
from driveschool.core.config import SchedulingPolicy
from driveschool.core.enums import (
    BookingStatusEnum,
    ExamRequestStatusEnum,
    LessonTypeEnum,
    RoleEnum,
    ScheduleStatusEnum,
)
from driveschool.modules.booking.service import BookingService
from driveschool.modules.exams.service import ExamsService
from driveschool.modules.lessons.service import LessonCompletionService
from driveschool.modules.progress.service import ProgressService
from driveschool.modules.scheduling.repository import CLOSED_SCHEDULE_STATUSES
from driveschool.modules.scheduling.service import SchedulingService

FIXED_NOW = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


@dataclass
class FakeSchedule:
    id: UUID
    teacher_id: UUID
    teacher_name: str
    lesson_type: LessonTypeEnum
    date: dt.date
    start_time: str
    end_time: str
    max_students: int = 1
    booked_student_ids: list[UUID] = field(default_factory=list)
    status: ScheduleStatusEnum = ScheduleStatusEnum.AVAILABLE
    location: str | None = None
    notes: str | None = None
    created_by_id: UUID | None = None
    version: int = 1


@dataclass
class FakeBooking:
    id: UUID
    schedule_id: UUID
    student_id: UUID
    student_name: str
    student_email: str
    teacher_id: UUID
    teacher_name: str
    lesson_type: LessonTypeEnum
    date: dt.date
    start_time: str
    end_time: str
    location: str | None = None
    status: BookingStatusEnum = BookingStatusEnum.CONFIRMED
    notes: str | None = None
    booked_at: datetime = FIXED_NOW
    teacher_notes: str | None = None
    teacher_notes_updated_at: datetime | None = None
    teacher_notes_updated_by: UUID | None = None
    cancelled_at: datetime | None = None
    cancellation_reason: str | None = None
    completed_at: datetime | None = None
    completed_by: UUID | None = None
    hours_completed: float | None = None
    performance_rating: int | None = None
    skills_improved: list[str] = field(default_factory=list)
    areas_to_improve: str | None = None
    ready_for_next_level: bool | None = None


@dataclass
class FakeExamRequest:
    id: UUID
    student_id: UUID
    student_name: str
    student_email: str
    exam_type: Any
    status: ExamRequestStatusEnum
    created_at: datetime
    updated_at: datetime
    requested_date: datetime | None = None
    scheduled_date: datetime | None = None
    student_notes: str | None = None
    admin_notes: str | None = None
    rejection_reason: str | None = None
    exam_result: Any = None
    reviewed_by: UUID | None = None
    reviewed_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None


class FakeStore:
    """Shared rows for the fake repositories; snapshots emulate a savepoint."""

    def __init__(self) -> None:
        self.schedules: dict[UUID, FakeSchedule] = {}
        self.bookings: dict[UUID, FakeBooking] = {}

    def snapshot(self) -> tuple[dict, dict]:
        return (
            {key: (row, copy.copy(row)) for key, row in self.schedules.items()},
            {key: (row, copy.copy(row)) for key, row in self.bookings.items()},
        )

    def restore(self, snapshot: tuple[dict, dict]) -> None:
        schedules, bookings = snapshot
        for target, saved in (*schedules.values(), *bookings.values()):
            target.__dict__.update(saved.__dict__)
        self.schedules = {key: row for key, (row, _) in schedules.items()}
        self.bookings = {key: row for key, (row, _) in bookings.items()}


class FakeSchedulingRepository:
    def __init__(self, store: FakeStore) -> None:
        self.store = store
        self._locks: dict[UUID, asyncio.Lock] = {}

    async def create_schedule(self, **fields: Any) -> FakeSchedule:
        schedule = FakeSchedule(id=uuid4(), **fields)
        self.store.schedules[schedule.id] = schedule
        return schedule

    async def get_schedule_by_id(self, schedule_id: UUID) -> FakeSchedule | None:
        return self.store.schedules.get(schedule_id)

    @asynccontextmanager
    async def lock_schedule(self, schedule_id: UUID) -> AsyncIterator[FakeSchedule | None]:
        lock = self._locks.setdefault(schedule_id, asyncio.Lock())
        async with lock:
            snapshot = self.store.snapshot()
            schedule = self.store.schedules.get(schedule_id)
            # Give concurrent callers a chance to interleave.
            await asyncio.sleep(0)
            try:
                yield schedule
            except BaseException:
                self.store.restore(snapshot)
                raise

    async def list_schedules(
        self,
        *,
        date_from: dt.date | None = None,
        date_to: dt.date | None = None,
        lesson_type: LessonTypeEnum | None = None,
        location: str | None = None,
        teacher_id: UUID | None = None,
        teacher_name_contains: str | None = None,
        only_open: bool = True,
    ) -> list[FakeSchedule]:
        result = []
        for schedule in self.store.schedules.values():
            if date_from is not None and schedule.date < date_from:
                continue
            if date_to is not None and schedule.date > date_to:
                continue
            if lesson_type is not None and schedule.lesson_type != lesson_type:
                continue
            if location is not None and schedule.location != location:
                continue
            if teacher_id is not None and schedule.teacher_id != teacher_id:
                continue
            if teacher_name_contains and teacher_name_contains.lower() not in schedule.teacher_name.lower():
                continue
            if only_open and (
                schedule.status in CLOSED_SCHEDULE_STATUSES
                or len(schedule.booked_student_ids) >= schedule.max_students
            ):
                continue
            result.append(schedule)
        return sorted(result, key=lambda item: (item.date, item.start_time))

    async def list_locations(self) -> list[str]:
        return sorted({schedule.location for schedule in self.store.schedules.values() if schedule.location})

    async def list_teacher_schedules(self, teacher_id: UUID, on_date: dt.date | None = None) -> list[FakeSchedule]:
        return sorted(
            (
                schedule
                for schedule in self.store.schedules.values()
                if schedule.teacher_id == teacher_id and (on_date is None or schedule.date == on_date)
            ),
            key=lambda item: (item.date, item.start_time),
        )

    async def save(self, schedule: FakeSchedule) -> FakeSchedule:
        schedule.version += 1
        return schedule

    async def delete_schedule(self, schedule: FakeSchedule) -> None:
        self.store.schedules.pop(schedule.id, None)


class FakeBookingRepository:
    def __init__(self, store: FakeStore) -> None:
        self.store = store

    async def create_booking(self, **fields: Any) -> FakeBooking:
        booking = FakeBooking(id=uuid4(), **fields)
        self.store.bookings[booking.id] = booking
        return booking

    async def get_booking_by_id(self, booking_id: UUID, *, for_update: bool = False) -> FakeBooking | None:
        return self.store.bookings.get(booking_id)

    def _filtered(self, predicate, statuses) -> list[FakeBooking]:
        allowed = tuple(statuses) if statuses is not None else None
        return [
            booking
            for booking in self.store.bookings.values()
            if predicate(booking) and (allowed is None or booking.status in allowed)
        ]

    async def list_schedule_bookings(self, schedule_id: UUID, statuses=None) -> list[FakeBooking]:
        items = self._filtered(lambda booking: booking.schedule_id == schedule_id, statuses)
        return sorted(items, key=lambda booking: booking.booked_at)

    async def list_student_bookings(self, student_id: UUID, statuses=None) -> list[FakeBooking]:
        items = self._filtered(lambda booking: booking.student_id == student_id, statuses)
        return sorted(items, key=lambda booking: booking.booked_at, reverse=True)

    async def list_teacher_bookings(self, teacher_id: UUID, statuses=None) -> list[FakeBooking]:
        items = self._filtered(lambda booking: booking.teacher_id == teacher_id, statuses)
        return sorted(items, key=lambda booking: (booking.date, booking.start_time), reverse=True)

    async def save(self, booking: FakeBooking) -> FakeBooking:
        return booking


class FakeIdentityRepository:
    def __init__(self) -> None:
        self.users: dict[UUID, SimpleNamespace] = {}

    async def get_user_by_id(self, user_id: UUID) -> SimpleNamespace | None:
        return self.users.get(user_id)

    async def list_user_ids_by_role(self, role_name: RoleEnum) -> list[UUID]:
        return [user.id for user in self.users.values() if user.role.name == role_name]


class FakeAuditRepository:
    def __init__(self) -> None:
        self.events: list[dict] = []

    async def create_outbox_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict,
    ) -> None:
        self.events.append(
            {
                "aggregate_type": aggregate_type,
                "aggregate_id": aggregate_id,
                "event_type": event_type,
                "payload": payload,
            },
        )

    def event_types(self) -> list[str]:
        return [event["event_type"] for event in self.events]


class FakeExamsRepository:
    def __init__(self, clock: Clock) -> None:
        self.clock = clock
        self.requests: dict[UUID, FakeExamRequest] = {}
        self._sequence = 0

    async def create_request(self, **fields: Any) -> FakeExamRequest:
        self._sequence += 1
        created_at = self.clock.now + timedelta(microseconds=self._sequence)
        request = FakeExamRequest(id=uuid4(), created_at=created_at, updated_at=created_at, **fields)
        self.requests[request.id] = request
        return request

    async def get_request_by_id(self, request_id: UUID, *, for_update: bool = False) -> FakeExamRequest | None:
        return self.requests.get(request_id)

    async def list_requests(self, *, student_id=None, statuses=None, exam_type=None) -> list[FakeExamRequest]:
        allowed = tuple(statuses) if statuses is not None else None
        items = [
            request
            for request in self.requests.values()
            if (student_id is None or request.student_id == student_id)
            and (allowed is None or request.status in allowed)
            and (exam_type is None or request.exam_type == exam_type)
        ]
        return sorted(items, key=lambda request: request.created_at, reverse=True)

    async def save(self, request: FakeExamRequest) -> FakeExamRequest:
        request.updated_at = self.clock.now
        return request


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now = self.now + timedelta(**delta)
        return self.now


def make_actor(role: RoleEnum, name: str = "User") -> SimpleNamespace:
    user_id = uuid4()
    return SimpleNamespace(
        id=user_id,
        role=SimpleNamespace(name=role),
        display_name=name,
        email=f"{name.lower().replace(' ', '.')}.{user_id.hex[:6]}@example.com",
        is_active=True,
    )


class School:
    """Services wired to in-memory repositories that share one store."""

    def __init__(self, clock: Clock, policy: SchedulingPolicy | None = None) -> None:
        self.clock = clock
        self.policy = policy or SchedulingPolicy()
        self.store = FakeStore()
        self.scheduling_repository = FakeSchedulingRepository(self.store)
        self.booking_repository = FakeBookingRepository(self.store)
        self.identity_repository = FakeIdentityRepository()
        self.audit_repository = FakeAuditRepository()
        self.exams_repository = FakeExamsRepository(clock)

        self.scheduling = SchedulingService(
            repository=self.scheduling_repository,  # type: ignore[arg-type]
            booking_repository=self.booking_repository,  # type: ignore[arg-type]
            identity_repository=self.identity_repository,  # type: ignore[arg-type]
            audit_repository=self.audit_repository,  # type: ignore[arg-type]
            policy=self.policy,
        )
        self.booking = BookingService(
            booking_repository=self.booking_repository,  # type: ignore[arg-type]
            scheduling_repository=self.scheduling_repository,  # type: ignore[arg-type]
            audit_repository=self.audit_repository,  # type: ignore[arg-type]
            policy=self.policy,
        )
        self.lessons = LessonCompletionService(
            booking_repository=self.booking_repository,  # type: ignore[arg-type]
            scheduling_repository=self.scheduling_repository,  # type: ignore[arg-type]
            audit_repository=self.audit_repository,  # type: ignore[arg-type]
            policy=self.policy,
        )
        self.progress = ProgressService(self.booking_repository, self.policy)  # type: ignore[arg-type]
        self.exams = ExamsService(
            repository=self.exams_repository,  # type: ignore[arg-type]
            audit_repository=self.audit_repository,  # type: ignore[arg-type]
            policy=self.policy,
        )

    def _user(self, role: RoleEnum, name: str) -> SimpleNamespace:
        actor = make_actor(role, name)
        self.identity_repository.users[actor.id] = actor
        return actor

    def student(self, name: str = "Student") -> SimpleNamespace:
        return self._user(RoleEnum.STUDENT, name)

    def teacher(self, name: str = "Teacher") -> SimpleNamespace:
        return self._user(RoleEnum.TEACHER, name)

    def admin(self, name: str = "Admin") -> SimpleNamespace:
        return self._user(RoleEnum.ADMIN, name)

    def add_schedule(
        self,
        teacher: SimpleNamespace,
        *,
        starts_in: timedelta,
        duration: timedelta = timedelta(hours=1),
        max_students: int = 1,
        lesson_type: LessonTypeEnum = LessonTypeEnum.PRACTICAL,
        location: str | None = None,
        booked_student_ids: list[UUID] | None = None,
    ) -> FakeSchedule:
        """Insert a slot directly, bypassing create-time validation."""
        start_at = self.clock.now + starts_in
        end_at = start_at + duration
        schedule = FakeSchedule(
            id=uuid4(),
            teacher_id=teacher.id,
            teacher_name=teacher.display_name,
            lesson_type=lesson_type,
            date=start_at.date(),
            start_time=start_at.strftime("%H:%M"),
            end_time=end_at.strftime("%H:%M"),
            max_students=max_students,
            booked_student_ids=list(booked_student_ids or []),
            location=location,
            created_by_id=teacher.id,
        )
        self.store.schedules[schedule.id] = schedule
        return schedule

    def confirmed_bookings(self, schedule_id: UUID) -> list[FakeBooking]:
        return [
            booking
            for booking in self.store.bookings.values()
            if booking.schedule_id == schedule_id and booking.status == BookingStatusEnum.CONFIRMED
        ]


@pytest.fixture()
def clock(monkeypatch: pytest.MonkeyPatch) -> Clock:
    current = Clock(FIXED_NOW)
    for module in (
        scheduling_service_module,
        booking_service_module,
        lessons_service_module,
        exams_service_module,
    ):
        monkeypatch.setattr(module, "utc_now", current)
    return current


@pytest.fixture()
def school(clock: Clock) -> School:
    return School(clock)
