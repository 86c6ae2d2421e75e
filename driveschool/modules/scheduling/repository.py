"""Scheduling repository layer."""

from __future__ import annotations

import datetime as dt
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.enums import LessonTypeEnum, ScheduleStatusEnum
from driveschool.modules.scheduling.models import Schedule

CLOSED_SCHEDULE_STATUSES = (ScheduleStatusEnum.CANCELLED, ScheduleStatusEnum.COMPLETED)


class SchedulingRepository:
    """DB access for scheduling domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_schedule(self, **fields: Any) -> Schedule:
        schedule = Schedule(**fields)
        self.session.add(schedule)
        await self.session.flush()
        return schedule

    async def get_schedule_by_id(self, schedule_id: UUID) -> Schedule | None:
        stmt = select(Schedule).where(Schedule.id == schedule_id)
        return await self.session.scalar(stmt)

    @asynccontextmanager
    async def lock_schedule(self, schedule_id: UUID) -> AsyncIterator[Schedule | None]:
        """Row-lock a schedule inside a savepoint for a read-check-write unit.

        Yields ``None`` when the schedule does not exist. The lock is held until
        the enclosing transaction ends; an exception rolls the savepoint back.
        """
        async with self.session.begin_nested():
            stmt = (
                select(Schedule)
                .where(Schedule.id == schedule_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            )
            yield await self.session.scalar(stmt)

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
    ) -> list[Schedule]:
        stmt: Select[tuple[Schedule]] = select(Schedule)
        if date_from is not None:
            stmt = stmt.where(Schedule.date >= date_from)
        if date_to is not None:
            stmt = stmt.where(Schedule.date <= date_to)
        if lesson_type is not None:
            stmt = stmt.where(Schedule.lesson_type == lesson_type)
        if location is not None:
            stmt = stmt.where(Schedule.location == location)
        if teacher_id is not None:
            stmt = stmt.where(Schedule.teacher_id == teacher_id)
        if teacher_name_contains:
            stmt = stmt.where(Schedule.teacher_name.ilike(f"%{teacher_name_contains}%"))
        if only_open:
            stmt = stmt.where(
                Schedule.status.not_in(CLOSED_SCHEDULE_STATUSES),
                func.cardinality(Schedule.booked_student_ids) < Schedule.max_students,
            )

        stmt = stmt.order_by(Schedule.date.asc(), Schedule.start_time.asc())
        return list((await self.session.scalars(stmt)).all())

    async def list_teacher_schedules(self, teacher_id: UUID, on_date: dt.date | None = None) -> list[Schedule]:
        stmt = select(Schedule).where(Schedule.teacher_id == teacher_id)
        if on_date is not None:
            stmt = stmt.where(Schedule.date == on_date)
        stmt = stmt.order_by(Schedule.date.asc(), Schedule.start_time.asc())
        return list((await self.session.scalars(stmt)).all())

    async def list_locations(self) -> list[str]:
        stmt = (
            select(Schedule.location)
            .where(Schedule.location.is_not(None))
            .distinct()
            .order_by(Schedule.location.asc())
        )
        return list((await self.session.scalars(stmt)).all())

    async def save(self, schedule: Schedule) -> Schedule:
        await self.session.flush()
        return schedule

    async def delete_schedule(self, schedule: Schedule) -> None:
        await self.session.delete(schedule)
        await self.session.flush()
