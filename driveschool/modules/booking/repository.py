"""Booking repository layer."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.enums import BookingStatusEnum
from driveschool.modules.booking.models import Booking


class BookingRepository:
    """DB operations for booking domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_booking(self, **fields: Any) -> Booking:
        booking = Booking(**fields)
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def get_booking_by_id(self, booking_id: UUID, *, for_update: bool = False) -> Booking | None:
        stmt = select(Booking).where(Booking.id == booking_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self.session.scalar(stmt)

    async def list_schedule_bookings(
        self,
        schedule_id: UUID,
        statuses: Iterable[BookingStatusEnum] | None = None,
    ) -> list[Booking]:
        stmt = select(Booking).where(Booking.schedule_id == schedule_id)
        if statuses is not None:
            stmt = stmt.where(Booking.status.in_(tuple(statuses)))
        stmt = stmt.order_by(Booking.booked_at.asc())
        return list((await self.session.scalars(stmt)).all())

    async def list_student_bookings(
        self,
        student_id: UUID,
        statuses: Iterable[BookingStatusEnum] | None = None,
    ) -> list[Booking]:
        stmt = select(Booking).where(Booking.student_id == student_id)
        if statuses is not None:
            stmt = stmt.where(Booking.status.in_(tuple(statuses)))
        stmt = stmt.order_by(Booking.booked_at.desc())
        return list((await self.session.scalars(stmt)).all())

    async def list_teacher_bookings(
        self,
        teacher_id: UUID,
        statuses: Iterable[BookingStatusEnum] | None = None,
    ) -> list[Booking]:
        stmt = select(Booking).where(Booking.teacher_id == teacher_id)
        if statuses is not None:
            stmt = stmt.where(Booking.status.in_(tuple(statuses)))
        stmt = stmt.order_by(Booking.date.desc(), Booking.start_time.desc())
        return list((await self.session.scalars(stmt)).all())

    async def save(self, booking: Booking) -> Booking:
        await self.session.flush()
        return booking
