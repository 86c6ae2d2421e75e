from __future__ import annotations

from datetime import date, timedelta

import pytest

from driveschool.core.enums import BookingStatusEnum, LessonTypeEnum, ScheduleStatusEnum
from driveschool.modules.booking.schemas import BookingCreate
from driveschool.modules.scheduling.router import list_lesson_types
from driveschool.modules.scheduling.schemas import ScheduleCreate, ScheduleFilters, ScheduleUpdate
from driveschool.modules.scheduling.service import SCHEDULE_DELETED_REASON
from driveschool.shared.exceptions import (
    ConflictException,
    InvalidStateTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)

TOMORROW = date(2026, 3, 11)


def _create_payload(**overrides) -> ScheduleCreate:
    fields = {
        "lesson_type": LessonTypeEnum.PRACTICAL,
        "date": TOMORROW,
        "start_time": "10:00",
        "end_time": "11:30",
        "max_students": 1,
        "location": "North lot",
    }
    fields.update(overrides)
    return ScheduleCreate(**fields)


@pytest.mark.asyncio
async def test_teacher_creates_own_schedule(school) -> None:
    teacher = school.teacher("Dana Reyes")

    schedule = await school.scheduling.create_schedule(_create_payload(), teacher)

    assert schedule.teacher_id == teacher.id
    assert schedule.teacher_name == "Dana Reyes"
    assert schedule.start_time == "10:00"
    assert schedule.end_time == "11:30"
    assert schedule.booked_student_ids == []
    assert schedule.status == ScheduleStatusEnum.AVAILABLE
    assert schedule.created_by_id == teacher.id


@pytest.mark.asyncio
async def test_admin_creates_schedule_for_teacher(school) -> None:
    admin = school.admin()
    teacher = school.teacher("Dana Reyes")

    schedule = await school.scheduling.create_schedule(_create_payload(teacher_id=teacher.id), admin)

    assert schedule.teacher_id == teacher.id
    assert schedule.created_by_id == admin.id


@pytest.mark.asyncio
async def test_admin_must_name_an_existing_teacher(school) -> None:
    admin = school.admin()
    student = school.student()

    with pytest.raises(ValidationException):
        await school.scheduling.create_schedule(_create_payload(), admin)
    with pytest.raises(ValidationException) as exc:
        await school.scheduling.create_schedule(_create_payload(teacher_id=student.id), admin)
    assert "teacher_id" in exc.value.fields


@pytest.mark.asyncio
async def test_students_cannot_create_schedules(school) -> None:
    with pytest.raises(UnauthorizedException):
        await school.scheduling.create_schedule(_create_payload(), school.student())


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("overrides", "field"),
    [
        ({"max_students": 0}, "max_students"),
        ({"start_time": "11:00", "end_time": "10:00"}, "end_time"),
        ({"start_time": "10:00", "end_time": "10:00"}, "end_time"),
        ({"start_time": "ten o'clock"}, "start_time"),
        ({"date": date(2026, 3, 9)}, "date"),
    ],
)
async def test_create_rejects_invalid_slots(school, overrides: dict, field: str) -> None:
    teacher = school.teacher()

    with pytest.raises(ValidationException) as exc:
        await school.scheduling.create_schedule(_create_payload(**overrides), teacher)

    assert field in exc.value.fields
    assert school.store.schedules == {}


@pytest.mark.asyncio
async def test_overlapping_slots_for_same_teacher_conflict(school) -> None:
    teacher = school.teacher()
    await school.scheduling.create_schedule(_create_payload(start_time="10:00", end_time="11:00"), teacher)

    with pytest.raises(ConflictException):
        await school.scheduling.create_schedule(_create_payload(start_time="10:30", end_time="11:30"), teacher)

    adjacent = await school.scheduling.create_schedule(
        _create_payload(start_time="11:00", end_time="12:00"),
        teacher,
    )
    other_teacher_slot = await school.scheduling.create_schedule(
        _create_payload(start_time="10:30", end_time="11:30"),
        school.teacher("Other"),
    )
    assert adjacent.start_time == "11:00"
    assert other_teacher_slot.start_time == "10:30"


@pytest.mark.asyncio
async def test_list_available_orders_by_start_and_hides_unbookable(school) -> None:
    teacher = school.teacher("Dana Reyes")
    later = school.add_schedule(teacher, starts_in=timedelta(days=2))
    sooner = school.add_schedule(teacher, starts_in=timedelta(hours=3))
    school.add_schedule(teacher, starts_in=timedelta(hours=5), booked_student_ids=[school.student().id])
    cancelled = school.add_schedule(teacher, starts_in=timedelta(hours=6))
    cancelled.status = ScheduleStatusEnum.CANCELLED
    school.add_schedule(teacher, starts_in=-timedelta(hours=2))
    broken = school.add_schedule(teacher, starts_in=timedelta(hours=4))
    broken.start_time = "half past"

    items, total = await school.scheduling.list_available(ScheduleFilters(), limit=20, offset=0)

    assert [schedule.id for schedule in items] == [sooner.id, later.id]
    assert total == 2


@pytest.mark.asyncio
async def test_list_available_filters_and_pages(school) -> None:
    dana = school.teacher("Dana Reyes")
    omar = school.teacher("Omar Price")
    theory = school.add_schedule(dana, starts_in=timedelta(hours=3), lesson_type=LessonTypeEnum.THEORETICAL)
    practical = school.add_schedule(dana, starts_in=timedelta(hours=4), location="North lot")
    omar_slot = school.add_schedule(omar, starts_in=timedelta(hours=6), location="North lot")

    by_type, _ = await school.scheduling.list_available(
        ScheduleFilters(lesson_type=LessonTypeEnum.THEORETICAL),
        limit=20,
        offset=0,
    )
    by_location, _ = await school.scheduling.list_available(
        ScheduleFilters(location="North lot"),
        limit=20,
        offset=0,
    )
    by_name, _ = await school.scheduling.list_available(
        ScheduleFilters(teacher_name_contains="omar"),
        limit=20,
        offset=0,
    )
    page, total = await school.scheduling.list_available(ScheduleFilters(), limit=1, offset=1)

    assert [item.id for item in by_type] == [theory.id]
    assert [item.id for item in by_location] == [practical.id, omar_slot.id]
    assert [item.id for item in by_name] == [omar_slot.id]
    assert [item.id for item in page] == [practical.id]
    assert total == 3


@pytest.mark.asyncio
async def test_list_available_can_include_closed_slots(school) -> None:
    teacher = school.teacher()
    full = school.add_schedule(teacher, starts_in=timedelta(hours=3), booked_student_ids=[school.student().id])

    items, _ = await school.scheduling.list_available(
        ScheduleFilters(include_all_statuses=True),
        limit=20,
        offset=0,
    )

    assert full.id in [item.id for item in items]


@pytest.mark.asyncio
async def test_delete_cancels_every_confirmed_booking(school) -> None:
    admin = school.admin()
    teacher = school.teacher()
    schedule = school.add_schedule(teacher, starts_in=timedelta(days=1), max_students=2)
    first = await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student("A"))
    second = await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student("B"))

    cancelled = await school.scheduling.delete_schedule(schedule.id, admin)

    assert {booking.id for booking in cancelled} == {first.id, second.id}
    for booking in (first, second):
        assert booking.status == BookingStatusEnum.CANCELLED
        assert booking.cancellation_reason == SCHEDULE_DELETED_REASON
        assert booking.cancelled_at is not None
    assert school.confirmed_bookings(schedule.id) == []
    assert schedule.id not in school.store.schedules
    assert school.audit_repository.event_types()[-3:] == [
        "booking.cancelled",
        "booking.cancelled",
        "schedule.deleted",
    ]
    with pytest.raises(NotFoundException):
        await school.scheduling.get_schedule(schedule.id)


@pytest.mark.asyncio
async def test_teacher_cannot_delete_booked_schedule(school) -> None:
    teacher = school.teacher()
    schedule = school.add_schedule(teacher, starts_in=timedelta(days=1))
    booking = await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student())

    with pytest.raises(ConflictException):
        await school.scheduling.delete_schedule(schedule.id, teacher)

    assert schedule.id in school.store.schedules
    assert booking.status == BookingStatusEnum.CONFIRMED


@pytest.mark.asyncio
async def test_teacher_deletes_empty_schedule(school) -> None:
    teacher = school.teacher()
    schedule = school.add_schedule(teacher, starts_in=timedelta(days=1))

    assert await school.scheduling.delete_schedule(schedule.id, teacher) == []
    assert schedule.id not in school.store.schedules


@pytest.mark.asyncio
async def test_other_teacher_cannot_manage_schedule(school) -> None:
    schedule = school.add_schedule(school.teacher(), starts_in=timedelta(days=1))

    with pytest.raises(UnauthorizedException):
        await school.scheduling.delete_schedule(schedule.id, school.teacher("Intruder"))


@pytest.mark.asyncio
async def test_admin_update_propagates_to_confirmed_bookings(school) -> None:
    admin = school.admin()
    teacher = school.teacher()
    schedule = school.add_schedule(teacher, starts_in=timedelta(days=1), max_students=2)
    booking = await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student())

    updated = await school.scheduling.update_schedule(
        schedule.id,
        ScheduleUpdate(start_time="13:00", end_time="14:30", location="South lot"),
        admin,
    )

    assert updated.start_time == "13:00"
    assert booking.start_time == "13:00"
    assert booking.end_time == "14:30"
    assert booking.location == "South lot"


@pytest.mark.asyncio
async def test_update_cannot_shrink_below_booked_seats(school) -> None:
    admin = school.admin()
    schedule = school.add_schedule(school.teacher(), starts_in=timedelta(days=1), max_students=2)
    await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student("A"))
    await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student("B"))

    with pytest.raises(ValidationException) as exc:
        await school.scheduling.update_schedule(schedule.id, ScheduleUpdate(max_students=1), admin)

    assert "max_students" in exc.value.fields
    assert schedule.max_students == 2


@pytest.mark.asyncio
async def test_teacher_cannot_edit_booked_schedule(school) -> None:
    teacher = school.teacher()
    schedule = school.add_schedule(teacher, starts_in=timedelta(days=1))
    await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), school.student())

    with pytest.raises(ConflictException):
        await school.scheduling.update_schedule(schedule.id, ScheduleUpdate(notes="Bring glasses"), teacher)


@pytest.mark.asyncio
async def test_closed_schedule_cannot_be_updated(school) -> None:
    admin = school.admin()
    schedule = school.add_schedule(school.teacher(), starts_in=timedelta(days=1))
    schedule.status = ScheduleStatusEnum.CANCELLED

    with pytest.raises(InvalidStateTransitionException):
        await school.scheduling.update_schedule(schedule.id, ScheduleUpdate(max_students=3), admin)


@pytest.mark.asyncio
async def test_schedule_details_include_all_bookings(school) -> None:
    teacher = school.teacher()
    student = school.student()
    schedule = school.add_schedule(teacher, starts_in=timedelta(days=1), max_students=3)
    booking = await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), student)

    found, bookings = await school.scheduling.get_schedule_details(schedule.id, teacher)

    assert found is schedule
    assert [item.id for item in bookings] == [booking.id]
    with pytest.raises(UnauthorizedException):
        await school.scheduling.get_schedule_details(schedule.id, student)


@pytest.mark.asyncio
async def test_list_available_hides_slots_inside_booking_lead_time(school) -> None:
    teacher = school.teacher()
    soon = school.add_schedule(teacher, starts_in=timedelta(minutes=90))
    at_cutoff = school.add_schedule(teacher, starts_in=timedelta(hours=2))

    items, total = await school.scheduling.list_available(ScheduleFilters(), limit=20, offset=0)
    everything, _ = await school.scheduling.list_available(
        ScheduleFilters(include_all_statuses=True),
        limit=20,
        offset=0,
    )

    assert [item.id for item in items] == [at_cutoff.id]
    assert total == 1
    assert soon.id in [item.id for item in everything]


@pytest.mark.asyncio
async def test_locations_are_distinct_and_sorted(school) -> None:
    teacher = school.teacher()
    school.add_schedule(teacher, starts_in=timedelta(days=1), location="South lot")
    school.add_schedule(teacher, starts_in=timedelta(days=2), location="North lot")
    school.add_schedule(teacher, starts_in=timedelta(days=3), location="South lot")
    school.add_schedule(teacher, starts_in=timedelta(days=4))

    assert await school.scheduling.list_locations() == ["North lot", "South lot"]


@pytest.mark.asyncio
async def test_lesson_type_options_cover_every_type() -> None:
    assert await list_lesson_types() == ["exam_prep", "practical", "theoretical"]
