from __future__ import annotations

import itertools
import logging
from datetime import UTC, datetime, timedelta
from types import SimpleNamespace
from uuid import uuid4

import pytest

from driveschool.core.config import SchedulingPolicy
from driveschool.core.enums import BookingStatusEnum, LessonTypeEnum
from driveschool.modules.booking.schemas import BookingCreate
from driveschool.modules.lessons.schemas import LessonCompletionRequest
from driveschool.modules.progress.service import build_student_progress
from driveschool.shared.exceptions import UnauthorizedException

POLICY = SchedulingPolicy()
STUDENT_ID = uuid4()
BASE = datetime(2026, 2, 1, 10, 0, tzinfo=UTC)


def _record(
    hours,
    rating,
    *,
    day: int = 0,
    skills: list[str] | None = None,
    lesson_type: LessonTypeEnum = LessonTypeEnum.PRACTICAL,
    status: BookingStatusEnum = BookingStatusEnum.COMPLETED,
    completed_at=None,
) -> SimpleNamespace:
    return SimpleNamespace(
        id=uuid4(),
        status=status,
        hours_completed=hours,
        performance_rating=rating,
        skills_improved=skills if skills is not None else ["Steering Control"],
        lesson_type=lesson_type,
        completed_at=completed_at if completed_at is not None else BASE + timedelta(days=day),
    )


def test_three_lessons_summary() -> None:
    records = [_record(2, 4, day=0), _record(1.5, 5, day=1), _record(2, 3, day=2)]

    progress = build_student_progress(STUDENT_ID, records, POLICY)

    assert progress.total_hours == 5.5
    assert progress.total_lessons == 3
    assert progress.average_rating == 4.0
    assert progress.hours_to_exam == 14.5
    assert progress.ready_for_exam is False
    assert progress.last_lesson == BASE + timedelta(days=2)


def test_thresholds_are_inclusive() -> None:
    records = [_record(2, 3 if index % 2 else 4, day=index) for index in range(10)]

    progress = build_student_progress(STUDENT_ID, records, POLICY)

    assert progress.total_hours == 20
    assert progress.average_rating == 3.5
    assert progress.hours_to_exam == 0
    assert progress.ready_for_exam is True


@pytest.mark.parametrize(
    ("hours", "ratings"),
    [
        ([2] * 9 + [1.5], [4] * 10),
        ([2] * 10, [3, 4] * 4 + [3, 3]),
    ],
)
def test_just_below_a_threshold_is_not_ready(hours: list[float], ratings: list[int]) -> None:
    records = [_record(value, rating, day=index) for index, (value, rating) in enumerate(zip(hours, ratings))]

    assert build_student_progress(STUDENT_ID, records, POLICY).ready_for_exam is False


def test_readiness_uses_unrounded_average() -> None:
    # 3.45 would display as 3.5 but is below the threshold.
    ratings = [3] * 11 + [4] * 9
    records = [_record(1, rating, day=index) for index, rating in enumerate(ratings)]

    progress = build_student_progress(STUDENT_ID, records, POLICY)

    assert progress.total_hours == 20
    assert progress.average_rating == pytest.approx(3.5)
    assert progress.ready_for_exam is False


def test_result_does_not_depend_on_record_order() -> None:
    records = [
        _record(2, 4, day=0, skills=["Mirror Usage", "Hill Starts"]),
        _record(1.5, 5, day=1, skills=["Hill Starts"], lesson_type=LessonTypeEnum.THEORETICAL),
        _record(0.5, 3, day=2, skills=["Mirror Usage"]),
        _record(3, 2, day=3, skills=["Emergency Stops"]),
    ]
    expected = build_student_progress(STUDENT_ID, records, POLICY).model_dump()

    for permutation in itertools.permutations(records):
        assert build_student_progress(STUDENT_ID, permutation, POLICY).model_dump() == expected


def test_repeated_computation_is_identical() -> None:
    records = [_record(2, 4, day=0), _record(1, 5, day=1)]

    first = build_student_progress(STUDENT_ID, records, POLICY)
    second = build_student_progress(STUDENT_ID, records, POLICY)

    assert first == second


def test_top_skills_and_lesson_type_breakdown() -> None:
    records = [
        _record(1, 4, day=0, skills=["Mirror Usage", "Hill Starts"]),
        _record(1, 4, day=1, skills=["Hill Starts", "Lane Discipline"]),
        _record(1, 4, day=2, skills=["Lane Discipline"], lesson_type=LessonTypeEnum.EXAM_PREP),
        _record(1, 4, day=3, skills=["Emergency Stops"], lesson_type=LessonTypeEnum.THEORETICAL),
    ]

    progress = build_student_progress(STUDENT_ID, records, POLICY)

    assert progress.top_skills == ["Hill Starts", "Lane Discipline", "Mirror Usage", "Emergency Stops"]
    assert progress.bookings_by_type == {"exam_prep": 1, "practical": 2, "theoretical": 1}


def test_top_skills_keep_the_five_most_frequent() -> None:
    skills = ["Hill Starts", "Lane Discipline", "Mirror Usage", "Emergency Stops", "Bay Parking", "Turn Signals"]
    records = [_record(1, 4, day=0, skills=skills), _record(1, 4, day=1, skills=["Turn Signals"])]

    progress = build_student_progress(STUDENT_ID, records, POLICY)
    wider = build_student_progress(STUDENT_ID, records, SchedulingPolicy(top_skills_limit=10))

    assert progress.top_skills == ["Turn Signals", "Hill Starts", "Lane Discipline", "Mirror Usage", "Emergency Stops"]
    assert wider.top_skills == ["Turn Signals", *skills[:5]]


def test_malformed_and_non_completed_records_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    records = [
        _record(2, 4, day=0),
        _record(None, 4, day=1),
        _record(2, 7, day=2),
        _record("2", 4, day=3),
        _record(float("nan"), 4, day=4),
        _record(2, 4.5, day=5),
        _record(2, 5, day=6, status=BookingStatusEnum.CANCELLED),
        _record(2, 5, day=7, status=BookingStatusEnum.CONFIRMED),
    ]

    with caplog.at_level(logging.WARNING, logger="driveschool.modules.progress.service"):
        progress = build_student_progress(STUDENT_ID, records, POLICY)

    assert progress.total_lessons == 1
    assert progress.total_hours == 2
    assert progress.average_rating == 4
    assert len([entry for entry in caplog.records if "malformed" in entry.getMessage()]) == 5


def test_heterogeneous_completion_timestamps() -> None:
    records = [
        _record(1, 4, completed_at="2026-02-03T08:00:00Z"),
        _record(1, 4, completed_at={"_seconds": int(datetime(2026, 2, 5, tzinfo=UTC).timestamp())}),
        _record(1, 4, completed_at="sometime"),
    ]

    progress = build_student_progress(STUDENT_ID, records, POLICY)

    assert progress.total_lessons == 3
    assert progress.last_lesson == datetime(2026, 2, 5, tzinfo=UTC)


def test_empty_history() -> None:
    progress = build_student_progress(STUDENT_ID, [], POLICY)

    assert progress.total_hours == 0
    assert progress.total_lessons == 0
    assert progress.average_rating == 0
    assert progress.top_skills == []
    assert progress.last_lesson is None
    assert progress.bookings_by_type == {}
    assert progress.hours_to_exam == POLICY.min_hours_for_exam
    assert progress.ready_for_exam is False


def test_zero_hour_threshold_still_needs_a_lesson() -> None:
    policy = SchedulingPolicy(min_hours_for_exam=0, min_rating_for_exam=1)

    assert build_student_progress(STUDENT_ID, [], policy).ready_for_exam is False


@pytest.mark.asyncio
async def test_progress_service_reads_completed_bookings(school, clock) -> None:
    teacher = school.teacher()
    student = school.student()
    for offset in (3, 5):
        schedule = school.add_schedule(teacher, starts_in=timedelta(hours=offset))
        booking = await school.booking.create_booking(BookingCreate(schedule_id=schedule.id), student)
        clock.advance(hours=offset + 1)
        await school.lessons.complete_lesson(
            booking.id,
            LessonCompletionRequest(
                hours_completed=2,
                performance_rating=4,
                skills_improved=["Hill Starts"],
                areas_to_improve="Smoother clutch",
            ),
            teacher,
        )
    open_schedule = school.add_schedule(teacher, starts_in=timedelta(days=1))
    await school.booking.create_booking(BookingCreate(schedule_id=open_schedule.id), student)

    progress = await school.progress.compute_progress(student.id, student)
    eligibility = await school.progress.check_exam_eligibility(student.id, student)

    assert progress.total_lessons == 2
    assert progress.total_hours == 4
    assert progress.top_skills == ["Hill Starts"]
    assert eligibility.eligible is False
    assert eligibility.min_hours_for_exam == POLICY.min_hours_for_exam
    with pytest.raises(UnauthorizedException):
        await school.progress.compute_progress(student.id, school.student("Other"))
    assert (await school.progress.compute_progress(student.id, teacher)).total_lessons == 2


@pytest.mark.asyncio
async def test_exam_eligibility_is_private_to_the_student(school) -> None:
    student = school.student()

    with pytest.raises(UnauthorizedException):
        await school.progress.check_exam_eligibility(student.id, school.student("Other"))

    for reader in (student, school.teacher(), school.admin()):
        eligibility = await school.progress.check_exam_eligibility(student.id, reader)
        assert eligibility.eligible is False
