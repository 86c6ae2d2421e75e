"""Student progress aggregation.

Progress is never stored: it is recomputed from completed bookings on every
read. ``build_student_progress`` is a pure fold; records are put in a
canonical order first so the result does not depend on the order the
repository returned them in.
"""

from __future__ import annotations

import logging
import math
from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Any
from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.config import SchedulingPolicy, get_settings
from driveschool.core.database import get_db_session
from driveschool.core.enums import BookingStatusEnum, RoleEnum
from driveschool.modules.booking.repository import BookingRepository
from driveschool.modules.identity.models import User
from driveschool.modules.progress.schemas import ExamEligibilityRead, StudentProgressRead
from driveschool.shared.exceptions import UnauthorizedException
from driveschool.shared.time_normalizer import normalize_instant

logger = logging.getLogger(__name__)


def _valid_hours(value: Any) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return float(value)


def _valid_rating(value: Any, policy: SchedulingPolicy) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    if isinstance(value, float) and not value.is_integer():
        return None
    if not policy.min_rating <= value <= policy.max_rating:
        return None
    return int(value)


def _skills_of(record: Any) -> list[str]:
    raw = getattr(record, "skills_improved", None)
    if not isinstance(raw, list | tuple):
        return []
    return [skill for skill in raw if isinstance(skill, str) and skill.strip()]


def _canonical_key(record: Any) -> tuple[int, float, str]:
    completed_at = normalize_instant(getattr(record, "completed_at", None))
    if isinstance(completed_at, datetime):
        return (0, completed_at.timestamp(), str(record.id))
    return (1, 0.0, str(record.id))


def build_student_progress(
    student_id: UUID,
    records: Iterable[Any],
    policy: SchedulingPolicy,
) -> StudentProgressRead:
    """Fold completed bookings into a progress snapshot.

    Malformed records are logged and skipped. Readiness is judged on the
    unrounded totals, inclusive on both thresholds.
    """
    hours: list[float] = []
    ratings: list[int] = []
    skill_counts: Counter[str] = Counter()
    skill_order: dict[str, int] = {}
    by_type: Counter[str] = Counter()
    last_lesson: datetime | None = None

    for record in sorted(records, key=_canonical_key):
        if getattr(record, "status", None) != BookingStatusEnum.COMPLETED:
            continue

        record_hours = _valid_hours(getattr(record, "hours_completed", None))
        record_rating = _valid_rating(getattr(record, "performance_rating", None), policy)
        if record_hours is None or record_rating is None:
            logger.warning(
                "Skipping malformed completion record %s for student %s",
                getattr(record, "id", None),
                student_id,
            )
            continue

        hours.append(record_hours)
        ratings.append(record_rating)

        for skill in dict.fromkeys(_skills_of(record)):
            skill_order.setdefault(skill, len(skill_order))
            skill_counts[skill] += 1

        lesson_type = getattr(record, "lesson_type", None)
        by_type[str(lesson_type) if lesson_type is not None else "unknown"] += 1

        completed_at = normalize_instant(getattr(record, "completed_at", None))
        if isinstance(completed_at, datetime) and (last_lesson is None or completed_at > last_lesson):
            last_lesson = completed_at

    total_lessons = len(ratings)
    total_hours = math.fsum(hours)
    average_rating = math.fsum(ratings) / total_lessons if total_lessons else 0.0
    ready_for_exam = (
        total_lessons > 0
        and total_hours >= policy.min_hours_for_exam
        and average_rating >= policy.min_rating_for_exam
    )

    ranked_skills = sorted(skill_counts, key=lambda skill: (-skill_counts[skill], skill_order[skill]))

    return StudentProgressRead(
        student_id=student_id,
        total_hours=round(total_hours, 1),
        total_lessons=total_lessons,
        average_rating=round(average_rating, 1),
        top_skills=ranked_skills[: policy.top_skills_limit],
        last_lesson=last_lesson,
        bookings_by_type=dict(sorted(by_type.items())),
        hours_to_exam=round(max(policy.min_hours_for_exam - total_hours, 0.0), 1),
        ready_for_exam=ready_for_exam,
    )


class ProgressService:
    """Read-only progress queries over completed bookings."""

    def __init__(self, booking_repository: BookingRepository, policy: SchedulingPolicy) -> None:
        self.booking_repository = booking_repository
        self.policy = policy

    async def _build(self, student_id: UUID) -> StudentProgressRead:
        records = await self.booking_repository.list_student_bookings(
            student_id,
            statuses=(BookingStatusEnum.COMPLETED,),
        )
        return build_student_progress(student_id, records, self.policy)

    async def compute_progress(self, student_id: UUID, actor: User) -> StudentProgressRead:
        """Progress of a student; students may only read their own."""
        if actor.role.name == RoleEnum.STUDENT and actor.id != student_id:
            raise UnauthorizedException("You can only view your own progress")
        return await self._build(student_id)

    async def check_exam_eligibility(self, student_id: UUID, actor: User) -> ExamEligibilityRead:
        """Whether a student currently meets the exam thresholds."""
        if actor.role.name == RoleEnum.STUDENT and actor.id != student_id:
            raise UnauthorizedException("You can only view your own eligibility")
        progress = await self._build(student_id)
        return ExamEligibilityRead(
            student_id=student_id,
            eligible=progress.ready_for_exam,
            total_hours=progress.total_hours,
            average_rating=progress.average_rating,
            min_hours_for_exam=self.policy.min_hours_for_exam,
            min_rating_for_exam=self.policy.min_rating_for_exam,
        )


async def get_progress_service(session: AsyncSession = Depends(get_db_session)) -> ProgressService:
    """Dependency provider for progress service."""
    return ProgressService(BookingRepository(session), get_settings().scheduling_policy())
