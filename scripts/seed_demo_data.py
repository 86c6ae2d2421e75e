"""Seed idempotent demo data for local/non-production environments."""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from driveschool.core.config import get_settings
from driveschool.core.database import SessionLocal, close_engine
from driveschool.core.enums import LessonTypeEnum, RoleEnum
from driveschool.core.security import hash_password, verify_password
from driveschool.modules.audit.repository import AuditRepository
from driveschool.modules.booking.repository import BookingRepository
from driveschool.modules.identity.models import Role, User
from driveschool.modules.identity.repository import IdentityRepository
from driveschool.modules.scheduling.repository import SchedulingRepository
from driveschool.modules.scheduling.schemas import ScheduleCreate
from driveschool.modules.scheduling.service import SchedulingService
from driveschool.shared.utils import utc_now

DEMO_PASSWORD = "DemoPass123!"

DEMO_ADMIN_EMAIL = "demo-admin@driveschool.dev"
DEMO_TEACHER_EMAIL = "demo-teacher@driveschool.dev"
DEMO_STUDENT_EMAIL = "demo-student@driveschool.dev"

DEMO_SCHEDULE_DAY_OFFSETS = (1, 2, 3, 4, 5)
# (start, end, lesson type, seats)
DEMO_SCHEDULE_SLOTS = (
    ("09:00", "10:30", LessonTypeEnum.PRACTICAL, 1),
    ("14:00", "16:00", LessonTypeEnum.THEORETICAL, 8),
)
DEMO_LOCATION = "Main campus"


@dataclass(slots=True)
class SeedStats:
    roles_created: int = 0
    users_created: int = 0
    users_updated: int = 0
    schedules_created: int = 0


async def _ensure_roles(session: AsyncSession) -> int:
    created = 0
    for role_name in (RoleEnum.STUDENT, RoleEnum.TEACHER, RoleEnum.ADMIN):
        existing = await session.scalar(select(Role).where(Role.name == role_name))
        if existing is None:
            session.add(Role(name=role_name))
            created += 1
    await session.flush()
    return created


async def _ensure_user(
    session: AsyncSession,
    *,
    email: str,
    display_name: str,
    role_name: RoleEnum,
) -> tuple[User, bool]:
    role = await session.scalar(select(Role).where(Role.name == role_name))
    if role is None:
        raise RuntimeError(f"Role {role_name} was not found after ensure_roles")

    user = await session.scalar(
        select(User).options(selectinload(User.role)).where(User.email == email),
    )
    created = False
    if user is None:
        user = User(
            email=email,
            display_name=display_name,
            password_hash=hash_password(DEMO_PASSWORD),
            is_active=True,
            role_id=role.id,
        )
        session.add(user)
        created = True
    else:
        if not verify_password(DEMO_PASSWORD, user.password_hash):
            user.password_hash = hash_password(DEMO_PASSWORD)
        if user.role_id != role.id:
            user.role_id = role.id
        user.display_name = display_name
        if not user.is_active:
            user.is_active = True

    await session.flush()
    await session.refresh(user, attribute_names=["role"])
    return user, created


async def _ensure_demo_schedules(
    session: AsyncSession,
    *,
    admin_user: User,
    teacher_user: User,
) -> int:
    scheduling_repository = SchedulingRepository(session)
    scheduling_service = SchedulingService(
        repository=scheduling_repository,
        booking_repository=BookingRepository(session),
        identity_repository=IdentityRepository(session),
        audit_repository=AuditRepository(session),
        policy=get_settings().scheduling_policy(),
    )
    created = 0
    today = utc_now().date()

    for day_offset in DEMO_SCHEDULE_DAY_OFFSETS:
        target_date = today + timedelta(days=day_offset)
        existing = await scheduling_repository.list_teacher_schedules(teacher_user.id, on_date=target_date)
        taken_starts = {schedule.start_time for schedule in existing}
        for start_time, end_time, lesson_type, seats in DEMO_SCHEDULE_SLOTS:
            if start_time in taken_starts:
                continue
            await scheduling_service.create_schedule(
                ScheduleCreate(
                    teacher_id=teacher_user.id,
                    lesson_type=lesson_type,
                    date=target_date,
                    start_time=start_time,
                    end_time=end_time,
                    max_students=seats,
                    location=DEMO_LOCATION,
                ),
                admin_user,
            )
            created += 1

    await session.flush()
    return created


async def _run_seed(*, allow_production: bool) -> SeedStats:
    settings = get_settings()
    app_env = settings.app_env.strip().lower()
    if app_env in {"production", "prod"} and not allow_production:
        raise RuntimeError(
            "Refusing to seed demo data in production. "
            "Re-run with --allow-production only if you are absolutely sure.",
        )

    stats = SeedStats()

    async with SessionLocal() as session:
        try:
            stats.roles_created = await _ensure_roles(session)

            admin_user, admin_created = await _ensure_user(
                session,
                email=DEMO_ADMIN_EMAIL,
                display_name="Demo Administrator",
                role_name=RoleEnum.ADMIN,
            )
            teacher_user, teacher_created = await _ensure_user(
                session,
                email=DEMO_TEACHER_EMAIL,
                display_name="Demo Instructor",
                role_name=RoleEnum.TEACHER,
            )
            _, student_created = await _ensure_user(
                session,
                email=DEMO_STUDENT_EMAIL,
                display_name="Demo Student",
                role_name=RoleEnum.STUDENT,
            )

            stats.users_created = sum([admin_created, teacher_created, student_created])
            stats.users_updated = 3 - stats.users_created

            stats.schedules_created = await _ensure_demo_schedules(
                session,
                admin_user=admin_user,
                teacher_user=teacher_user,
            )

            await session.commit()
        except Exception:
            await session.rollback()
            raise

    return stats


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Seed idempotent demo data for DriveSchool (users and upcoming lesson schedules).",
    )
    parser.add_argument(
        "--allow-production",
        action="store_true",
        help="Allow seeding even when APP_ENV is production/prod.",
    )
    return parser


def _print_summary(stats: SeedStats) -> None:
    print("Demo seed completed.")
    print(f"- Roles created: {stats.roles_created}")
    print(f"- Users created: {stats.users_created}")
    print(f"- Users updated: {stats.users_updated}")
    print(f"- Schedules created: {stats.schedules_created}")
    print("")
    print("Demo credentials (non-production only):")
    print(f"- admin:   {DEMO_ADMIN_EMAIL} / {DEMO_PASSWORD}")
    print(f"- teacher: {DEMO_TEACHER_EMAIL} / {DEMO_PASSWORD}")
    print(f"- student: {DEMO_STUDENT_EMAIL} / {DEMO_PASSWORD}")


def main() -> int:
    parser = _build_parser()
    args = parser.parse_args()

    try:
        stats = asyncio.run(_run_seed(allow_production=args.allow_production))
    except Exception as exc:
        print(f"Demo seed failed: {exc}")
        return 1
    finally:
        asyncio.run(close_engine())

    _print_summary(stats)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
