"""Exam request workflow.

pending -> scheduled (approve, with a future date) -> completed (result set),
pending -> rejected, and pending/approved/scheduled -> cancelled by the
student. Approval moves straight to ``scheduled`` because it always carries
the exam date. Submission does not check exam eligibility; callers that want
that gate read ``ProgressService.check_exam_eligibility`` first.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.config import SchedulingPolicy, get_settings
from driveschool.core.database import get_db_session
from driveschool.core.enums import ExamRequestStatusEnum, ExamReviewActionEnum, RoleEnum
from driveschool.modules.audit.repository import AuditRepository
from driveschool.modules.exams.models import ExamRequest
from driveschool.modules.exams.repository import ExamsRepository
from driveschool.modules.exams.schemas import (
    ExamRequestCreate,
    ExamRequestFilters,
    ExamResultUpdate,
    ExamReviewRequest,
)
from driveschool.modules.identity.models import User
from driveschool.shared.exceptions import (
    ConflictException,
    InvalidStateTransitionException,
    NotFoundException,
    UnauthorizedException,
    ValidationException,
)
from driveschool.shared.time_normalizer import is_representable, normalize_instant, require_instant
from driveschool.shared.utils import clean_text, utc_now

ACTIVE_EXAM_STATUSES = (
    ExamRequestStatusEnum.PENDING,
    ExamRequestStatusEnum.APPROVED,
    ExamRequestStatusEnum.SCHEDULED,
)


class ExamsService:
    """Exam request domain service."""

    def __init__(
        self,
        repository: ExamsRepository,
        audit_repository: AuditRepository,
        policy: SchedulingPolicy,
    ) -> None:
        self.repository = repository
        self.audit_repository = audit_repository
        self.policy = policy

    async def _get_request(self, request_id: UUID, *, for_update: bool = False) -> ExamRequest:
        request = await self.repository.get_request_by_id(request_id, for_update=for_update)
        if request is None:
            raise NotFoundException("Exam request not found")
        return request

    @staticmethod
    def _require_admin(actor: User, message: str) -> None:
        if actor.role.name != RoleEnum.ADMIN:
            raise UnauthorizedException(message)

    async def submit_request(self, payload: ExamRequestCreate, actor: User) -> ExamRequest:
        """Create a pending exam request for the acting student."""
        if actor.role.name != RoleEnum.STUDENT:
            raise UnauthorizedException("Only students can request exams")

        requested_date = None
        if payload.requested_date is not None:
            requested_date = require_instant(payload.requested_date, "requested_date", tz=self.policy.tzinfo)

        active = await self.repository.list_requests(
            student_id=actor.id,
            statuses=ACTIVE_EXAM_STATUSES,
            exam_type=payload.exam_type,
        )
        if active:
            raise ConflictException(
                f"You already have an active {payload.exam_type} exam request",
                {"exam_request_id": str(active[0].id)},
            )

        request = await self.repository.create_request(
            student_id=actor.id,
            student_name=actor.display_name,
            student_email=actor.email,
            exam_type=payload.exam_type,
            status=ExamRequestStatusEnum.PENDING,
            requested_date=requested_date,
            student_notes=clean_text(payload.student_notes),
        )
        await self.audit_repository.create_outbox_event(
            aggregate_type="exam_request",
            aggregate_id=str(request.id),
            event_type="exam_request.submitted",
            payload={
                "exam_request_id": str(request.id),
                "student_id": str(actor.id),
                "student_name": actor.display_name,
                "exam_type": str(payload.exam_type),
            },
        )
        return request

    async def review_request(self, request_id: UUID, payload: ExamReviewRequest, actor: User) -> ExamRequest:
        """Approve with a future exam date, or reject with a reason."""
        self._require_admin(actor, "Only administrators can review exam requests")
        request = await self._get_request(request_id, for_update=True)
        if request.status != ExamRequestStatusEnum.PENDING:
            raise InvalidStateTransitionException("exam request", request.id, request.status, payload.action)

        if payload.action == ExamReviewActionEnum.APPROVE:
            if payload.scheduled_date is None:
                raise ValidationException(
                    "An exam date is required to approve a request",
                    {"scheduled_date": "Required to approve"},
                )
            scheduled_date = normalize_instant(payload.scheduled_date, tz=self.policy.tzinfo)
            if not is_representable(scheduled_date):
                raise ValidationException(
                    "Invalid exam date",
                    {"scheduled_date": "Not a recognizable date/time value"},
                )
            if scheduled_date <= utc_now():
                raise ValidationException(
                    "Exam date must be in the future",
                    {"scheduled_date": "Must be in the future"},
                )
            request.status = ExamRequestStatusEnum.SCHEDULED
            request.scheduled_date = scheduled_date
            event_type = "exam_request.approved"
        else:
            reason = clean_text(payload.rejection_reason)
            if reason is None:
                raise ValidationException(
                    "A reason is required to reject a request",
                    {"rejection_reason": "Required to reject"},
                )
            request.status = ExamRequestStatusEnum.REJECTED
            request.rejection_reason = reason
            event_type = "exam_request.rejected"

        request.admin_notes = clean_text(payload.admin_notes)
        request.reviewed_by = actor.id
        request.reviewed_at = utc_now()
        await self.repository.save(request)

        await self.audit_repository.create_outbox_event(
            aggregate_type="exam_request",
            aggregate_id=str(request.id),
            event_type=event_type,
            payload={
                "exam_request_id": str(request.id),
                "student_id": str(request.student_id),
                "exam_type": str(request.exam_type),
                "scheduled_date": request.scheduled_date.isoformat() if request.scheduled_date else None,
                "rejection_reason": request.rejection_reason,
            },
        )
        return request

    async def set_result(self, request_id: UUID, payload: ExamResultUpdate, actor: User) -> ExamRequest:
        """Record the outcome of a scheduled exam."""
        self._require_admin(actor, "Only administrators can record exam results")
        request = await self._get_request(request_id, for_update=True)
        if request.status != ExamRequestStatusEnum.SCHEDULED:
            raise InvalidStateTransitionException("exam request", request.id, request.status, "record a result for")

        request.exam_result = payload.result
        request.status = ExamRequestStatusEnum.COMPLETED
        request.completed_at = utc_now()
        await self.repository.save(request)

        await self.audit_repository.create_outbox_event(
            aggregate_type="exam_request",
            aggregate_id=str(request.id),
            event_type="exam_request.result.recorded",
            payload={
                "exam_request_id": str(request.id),
                "student_id": str(request.student_id),
                "exam_type": str(request.exam_type),
                "result": str(payload.result),
            },
        )
        return request

    async def cancel_request(self, request_id: UUID, actor: User) -> ExamRequest:
        """Withdraw an active request; only its student may do so."""
        request = await self._get_request(request_id, for_update=True)
        if actor.role.name != RoleEnum.STUDENT or request.student_id != actor.id:
            raise UnauthorizedException("You can only cancel your own exam requests")
        if request.status not in ACTIVE_EXAM_STATUSES:
            raise InvalidStateTransitionException("exam request", request.id, request.status, "cancel")

        request.status = ExamRequestStatusEnum.CANCELLED
        request.cancelled_at = utc_now()
        await self.repository.save(request)
        return request

    async def get_request(self, request_id: UUID, actor: User) -> ExamRequest:
        """One request, readable by its student or an admin."""
        request = await self._get_request(request_id)
        if actor.role.name != RoleEnum.ADMIN and request.student_id != actor.id:
            raise UnauthorizedException("You can only view your own exam requests")
        return request

    async def list_student_requests(self, student_id: UUID, actor: User) -> list[ExamRequest]:
        """Requests of one student, newest first."""
        if actor.role.name != RoleEnum.ADMIN and actor.id != student_id:
            raise UnauthorizedException("You can only view your own exam requests")
        return await self.repository.list_requests(student_id=student_id)

    async def list_all_requests(self, filters: ExamRequestFilters, actor: User) -> list[ExamRequest]:
        """All requests, optionally filtered by status and exam type."""
        self._require_admin(actor, "Only administrators can list all exam requests")
        return await self.repository.list_requests(
            statuses=(filters.status,) if filters.status is not None else None,
            exam_type=filters.exam_type,
        )


async def get_exams_service(session: AsyncSession = Depends(get_db_session)) -> ExamsService:
    """Dependency provider for exams service."""
    return ExamsService(
        repository=ExamsRepository(session),
        audit_repository=AuditRepository(session),
        policy=get_settings().scheduling_policy(),
    )
