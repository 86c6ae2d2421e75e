"""Outbox consumer that materializes domain events into notifications."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from driveschool.core.enums import RoleEnum
from driveschool.modules.audit.models import OutboxEvent
from driveschool.modules.audit.repository import AuditRepository
from driveschool.modules.identity.repository import IdentityRepository
from driveschool.modules.notifications.repository import NotificationsRepository
from driveschool.shared.utils import utc_now

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class NotificationMessage:
    user_id: UUID
    title: str
    body: str
    channel: str = "in_app"


class NotificationsOutboxWorker:
    """Process outbox events and create user notifications.

    Delivery problems only mark the outbox row failed for a later retry; the
    booking, schedule or exam request that produced the event is never touched.
    """

    def __init__(
        self,
        audit_repository: AuditRepository,
        notifications_repository: NotificationsRepository,
        identity_repository: IdentityRepository,
        *,
        batch_size: int = 100,
        max_retries: int = 5,
        base_backoff_seconds: int = 30,
        max_backoff_seconds: int = 300,
        now_provider=utc_now,
    ) -> None:
        self.audit_repository = audit_repository
        self.notifications_repository = notifications_repository
        self.identity_repository = identity_repository
        self.batch_size = batch_size
        self.max_retries = max_retries
        self.base_backoff_seconds = base_backoff_seconds
        self.max_backoff_seconds = max_backoff_seconds
        self.now_provider = now_provider

    async def run_once(self) -> dict[str, int]:
        """Run one processing cycle."""
        stats = {"requeued": 0, "processed": 0, "failed": 0, "dispatched": 0}
        stats["requeued"] = await self._requeue_retryable_failed_events()

        events = await self.audit_repository.list_pending_outbox(limit=self.batch_size)
        for event in events:
            try:
                messages = await self._build_messages(event)
                for message in messages:
                    await self.notifications_repository.create_notification(
                        user_id=message.user_id,
                        event_type=event.event_type,
                        channel=message.channel,
                        title=message.title,
                        body=message.body,
                        sent_at=self.now_provider(),
                    )
                    stats["dispatched"] += 1

                await self.audit_repository.mark_outbox_processed(event, self.now_provider())
                stats["processed"] += 1
            except Exception as exc:
                logger.warning("Outbox event %s (%s) failed: %s", event.id, event.event_type, exc)
                await self.audit_repository.mark_outbox_failed(event, str(exc))
                stats["failed"] += 1
        return stats

    async def _requeue_retryable_failed_events(self) -> int:
        now = self.now_provider()
        failed_events = await self.audit_repository.list_retryable_failed_outbox(
            limit=self.batch_size,
            max_retries=self.max_retries,
        )
        requeued = 0
        for event in failed_events:
            if self._is_backoff_elapsed(event, now):
                await self.audit_repository.mark_outbox_pending(event)
                requeued += 1
        return requeued

    def _is_backoff_elapsed(self, event: OutboxEvent, now: datetime) -> bool:
        retries = max(event.retries, 1)
        backoff_seconds = min(
            self.max_backoff_seconds,
            self.base_backoff_seconds * (2 ** (retries - 1)),
        )
        last_attempt_at = event.updated_at or event.occurred_at
        return now >= last_attempt_at + timedelta(seconds=backoff_seconds)

    async def _build_messages(self, event: OutboxEvent) -> list[NotificationMessage]:
        payload = event.payload or {}
        event_type = event.event_type

        if event_type == "booking.confirmed":
            student_id = self._required_uuid(payload, "student_id")
            teacher_id = self._required_uuid(payload, "teacher_id")
            when = f"{payload.get('date', '?')} {payload.get('start_time', '')}".strip()
            return [
                NotificationMessage(
                    user_id=student_id,
                    title="Booking confirmed",
                    body=f"Your lesson on {when} is booked.",
                ),
                NotificationMessage(
                    user_id=teacher_id,
                    title="New booking",
                    body=f"A student booked your lesson on {when}.",
                ),
            ]

        if event_type == "booking.cancelled":
            reason = payload.get("reason")
            body = "A booked lesson was cancelled."
            if reason:
                body = f"A booked lesson was cancelled: {reason}"
            return [
                NotificationMessage(user_id=user_id, title="Booking cancelled", body=body)
                for user_id in self._unique_recipients(
                    self._optional_uuid(payload, "student_id"),
                    self._optional_uuid(payload, "teacher_id"),
                )
            ]

        if event_type == "booking.teacher_note.added":
            student_id = self._required_uuid(payload, "student_id")
            return [
                NotificationMessage(
                    user_id=student_id,
                    title="New teacher note",
                    body="Your teacher added a note to one of your lessons.",
                ),
            ]

        if event_type == "booking.completed":
            student_id = self._required_uuid(payload, "student_id")
            hours = payload.get("hours_completed")
            rating = payload.get("performance_rating")
            return [
                NotificationMessage(
                    user_id=student_id,
                    title="Lesson completed",
                    body=f"Your lesson was recorded: {hours} hours, rating {rating}/5.",
                ),
            ]

        if event_type == "schedule.deleted":
            teacher_id = self._required_uuid(payload, "teacher_id")
            if self._optional_uuid(payload, "deleted_by") == teacher_id:
                return []
            cancelled = len(payload.get("cancelled_booking_ids") or [])
            return [
                NotificationMessage(
                    user_id=teacher_id,
                    title="Schedule removed",
                    body=f"An administrator removed one of your lessons ({cancelled} bookings cancelled).",
                ),
            ]

        if event_type == "exam_request.submitted":
            student_name = payload.get("student_name", "A student")
            exam_type = payload.get("exam_type", "exam")
            admin_ids = await self.identity_repository.list_user_ids_by_role(RoleEnum.ADMIN)
            return [
                NotificationMessage(
                    user_id=admin_id,
                    title="New exam request",
                    body=f"{student_name} requested a {exam_type} exam.",
                )
                for admin_id in admin_ids
            ]

        if event_type in ("exam_request.approved", "exam_request.rejected"):
            student_id = self._required_uuid(payload, "student_id")
            exam_type = payload.get("exam_type", "exam")
            if event_type == "exam_request.approved":
                title = "Exam scheduled"
                body = f"Your {exam_type} exam is scheduled for {payload.get('scheduled_date', 'a date to be confirmed')}."
            else:
                title = "Exam request rejected"
                body = f"Your {exam_type} exam request was rejected: {payload.get('rejection_reason', '')}"
            return [NotificationMessage(user_id=student_id, title=title, body=body)]

        if event_type == "exam_request.result.recorded":
            student_id = self._required_uuid(payload, "student_id")
            return [
                NotificationMessage(
                    user_id=student_id,
                    title="Exam result",
                    body=f"Your {payload.get('exam_type', 'exam')} exam result: {payload.get('result', 'unknown')}.",
                ),
            ]

        return []

    @staticmethod
    def _required_uuid(payload: dict, key: str) -> UUID:
        value = payload.get(key)
        if value is None:
            raise ValueError(f"Missing required key: {key}")
        return UUID(str(value))

    @staticmethod
    def _optional_uuid(payload: dict, key: str) -> UUID | None:
        value = payload.get(key)
        if value is None:
            return None
        return UUID(str(value))

    @staticmethod
    def _unique_recipients(*recipients: UUID | None) -> list[UUID]:
        unique: list[UUID] = []
        seen: set[UUID] = set()
        for recipient in recipients:
            if recipient is not None and recipient not in seen:
                unique.append(recipient)
                seen.add(recipient)
        return unique
