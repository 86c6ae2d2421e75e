"""Outbox repository layer."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.enums import OutboxStatusEnum
from driveschool.modules.audit.models import OutboxEvent


class AuditRepository:
    """Writes domain events to the outbox and tracks their delivery."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_outbox_event(
        self,
        aggregate_type: str,
        aggregate_id: str,
        event_type: str,
        payload: dict[str, Any],
    ) -> OutboxEvent:
        event = OutboxEvent(
            aggregate_type=aggregate_type,
            aggregate_id=aggregate_id,
            event_type=event_type,
            payload=payload,
            status=OutboxStatusEnum.PENDING,
        )
        self.session.add(event)
        await self.session.flush()
        return event

    async def list_pending_outbox(self, limit: int) -> list[OutboxEvent]:
        # Concurrent workers skip rows another worker is already delivering.
        stmt = (
            select(OutboxEvent)
            .where(OutboxEvent.status == OutboxStatusEnum.PENDING)
            .order_by(OutboxEvent.occurred_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def list_retryable_failed_outbox(self, limit: int, max_retries: int) -> list[OutboxEvent]:
        stmt = (
            select(OutboxEvent)
            .where(
                OutboxEvent.status == OutboxStatusEnum.FAILED,
                OutboxEvent.retries < max_retries,
            )
            .order_by(OutboxEvent.updated_at.asc())
            .limit(limit)
            .with_for_update(skip_locked=True)
        )
        return list((await self.session.scalars(stmt)).all())

    async def mark_outbox_pending(self, event: OutboxEvent) -> OutboxEvent:
        event.status = OutboxStatusEnum.PENDING
        event.error_message = None
        await self.session.flush()
        return event

    async def mark_outbox_processed(self, event: OutboxEvent, processed_at: datetime) -> OutboxEvent:
        event.status = OutboxStatusEnum.PROCESSED
        event.processed_at = processed_at
        event.error_message = None
        await self.session.flush()
        return event

    async def mark_outbox_failed(self, event: OutboxEvent, error_message: str) -> OutboxEvent:
        event.status = OutboxStatusEnum.FAILED
        event.retries += 1
        event.error_message = error_message[:2000]
        await self.session.flush()
        return event
