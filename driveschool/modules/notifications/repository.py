"""Notifications repository layer."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.enums import NotificationStatusEnum
from driveschool.modules.notifications.models import Notification


class NotificationsRepository:
    """DB operations for notifications domain."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def create_notification(
        self,
        user_id: UUID,
        event_type: str,
        channel: str,
        title: str,
        body: str,
        sent_at: datetime | None = None,
    ) -> Notification:
        notification = Notification(
            user_id=user_id,
            event_type=event_type,
            channel=channel,
            title=title,
            body=body,
            status=NotificationStatusEnum.SENT if sent_at else NotificationStatusEnum.PENDING,
            sent_at=sent_at,
        )
        self.session.add(notification)
        await self.session.flush()
        return notification

    async def get_notification_by_id(self, notification_id: UUID) -> Notification | None:
        stmt = select(Notification).where(Notification.id == notification_id)
        return await self.session.scalar(stmt)

    async def list_notifications_for_user(
        self,
        user_id: UUID,
        limit: int,
        offset: int,
        unread_only: bool = False,
    ) -> tuple[list[Notification], int]:
        base_stmt: Select[tuple[Notification]] = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            base_stmt = base_stmt.where(Notification.read_at.is_(None))
        count_stmt = select(func.count()).select_from(base_stmt.subquery())
        total = int((await self.session.scalar(count_stmt)) or 0)

        stmt = base_stmt.order_by(Notification.created_at.desc()).limit(limit).offset(offset)
        items = list((await self.session.scalars(stmt)).all())
        return items, total

    async def mark_read(self, notification: Notification, read_at: datetime) -> Notification:
        notification.status = NotificationStatusEnum.READ
        notification.read_at = read_at
        await self.session.flush()
        return notification
