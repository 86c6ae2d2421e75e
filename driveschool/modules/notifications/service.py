"""Notifications business logic layer."""

from __future__ import annotations

from uuid import UUID

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from driveschool.core.database import get_db_session
from driveschool.modules.identity.models import User
from driveschool.modules.notifications.models import Notification
from driveschool.modules.notifications.repository import NotificationsRepository
from driveschool.shared.exceptions import NotFoundException, UnauthorizedException
from driveschool.shared.utils import utc_now


class NotificationsService:
    """Notifications domain service."""

    def __init__(self, repository: NotificationsRepository) -> None:
        self.repository = repository

    async def list_my_notifications(
        self,
        actor: User,
        limit: int,
        offset: int,
        unread_only: bool = False,
    ) -> tuple[list[Notification], int]:
        """List notifications for current user."""
        return await self.repository.list_notifications_for_user(actor.id, limit, offset, unread_only)

    async def mark_read(self, notification_id: UUID, actor: User) -> Notification:
        """Mark one of the actor's notifications as read."""
        notification = await self.repository.get_notification_by_id(notification_id)
        if notification is None:
            raise NotFoundException("Notification not found")
        if notification.user_id != actor.id:
            raise UnauthorizedException("Only the recipient can update a notification")
        if notification.read_at is not None:
            return notification
        return await self.repository.mark_read(notification, utc_now())


async def get_notifications_service(session: AsyncSession = Depends(get_db_session)) -> NotificationsService:
    """Dependency provider for notifications service."""
    return NotificationsService(NotificationsRepository(session))
