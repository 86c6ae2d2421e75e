"""Notifications schemas."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict

from driveschool.core.enums import NotificationStatusEnum


class NotificationRead(BaseModel):
    """Notification response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    event_type: str
    channel: str
    title: str
    body: str
    status: NotificationStatusEnum
    sent_at: datetime | None
    read_at: datetime | None
    created_at: datetime
