"""Notification Pydantic schemas."""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class NotificationResponse(BaseModel):
    """Schema for an in-app notification."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient_id: UUID | None
    recipient_role: str
    title: str
    message: str
    notification_type: str
    data: dict[str, Any]
    booking_id: UUID | None
    is_read: bool
    read_at: datetime | None
    delivered_at: datetime | None
    created_at: datetime


class NotificationListResponse(BaseModel):
    """Schema for a recipient's notifications."""

    notifications: list[NotificationResponse]
    unread_count: int
