"""Notification endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.schemas.notification import NotificationListResponse, NotificationResponse
from app.services.notification_service import notification_service

router = APIRouter()


@router.get("/admin", response_model=NotificationListResponse)
async def get_admin_notifications(
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=200),
) -> NotificationListResponse:
    """Notifications addressed to admins (customer cancellations)."""
    notifications = await notification_service.list_admin_notifications(db, limit=limit)
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


@router.get("/{recipient_id}", response_model=NotificationListResponse)
async def get_notifications(
    recipient_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    unread_only: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
) -> NotificationListResponse:
    """Get a worker's or customer's notifications."""
    notifications = await notification_service.list_notifications(
        db, recipient_id, unread_only=unread_only, limit=limit
    )
    return NotificationListResponse(
        notifications=[NotificationResponse.model_validate(n) for n in notifications],
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
) -> NotificationResponse:
    """Mark notification as read."""
    notification = await notification_service.mark_read(db, notification_id)
    return NotificationResponse.model_validate(notification)
