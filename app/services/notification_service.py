"""Notification Service for booking notify intents.

Handles both channels a notify intent reaches:
- In-app notifications (database, one row per intent)
- Push notifications (Firebase Cloud Messaging over HTTP)
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

import httpx
from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.domain.booking_state import IntentKind, IntentTarget
from app.domain.records import NOTIFIER_CONSUMER, ApplyResult, Intent
from app.models.notification import Notification
from app.models.user import Customer, Worker

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
    """Push attempt failed; ``permanent`` failures are not retried."""

    def __init__(self, message: str, permanent: bool = False) -> None:
        super().__init__(message)
        self.permanent = permanent


@dataclass
class PushOutcome:
    """Result of one delivery pass for a notification."""

    attempts: int = 0
    delivered_at: datetime | None = None
    last_error: str | None = None


# event -> (title, message template)
_TEMPLATES: dict[str, tuple[str, str]] = {
    "assigned": ("New Job Assigned", "You have been assigned a new job, booking #{booking_number}."),
    "reassigned_away": (
        "Job Reassigned",
        "Booking #{booking_number} has been reassigned to another worker.",
    ),
    "accepted": (
        "Booking Accepted",
        "Your booking #{booking_number} has been accepted! The worker will start the job soon.",
    ),
    "started": ("Booking Started", "Work on your booking #{booking_number} has started."),
    "completed": (
        "Booking Completed",
        "Your booking #{booking_number} has been marked as completed.",
    ),
    "rejected": ("Booking Rejected", "Your booking #{booking_number} has been rejected. Reason: {reason}"),
    "cancelled": ("Booking Cancelled", "Booking #{booking_number} has been cancelled."),
}


def render_notification(intent: Intent) -> tuple[str, str]:
    """Title and message for a notify intent."""
    event = intent.payload.get("event", "")
    if event not in _TEMPLATES:
        raise ValidationError(f"Intent {intent.intent_id} has unknown notification event '{event}'")
    title, template = _TEMPLATES[event]
    message = template.format(
        booking_number=intent.payload.get("booking_number", ""),
        reason=intent.payload.get("reason") or "not given",
    )
    if event == "cancelled" and intent.payload.get("reason"):
        message = f"{message} Reason: {intent.payload['reason']}"
    return title, message


class NotificationService:
    """Idempotent consumer for notify intents."""

    name = NOTIFIER_CONSUMER
    kinds = (IntentKind.NOTIFY.value,)

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        max_attempts: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        """Initialize notification service.

        Args:
            http_client: Client used for FCM calls; created lazily if omitted
            max_attempts: Push attempts per pass (defaults to settings)
            backoff_seconds: Base delay, doubled after each failed attempt
        """
        self._http_client = http_client
        self.max_attempts = max_attempts or settings.push_max_attempts
        self.backoff_seconds = settings.push_backoff_seconds if backoff_seconds is None else backoff_seconds

    @property
    def http_client(self) -> httpx.AsyncClient:
        """Lazy-load HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=settings.push_timeout_seconds)
        return self._http_client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    # ==================== INTENT CONSUMER ====================

    async def apply_intent(self, db: AsyncSession, intent: Intent) -> ApplyResult:
        """Record and deliver the notification for a notify intent.

        Before pushing, the notification row is claimed and the claim
        committed, so concurrent drainers never push the same intent twice
        and no transaction stays open across the HTTP calls. The delivery
        outcome is written in a new transaction that the caller commits.

        Args:
            db: Database session
            intent: notify intent

        Returns:
            ApplyResult: APPLIED once delivered, DUPLICATE if it already was,
            DEFERRED if the push failed or another drainer holds the claim
        """
        if intent.kind != IntentKind.NOTIFY.value:
            raise ValidationError(f"Notifier cannot apply intent of kind '{intent.kind}'")

        notification = await self._get_or_create(db, intent)
        if notification.delivered_at is not None:
            logger.info(f"Notifier skipped duplicate intent {intent.intent_id}")
            return ApplyResult.DUPLICATE

        push_token = await self._push_token(db, intent.target, intent.recipient_id)
        if not push_token or not settings.fcm_server_key:
            # In-app only
            notification.delivered_at = datetime.now(UTC)
            await db.flush()
            return ApplyResult.APPLIED

        if not await self._claim(db, notification.id):
            delivered_at = await db.scalar(
                select(Notification.delivered_at).where(Notification.id == notification.id)
            )
            if delivered_at is not None:
                logger.info(f"Notifier skipped duplicate intent {intent.intent_id}")
                return ApplyResult.DUPLICATE
            logger.info(f"Notification {notification.id} is being pushed by another drainer")
            return ApplyResult.DEFERRED
        await db.commit()

        outcome = await self._deliver(notification, push_token)
        await db.execute(
            update(Notification)
            .where(Notification.id == notification.id)
            .values(
                delivery_attempts=Notification.delivery_attempts + outcome.attempts,
                delivered_at=outcome.delivered_at,
                last_error=outcome.last_error,
                claimed_at=None,
            )
            .execution_options(synchronize_session=False)
        )
        return ApplyResult.APPLIED if outcome.delivered_at else ApplyResult.DEFERRED

    @staticmethod
    async def _claim(db: AsyncSession, notification_id: UUID) -> bool:
        """Take the push claim unless delivered or claimed by a live drainer."""
        now = datetime.now(UTC)
        result = await db.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.delivered_at.is_(None),
                or_(
                    Notification.claimed_at.is_(None),
                    Notification.claimed_at < now - timedelta(seconds=settings.push_claim_seconds),
                ),
            )
            .values(claimed_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def _get_or_create(self, db: AsyncSession, intent: Intent) -> Notification:
        existing = await self._by_source_intent(db, intent.intent_id)
        if existing is not None:
            return existing

        title, message = render_notification(intent)
        notification = Notification(
            recipient_id=intent.recipient_id,
            recipient_role=intent.target,
            title=title,
            message=message,
            notification_type=intent.payload.get("event", "booking"),
            data={
                "booking_id": str(intent.booking_id),
                "booking_number": intent.payload.get("booking_number"),
            },
            booking_id=intent.booking_id,
            source_intent_id=intent.intent_id,
            delivery_attempts=0,
        )
        db.add(notification)
        try:
            await db.flush()
        except IntegrityError:
            # Created by a concurrent drainer
            await db.rollback()
            existing = await self._by_source_intent(db, intent.intent_id)
            if existing is None:
                raise
            return existing
        return notification

    @staticmethod
    async def _by_source_intent(db: AsyncSession, intent_id: str) -> Notification | None:
        result = await db.execute(
            select(Notification).where(Notification.source_intent_id == intent_id)
        )
        return result.scalar_one_or_none()

    @staticmethod
    async def _push_token(db: AsyncSession, target: str, recipient_id: UUID | None) -> str | None:
        if recipient_id is None:
            return None
        if target == IntentTarget.WORKER.value:
            worker = await db.get(Worker, recipient_id)
            return worker.fcm_token if worker else None
        if target == IntentTarget.CUSTOMER.value:
            customer = await db.get(Customer, recipient_id)
            return customer.fcm_token if customer else None
        return None

    async def _deliver(self, notification: Notification, push_token: str) -> PushOutcome:
        """Push with exponential backoff; no database access."""
        outcome = PushOutcome()
        for attempt in range(1, self.max_attempts + 1):
            outcome.attempts = attempt
            try:
                await self.send_push_notification(
                    push_token=push_token,
                    title=notification.title,
                    body=notification.message,
                    data={
                        "type": notification.notification_type,
                        "notification_id": str(notification.id),
                        "booking_id": str(notification.booking_id),
                    },
                )
            except PushDeliveryError as e:
                outcome.last_error = str(e)
                if e.permanent:
                    # Token rejected; the in-app copy stands
                    logger.warning(
                        f"Push for notification {notification.id} rejected permanently: {e}"
                    )
                    outcome.delivered_at = datetime.now(UTC)
                    return outcome
                logger.warning(
                    f"Push for notification {notification.id} failed "
                    f"(attempt {attempt}/{self.max_attempts}): {e}"
                )
                if attempt < self.max_attempts and self.backoff_seconds > 0:
                    await asyncio.sleep(self.backoff_seconds * 2 ** (attempt - 1))
                continue

            outcome.delivered_at = datetime.now(UTC)
            outcome.last_error = None
            return outcome

        return outcome

    # ==================== PUSH NOTIFICATIONS (FIREBASE) ====================

    async def send_push_notification(
        self,
        push_token: str,
        title: str,
        body: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        """Send a push notification via Firebase Cloud Messaging.

        Args:
            push_token: Device FCM token
            title: Notification title
            body: Notification body
            data: Additional data payload

        Raises:
            PushDeliveryError: Transport error or non-2xx response
        """
        message = {
            "to": push_token,
            "priority": "high",
            "notification": {
                "title": title,
                "body": body,
                "sound": "default",
            },
            "data": data or {},
        }
        headers = {
            "Authorization": f"key={settings.fcm_server_key}",
            "Content-Type": "application/json",
        }
        try:
            response = await self.http_client.post(settings.fcm_endpoint, json=message, headers=headers)
        except httpx.HTTPError as e:
            raise PushDeliveryError(f"FCM request failed: {e}") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise PushDeliveryError(f"FCM returned {response.status_code}")
        if response.status_code >= 400:
            raise PushDeliveryError(f"FCM rejected push: {response.status_code}", permanent=True)

    # ==================== IN-APP NOTIFICATIONS ====================

    async def list_notifications(
        self,
        db: AsyncSession,
        recipient_id: UUID,
        unread_only: bool = False,
        limit: int = 50,
    ) -> list[Notification]:
        """Newest-first notifications for a recipient."""
        query = select(Notification).where(Notification.recipient_id == recipient_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        result = await db.execute(query.order_by(Notification.created_at.desc()).limit(limit))
        return list(result.scalars().all())

    async def list_admin_notifications(self, db: AsyncSession, limit: int = 50) -> list[Notification]:
        result = await db.execute(
            select(Notification)
            .where(Notification.recipient_role == IntentTarget.ADMIN.value)
            .order_by(Notification.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def mark_read(self, db: AsyncSession, notification_id: UUID) -> Notification:
        """Mark a notification read; idempotent."""
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification", str(notification_id))
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(UTC)
            await db.flush()
        return notification


# Singleton instance
notification_service = NotificationService()
