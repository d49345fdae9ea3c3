import asyncio
from datetime import UTC, datetime, timedelta
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import func, select

from app.config import settings
from app.core.exceptions import NotFoundError
from app.domain.records import ApplyResult
from app.models.notification import Notification
from app.services.notification_service import NotificationService, render_notification


class FakeFcm:
    """Mock FCM endpoint answering with a scripted list of status codes."""

    def __init__(self, statuses, delay=0.0):
        self.statuses = list(statuses)
        self.delay = delay
        self.requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status, json={"success": 1 if status == 200 else 0})


def _service(fcm: FakeFcm, max_attempts: int = 3) -> NotificationService:
    client = httpx.AsyncClient(transport=httpx.MockTransport(fcm))
    return NotificationService(http_client=client, max_attempts=max_attempts, backoff_seconds=0)


async def _count(world) -> int:
    async with world.session_factory() as db:
        return await db.scalar(select(func.count()).select_from(Notification))


@pytest.fixture
def fcm_configured(monkeypatch):
    monkeypatch.setattr(settings, "fcm_server_key", "test-server-key")


def test_titles_follow_booking_events(run_in_world):
    async def scenario(world):
        booking = await world.booking_in("completed")
        titles = [render_notification(intent)[0] for intent in booking.intent_log if intent.kind == "notify"]
        assert titles == ["New Job Assigned", "Booking Accepted", "Booking Started", "Booking Completed"]

    run_in_world(scenario)


def test_push_sent_once_per_intent(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="ravi")
        intent = booking.intent_log[0]
        fcm = FakeFcm([200])
        service = _service(fcm)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.APPLIED
            await db.commit()
        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.DUPLICATE
            await db.commit()

        assert len(fcm.requests) == 1
        request = fcm.requests[0]
        assert request.headers["Authorization"] == "key=test-server-key"
        body = request.read().decode()
        assert "tok-ravi" in body
        assert "New Job Assigned" in body

        assert await _count(world) == 1
        async with world.session_factory() as db:
            notifications = await service.list_notifications(db, world.workers["ravi"])
            assert len(notifications) == 1
            assert notifications[0].delivered_at is not None
            assert notifications[0].delivery_attempts == 1
            assert notifications[0].source_intent_id == intent.intent_id

        await service.close()

    run_in_world(scenario)


def test_transient_failures_are_retried(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="ravi")
        fcm = FakeFcm([503, 500, 200])
        service = _service(fcm)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, booking.intent_log[0]) is ApplyResult.APPLIED
            await db.commit()

        assert len(fcm.requests) == 3
        async with world.session_factory() as db:
            notification = (await service.list_notifications(db, world.workers["ravi"]))[0]
            assert notification.delivery_attempts == 3
            assert notification.last_error is None

        await service.close()

    run_in_world(scenario)


def test_exhausted_retries_defer_without_duplicating(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="ravi")
        intent = booking.intent_log[0]
        fcm = FakeFcm([503, 503, 503, 200])
        service = _service(fcm)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.DEFERRED
            await db.commit()

        async with world.session_factory() as db:
            notification = (await service.list_notifications(db, world.workers["ravi"]))[0]
            assert notification.delivered_at is None
            assert notification.last_error == "FCM returned 503"

        # Next pass reuses the same in-app row
        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.APPLIED
            await db.commit()

        assert len(fcm.requests) == 4
        assert await _count(world) == 1

        await service.close()

    run_in_world(scenario)


def test_concurrent_redelivery_pushes_once(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="ravi")
        intent = booking.intent_log[0]
        fcm = FakeFcm([503], delay=0.2)
        service = _service(fcm, max_attempts=1)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.DEFERRED
            await db.commit()

        async def drain_once():
            async with world.session_factory() as db:
                result = await service.apply_intent(db, intent)
                await db.commit()
                return result

        results = await asyncio.gather(drain_once(), drain_once())

        assert results.count(ApplyResult.APPLIED) == 1
        assert len(fcm.requests) == 2
        assert await _count(world) == 1
        async with world.session_factory() as db:
            notification = (await service.list_notifications(db, world.workers["ravi"]))[0]
            assert notification.delivered_at is not None
            assert notification.claimed_at is None
            assert notification.delivery_attempts == 2

        await service.close()

    run_in_world(scenario)


def test_live_claim_defers_and_stale_claim_is_taken_over(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="ravi")
        intent = booking.intent_log[0]
        fcm = FakeFcm([503])
        service = _service(fcm, max_attempts=1)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.DEFERRED
            await db.commit()

        async def set_claim(age_seconds):
            async with world.session_factory() as db:
                notification = (await service.list_notifications(db, world.workers["ravi"]))[0]
                notification.claimed_at = datetime.now(UTC) - timedelta(seconds=age_seconds)
                await db.commit()

        # Another drainer is mid-push
        await set_claim(1)
        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.DEFERRED
            await db.commit()
        assert len(fcm.requests) == 1

        # That drainer died long ago
        await set_claim(settings.push_claim_seconds + 60)
        async with world.session_factory() as db:
            assert await service.apply_intent(db, intent) is ApplyResult.APPLIED
            await db.commit()
        assert len(fcm.requests) == 2

        await service.close()

    run_in_world(scenario)


def test_rejected_token_keeps_in_app_copy(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="ravi")
        fcm = FakeFcm([400])
        service = _service(fcm)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, booking.intent_log[0]) is ApplyResult.APPLIED
            await db.commit()

        assert len(fcm.requests) == 1
        async with world.session_factory() as db:
            notification = (await service.list_notifications(db, world.workers["ravi"]))[0]
            assert notification.delivered_at is not None
            assert "400" in notification.last_error

        await service.close()

    run_in_world(scenario)


def test_no_token_is_in_app_only(run_in_world, fcm_configured):
    async def scenario(world):
        booking = await world.booking_in("assigned", worker="anita")
        fcm = FakeFcm([])
        service = _service(fcm)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, booking.intent_log[0]) is ApplyResult.APPLIED
            await db.commit()

        assert fcm.requests == []
        await service.close()

    run_in_world(scenario)


def test_admin_notifications_and_mark_read(run_in_world):
    async def scenario(world):
        booking = await world.booking_in("cancelled")
        service = NotificationService(backoff_seconds=0)

        async with world.session_factory() as db:
            assert await service.apply_intent(db, booking.intent_log[0]) is ApplyResult.APPLIED
            await db.commit()

        async with world.session_factory() as db:
            notifications = await service.list_admin_notifications(db)
            assert [n.title for n in notifications] == ["Booking Cancelled"]
            assert "Plans changed" in notifications[0].message

            read = await service.mark_read(db, notifications[0].id)
            assert read.is_read and read.read_at is not None
            await db.commit()

            with pytest.raises(NotFoundError):
                await service.mark_read(db, uuid4())

    run_in_world(scenario)
