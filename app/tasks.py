"""Celery background tasks.

This module contains the periodic intent drains:
- Ledger credits for completed bookings
- Notification delivery
"""

import asyncio
import logging

from celery import shared_task

from app.domain.records import LEDGER_CONSUMER, NOTIFIER_CONSUMER
from app.services.intent_drainer import build_intent_drainer
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)


def run_async(coro):
    """Run async function in sync context."""
    return asyncio.run(coro)


async def _drain(consumer: str) -> dict[str, int]:
    from app.database import engine

    drainer = build_intent_drainer()
    try:
        report = await drainer.drain(consumer)
    finally:
        # Pooled connections and the push client are bound to this task's event loop
        await notification_service.close()
        await engine.dispose()
    return report.as_dict()


# ==================== INTENT TASKS ====================


@shared_task(bind=True, max_retries=3)
def drain_ledger_intents(self):
    """Apply pending creditWallet / creditCoins intents.

    Runs every ``intent_drain_interval_seconds`` via beat.
    """
    try:
        counts = run_async(_drain(LEDGER_CONSUMER))
        return {"status": "success", **counts}
    except Exception as exc:
        logger.error(f"Ledger drain failed: {exc}")
        self.retry(exc=exc, countdown=60)


@shared_task(bind=True, max_retries=3)
def drain_notification_intents(self):
    """Apply pending notify intents (in-app record plus push)."""
    try:
        counts = run_async(_drain(NOTIFIER_CONSUMER))
        return {"status": "success", **counts}
    except Exception as exc:
        logger.error(f"Notification drain failed: {exc}")
        self.retry(exc=exc, countdown=60)
