"""Background task for draining booking intents inside the API process."""

import asyncio
import logging

from app.config import settings
from app.services.intent_drainer import DrainReport, build_intent_drainer

logger = logging.getLogger(__name__)

# Flag to stop the background task
_stop_intent_drain = False


async def run_intent_drain(trigger: str = "scheduled") -> dict[str, DrainReport] | None:
    """Run one drain pass for every consumer."""
    drainer = build_intent_drainer()
    try:
        reports = await drainer.drain_all()
    except Exception as e:
        logger.error(f"Intent drain failed (trigger: {trigger}): {e}")
        return None

    pending = sum(report.deferred for report in reports.values())
    if pending:
        logger.warning(f"Intent drain left {pending} intent(s) deferred (trigger: {trigger})")
    return reports


async def start_intent_drain_scheduler(interval_seconds: int | None = None):
    """Background task that drains intents every ``intent_drain_interval_seconds``."""
    global _stop_intent_drain
    _stop_intent_drain = False
    interval = interval_seconds or settings.intent_drain_interval_seconds

    logger.info(f"Intent drain scheduler started (every {interval}s)")

    while not _stop_intent_drain:
        await run_intent_drain(trigger="scheduled")

        # Wait for next interval (check stop flag every second)
        for _ in range(interval):
            if _stop_intent_drain:
                break
            await asyncio.sleep(1)

    logger.info("Intent drain scheduler stopped")


def stop_intent_drain_scheduler():
    """Signal the intent drain scheduler to stop."""
    global _stop_intent_drain
    _stop_intent_drain = True


async def run_startup_intent_drain():
    """Drain whatever was left pending by a previous process."""
    logger.info("Running startup intent drain")
    await run_intent_drain(trigger="startup")
