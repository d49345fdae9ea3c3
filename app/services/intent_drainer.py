"""Applies pending booking intents to their consumers.

Each consumer (ledger, notifier) sees the intents of its kinds in log order
per booking. An intent is applied and its receipt recorded in one
transaction; when an intent cannot be applied, the rest of that booking's
intents for the same consumer wait for the next pass.
"""

import logging
from collections.abc import Iterable
from dataclasses import asdict, dataclass
from itertools import groupby
from typing import Protocol
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.database import AsyncSessionLocal
from app.domain.records import ApplyResult, Intent
from app.services.booking_store import SqlBookingStore
from app.services.ledger_service import ledger_service
from app.services.notification_service import notification_service

logger = logging.getLogger(__name__)


class IntentConsumer(Protocol):
    name: str
    kinds: tuple[str, ...]

    async def apply_intent(self, db: AsyncSession, intent: Intent) -> ApplyResult: ...


@dataclass
class DrainReport:
    """Counts for one drain pass of one consumer."""

    applied: int = 0
    duplicates: int = 0
    deferred: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class IntentDrainer:
    """Feeds unconsumed intents to ledger and notifier consumers."""

    def __init__(
        self,
        store: SqlBookingStore,
        session_factory: async_sessionmaker[AsyncSession],
        consumers: Iterable[IntentConsumer],
    ) -> None:
        self._store = store
        self._session_factory = session_factory
        self._consumers = {consumer.name: consumer for consumer in consumers}

    @property
    def consumer_names(self) -> list[str]:
        return list(self._consumers)

    async def drain(self, consumer_name: str, limit: int | None = None) -> DrainReport:
        """Apply up to ``limit`` pending intents for one consumer.

        Raises:
            KeyError: Unknown consumer
            DependencyUnavailable: The store could not be read
        """
        consumer = self._consumers[consumer_name]
        intents = await self._store.pending_intents(
            consumer.name,
            consumer.kinds,
            limit=limit or settings.intent_drain_batch_size,
        )
        report = await self._apply_all(consumer, intents)
        if intents:
            logger.info(
                f"Drained {consumer.name}: applied={report.applied} "
                f"duplicates={report.duplicates} deferred={report.deferred}"
            )
        return report

    async def drain_all(self, limit: int | None = None) -> dict[str, DrainReport]:
        return {name: await self.drain(name, limit) for name in self._consumers}

    async def drain_booking(self, booking_id: UUID) -> dict[str, DrainReport]:
        """Apply every pending intent of one booking, for every consumer."""
        reports: dict[str, DrainReport] = {}
        for consumer in self._consumers.values():
            intents = await self._store.pending_intents(
                consumer.name,
                consumer.kinds,
                limit=settings.intent_drain_batch_size,
                booking_id=booking_id,
            )
            reports[consumer.name] = await self._apply_all(consumer, intents)
        return reports

    async def _apply_all(self, consumer: IntentConsumer, intents: list[Intent]) -> DrainReport:
        report = DrainReport()
        for booking_id, group in groupby(intents, key=lambda intent: intent.booking_id):
            batch = sorted(group, key=lambda intent: intent.seq)
            for position, intent in enumerate(batch):
                result = await self._apply_one(consumer, intent)
                if result is ApplyResult.DEFERRED:
                    report.deferred += len(batch) - position
                    logger.warning(
                        f"{consumer.name}: deferring {len(batch) - position} intent(s) "
                        f"of booking {booking_id} from seq {intent.seq}"
                    )
                    break
                if result is ApplyResult.APPLIED:
                    report.applied += 1
                else:
                    report.duplicates += 1
        return report

    async def _apply_one(self, consumer: IntentConsumer, intent: Intent) -> ApplyResult:
        async with self._session_factory() as db:
            try:
                result = await consumer.apply_intent(db, intent)
                if result is ApplyResult.DEFERRED:
                    # Keep delivery attempt bookkeeping, no receipt
                    await db.commit()
                    return result
                await self._store.record_receipt(db, intent.intent_id, consumer.name)
                await db.commit()
                return result
            except IntegrityError:
                # Receipt written by a concurrent drainer
                await db.rollback()
                logger.info(f"{consumer.name}: intent {intent.intent_id} already receipted")
                return ApplyResult.DUPLICATE
            except Exception as e:
                await db.rollback()
                logger.error(f"{consumer.name}: failed to apply intent {intent.intent_id}: {e}")
                return ApplyResult.DEFERRED


def build_intent_drainer(session_factory: async_sessionmaker[AsyncSession] | None = None) -> IntentDrainer:
    """Drainer wired to the ledger and notifier over the given sessions."""

    factory = session_factory or AsyncSessionLocal
    return IntentDrainer(
        store=SqlBookingStore(factory),
        session_factory=factory,
        consumers=[ledger_service, notification_service],
    )
