"""Booking store with version-checked conditional writes.

Every mutation of a booking goes through ``compare_and_swap``: the row is
updated only if its stored version still equals the version the caller
read, and the new intent log entries are inserted in the same database
transaction. Consumer receipts live in their own table so marking an
intent consumed never touches the booking row or its version.
"""

import logging
from collections.abc import Iterable
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from app.core.exceptions import NotFoundError, ValidationError
from app.database import unavailable_on_disconnect
from app.domain.booking_state import BookingStatus
from app.domain.records import BookingRecord, Intent
from app.models.booking import Booking, BookingIntent, IntentReceipt
from app.utils.booking_number import generate_booking_number

logger = logging.getLogger(__name__)

STORE_NAME = "booking_store"


class CasOutcome(str, Enum):
    """Result of a conditional write."""

    OK = "ok"
    VERSION_CONFLICT = "version_conflict"
    NOT_FOUND = "not_found"


def _to_intent(row: BookingIntent) -> Intent:
    return Intent(
        intent_id=row.id,
        booking_id=row.booking_id,
        seq=row.seq,
        kind=row.kind,
        target=row.target,
        recipient_id=row.recipient_id,
        payload=dict(row.payload or {}),
        booking_version=row.booking_version,
        applied_by=frozenset(receipt.consumer for receipt in row.receipts),
    )


def _to_record(booking: Booking) -> BookingRecord:
    return BookingRecord(
        id=booking.id,
        booking_number=booking.booking_number,
        customer_id=booking.customer_id,
        worker_id=booking.worker_id,
        service_id=booking.service_id,
        price=booking.price,
        currency=booking.currency,
        scheduled_at=booking.scheduled_at,
        status=booking.status,
        version=booking.version,
        cancelled_by=booking.cancelled_by,
        cancellation_reason=booking.cancellation_reason,
        intent_log=tuple(_to_intent(row) for row in booking.intents),
    )


class SqlBookingStore:
    """Booking store backed by SQLAlchemy.

    Each operation runs in its own session so a read and the following
    conditional write are separate round trips, exactly as a concurrent
    caller would see them.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def get(self, booking_id: UUID) -> BookingRecord | None:
        """Load a booking with its intent log and consumer receipts."""
        async with unavailable_on_disconnect(STORE_NAME):
            async with self._session_factory() as db:
                result = await db.execute(
                    select(Booking)
                    .options(selectinload(Booking.intents).selectinload(BookingIntent.receipts))
                    .where(Booking.id == booking_id)
                )
                booking = result.scalar_one_or_none()
                return _to_record(booking) if booking else None

    async def compare_and_swap(
        self,
        booking_id: UUID,
        expected_version: int,
        new_state: BookingRecord,
    ) -> CasOutcome:
        """Replace the booking only if its stored version equals ``expected_version``.

        On success the stored version becomes ``expected_version + 1`` and the
        intents of ``new_state.intent_log`` beyond the stored log are appended.
        A stale version never mutates the record.
        """
        async with unavailable_on_disconnect(STORE_NAME):
            async with self._session_factory() as db:
                async with db.begin():
                    result = await db.execute(
                        update(Booking)
                        .where(Booking.id == booking_id, Booking.version == expected_version)
                        .values(
                            status=new_state.status,
                            worker_id=new_state.worker_id,
                            cancelled_by=new_state.cancelled_by,
                            cancellation_reason=new_state.cancellation_reason,
                            version=Booking.version + 1,
                            updated_at=func.now(),
                        )
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount != 1:
                        exists = await db.scalar(select(Booking.id).where(Booking.id == booking_id))
                        return CasOutcome.NOT_FOUND if exists is None else CasOutcome.VERSION_CONFLICT

                    stored = await db.scalar(
                        select(func.count())
                        .select_from(BookingIntent)
                        .where(BookingIntent.booking_id == booking_id)
                    )
                    for intent in new_state.intent_log[stored:]:
                        db.add(
                            BookingIntent(
                                id=intent.intent_id,
                                booking_id=booking_id,
                                seq=intent.seq,
                                kind=intent.kind,
                                target=intent.target,
                                recipient_id=intent.recipient_id,
                                payload=intent.payload,
                                booking_version=intent.booking_version,
                            )
                        )
        return CasOutcome.OK

    async def create(
        self,
        customer_id: UUID,
        service_id: UUID,
        price: int,
        scheduled_at: datetime,
        currency: str = "INR",
    ) -> BookingRecord:
        """Create a pending booking (customer-facing flow)."""
        if price <= 0:
            raise ValidationError(f"Booking price must be positive, got {price}")

        async with unavailable_on_disconnect(STORE_NAME):
            async with self._session_factory() as db:
                async with db.begin():
                    booking = Booking(
                        booking_number=await generate_booking_number(db),
                        customer_id=customer_id,
                        service_id=service_id,
                        price=price,
                        currency=currency,
                        scheduled_at=scheduled_at,
                        status=BookingStatus.PENDING.value,
                        version=1,
                        intents=[],
                    )
                    db.add(booking)
                    await db.flush()
                    record = _to_record(booking)

        logger.info(f"Created booking {record.id} ({record.booking_number}) for customer {customer_id}")
        return record

    async def pending_intents(
        self,
        consumer: str,
        kinds: Iterable[str],
        limit: int = 100,
        booking_id: UUID | None = None,
    ) -> list[Intent]:
        """Intents of the given kinds that ``consumer`` has not processed yet.

        Ordered by booking, then log position.
        """
        consumed = (
            select(IntentReceipt.intent_id)
            .where(
                IntentReceipt.intent_id == BookingIntent.id,
                IntentReceipt.consumer == consumer,
            )
            .exists()
        )
        query = (
            select(BookingIntent)
            .options(selectinload(BookingIntent.receipts))
            .where(BookingIntent.kind.in_(list(kinds)), ~consumed)
            .order_by(BookingIntent.booking_id, BookingIntent.seq)
            .limit(limit)
        )
        if booking_id is not None:
            query = query.where(BookingIntent.booking_id == booking_id)

        async with unavailable_on_disconnect(STORE_NAME):
            async with self._session_factory() as db:
                result = await db.execute(query)
                return [_to_intent(row) for row in result.scalars().all()]

    async def record_receipt(self, db: AsyncSession, intent_id: str, consumer: str) -> bool:
        """Mark ``intent_id`` processed by ``consumer`` inside the caller's transaction.

        Returns False if the receipt already existed.
        """
        existing = await db.get(IntentReceipt, (intent_id, consumer))
        if existing is not None:
            return False
        db.add(IntentReceipt(intent_id=intent_id, consumer=consumer))
        await db.flush()
        return True

    async def booking_intents(self, booking_id: UUID) -> list[Intent]:
        """The intent log of one booking in ``seq`` order, with receipts."""
        async with unavailable_on_disconnect(STORE_NAME):
            async with self._session_factory() as db:
                result = await db.execute(
                    select(BookingIntent)
                    .options(selectinload(BookingIntent.receipts))
                    .where(BookingIntent.booking_id == booking_id)
                    .order_by(BookingIntent.seq)
                )
                return [_to_intent(row) for row in result.scalars().all()]

    async def mark_applied(self, intent_id: str, consumer: str) -> bool:
        """Record in its own transaction that ``consumer`` applied ``intent_id``.

        Idempotent: returns False if the receipt already existed.

        Raises:
            NotFoundError: Unknown intent
        """
        async with unavailable_on_disconnect(STORE_NAME):
            async with self._session_factory() as db:
                if await db.get(BookingIntent, intent_id) is None:
                    raise NotFoundError("Intent", intent_id)
                try:
                    created = await self.record_receipt(db, intent_id, consumer)
                    await db.commit()
                except IntegrityError:
                    # Concurrent writer recorded it first
                    await db.rollback()
                    return False
        return created
