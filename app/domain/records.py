"""Immutable snapshots passed between the store, the engine and consumers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

LEDGER_CONSUMER = "ledger"
NOTIFIER_CONSUMER = "notifier"


@dataclass(frozen=True)
class Intent:
    """One entry of a booking's intent log."""

    intent_id: str
    booking_id: UUID
    seq: int
    kind: str
    target: str
    recipient_id: UUID | None
    payload: dict[str, Any]
    booking_version: int
    applied_by: frozenset[str] = frozenset()


@dataclass(frozen=True)
class BookingRecord:
    """Booking as read from the store.

    ``version`` is the version that was read; a record handed back to
    ``compare_and_swap`` keeps it unchanged and the store increments it.
    """

    id: UUID
    booking_number: str
    customer_id: UUID
    worker_id: UUID | None
    service_id: UUID
    price: int
    currency: str
    scheduled_at: datetime
    status: str
    version: int
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    intent_log: tuple[Intent, ...] = field(default_factory=tuple)


class ApplyResult(str, Enum):
    """Outcome of a consumer handling one intent."""

    APPLIED = "applied"  # side effect performed now
    DUPLICATE = "duplicate"  # already performed earlier; nothing done
    DEFERRED = "deferred"  # not done yet, retry on a later pass
