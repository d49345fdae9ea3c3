"""Wallet and coin ledger models.

Entries are immutable. ``source_intent_id`` is unique so an intent can
credit a ledger at most once.
"""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from app.database import Base


class WalletEntry(Base):
    """Money movement on a worker's or customer's wallet."""

    __tablename__ = "wallet_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    owner_type: Mapped[str] = mapped_column(String(10), nullable=False)  # worker, customer

    # Signed amount in minor units (credits positive)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    # References
    booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    source_intent_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )


class CoinEntry(Base):
    """Reward coin movement on a customer's coin balance."""

    __tablename__ = "coin_entries"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)

    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_type: Mapped[str] = mapped_column(
        String(20), default="earned"
    )  # earned, spent, expired, admin-credit, cashback
    reason: Mapped[str] = mapped_column(Text, nullable=False)

    booking_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)
    source_intent_id: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
