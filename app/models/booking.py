"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.database import Base

JSONType = JSON().with_variant(JSONB(), "postgresql")


class Booking(Base):
    """Booking model.

    Mutated only through a version-checked conditional update; see
    ``SqlBookingStore.compare_and_swap``.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("price > 0", name="ck_booking_price_positive"),
        CheckConstraint(
            "(worker_id IS NOT NULL) = (status IN ('assigned', 'accepted', 'in_progress', 'completed'))",
            name="ck_booking_worker_matches_status",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # HS-XXXXXX

    # Parties
    customer_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    worker_id: Mapped[uuid.UUID | None] = mapped_column(Uuid, index=True)

    # Job
    service_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    price: Mapped[int] = mapped_column(Integer, nullable=False)  # minor currency units
    currency: Mapped[str] = mapped_column(String(3), default="INR")
    scheduled_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)

    # Lifecycle
    status: Mapped[str] = mapped_column(
        String(20), default="pending", nullable=False, index=True
    )  # pending, assigned, accepted, in_progress, completed, cancelled, rejected
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)

    # Cancellation / rejection
    cancelled_by: Mapped[str | None] = mapped_column(String(10))  # customer, admin, worker
    cancellation_reason: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    intents: Mapped[list["BookingIntent"]] = relationship(
        "BookingIntent",
        back_populates="booking",
        order_by="BookingIntent.seq",
        cascade="all, delete-orphan",
    )


class BookingIntent(Base):
    """Append-only side-effect log entry of a booking."""

    __tablename__ = "booking_intents"
    __table_args__ = (UniqueConstraint("booking_id", "seq", name="uq_booking_intent_seq"),)

    id: Mapped[str] = mapped_column(String(64), primary_key=True)  # intent ID
    booking_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, index=True
    )
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # notify, creditWallet, creditCoins
    target: Mapped[str] = mapped_column(String(10), nullable=False)  # customer, worker, admin
    recipient_id: Mapped[uuid.UUID | None] = mapped_column(Uuid)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONType, default=dict, nullable=False)
    booking_version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="intents")
    receipts: Mapped[list["IntentReceipt"]] = relationship(
        "IntentReceipt", cascade="all, delete-orphan", lazy="selectin"
    )


class IntentReceipt(Base):
    """Marks an intent as processed by one consumer (ledger, notifier)."""

    __tablename__ = "intent_receipts"

    intent_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("booking_intents.id", ondelete="CASCADE"), primary_key=True
    )
    consumer: Mapped[str] = mapped_column(String(20), primary_key=True)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
