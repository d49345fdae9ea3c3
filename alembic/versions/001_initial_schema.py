"""Initial database schema.

Revision ID: 001_initial
Revises: None
Create Date: 2026-10-17

Creates all initial tables for the HomeServ booking service:
- Customers and workers (with service capability)
- Bookings, intent log and consumer receipts
- Wallet and coin ledgers
- Notifications
"""

from typing import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers
revision: str = "001_initial"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create all database tables."""

    # ==================== PARTIES ====================
    op.create_table(
        "customers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("mobile_number", sa.String(20)),
        sa.Column("fcm_token", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "workers",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100)),
        sa.Column("mobile_number", sa.String(20)),
        sa.Column("city", sa.String(100)),
        sa.Column("is_active", sa.Boolean, default=True),
        sa.Column("is_available", sa.Boolean, default=True),
        sa.Column("average_rating", sa.Float, default=0.0),
        sa.Column("fcm_token", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "worker_services",
        sa.Column(
            "worker_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("workers.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), primary_key=True),
    )

    # ==================== BOOKINGS ====================
    op.create_table(
        "bookings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("booking_number", sa.String(20), unique=True, nullable=False, index=True),
        sa.Column("customer_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("worker_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("service_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("price", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), default="INR"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, default="pending", index=True),
        sa.Column("version", sa.Integer, nullable=False, default=1),
        sa.Column("cancelled_by", sa.String(10)),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
        sa.CheckConstraint("price > 0", name="ck_booking_price_positive"),
        sa.CheckConstraint(
            "(worker_id IS NOT NULL) = (status IN ('assigned', 'accepted', 'in_progress', 'completed'))",
            name="ck_booking_worker_matches_status",
        ),
    )

    op.create_table(
        "booking_intents",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column(
            "booking_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("bookings.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        ),
        sa.Column("seq", sa.Integer, nullable=False),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("target", sa.String(10), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True)),
        sa.Column("payload", postgresql.JSONB, nullable=False, server_default="{}"),
        sa.Column("booking_version", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("booking_id", "seq", name="uq_booking_intent_seq"),
    )

    op.create_table(
        "intent_receipts",
        sa.Column(
            "intent_id",
            sa.String(64),
            sa.ForeignKey("booking_intents.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("consumer", sa.String(20), primary_key=True),
        sa.Column("applied_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== LEDGERS ====================
    op.create_table(
        "wallet_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("owner_type", sa.String(10), nullable=False),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("currency", sa.String(3), default="INR"),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("source_intent_id", sa.String(64), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "coin_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("amount", sa.Integer, nullable=False),
        sa.Column("entry_type", sa.String(20), default="earned"),
        sa.Column("reason", sa.Text, nullable=False),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("source_intent_id", sa.String(64), unique=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    # ==================== NOTIFICATIONS ====================
    op.create_table(
        "notifications",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("recipient_role", sa.String(10), nullable=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("notification_type", sa.String(50), nullable=False),
        sa.Column("data", postgresql.JSONB, server_default="{}"),
        sa.Column("booking_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("source_intent_id", sa.String(64), unique=True, nullable=False),
        sa.Column("is_read", sa.Boolean, default=False),
        sa.Column("read_at", sa.DateTime(timezone=True)),
        sa.Column("delivery_attempts", sa.Integer, default=0),
        sa.Column("delivered_at", sa.DateTime(timezone=True)),
        sa.Column("claimed_at", sa.DateTime(timezone=True)),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )


def downgrade() -> None:
    """Drop all database tables in reverse order."""
    op.drop_table("notifications")
    op.drop_table("coin_entries")
    op.drop_table("wallet_entries")
    op.drop_table("intent_receipts")
    op.drop_table("booking_intents")
    op.drop_table("bookings")
    op.drop_table("worker_services")
    op.drop_table("workers")
    op.drop_table("customers")
