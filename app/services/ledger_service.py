"""Wallet and coin ledger.

Applies ``creditWallet`` / ``creditCoins`` intents. Every entry carries the
intent ID it came from and that column is unique, so applying the same
intent twice writes one entry.
"""

import logging
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.domain.booking_state import IntentKind
from app.domain.records import LEDGER_CONSUMER, ApplyResult, Intent
from app.models.financial import CoinEntry, WalletEntry

logger = logging.getLogger(__name__)


def assert_positive_amount(amount: int, context: str) -> None:
    """Guard: Prevent negative or zero credits."""
    if amount <= 0:
        raise ValidationError(f"{context}: amount must be positive, got {amount}")


class LedgerService:
    """Idempotent consumer for wallet and coin intents."""

    name = LEDGER_CONSUMER
    kinds = (IntentKind.CREDIT_WALLET.value, IntentKind.CREDIT_COINS.value)

    async def apply_intent(self, db: AsyncSession, intent: Intent) -> ApplyResult:
        """Write the ledger entry for an intent, unless one already exists.

        Args:
            db: Database session (caller commits)
            intent: creditWallet or creditCoins intent

        Returns:
            ApplyResult.APPLIED for a new entry, ApplyResult.DUPLICATE otherwise
        """
        if intent.kind == IntentKind.CREDIT_WALLET.value:
            model = WalletEntry
        elif intent.kind == IntentKind.CREDIT_COINS.value:
            model = CoinEntry
        else:
            raise ValidationError(f"Ledger cannot apply intent of kind '{intent.kind}'")

        existing = await db.execute(
            select(model.id).where(model.source_intent_id == intent.intent_id)
        )
        if existing.scalar_one_or_none() is not None:
            logger.info(f"Ledger skipped duplicate intent {intent.intent_id}")
            return ApplyResult.DUPLICATE

        amount = int(intent.payload.get("amount", 0))
        assert_positive_amount(amount, f"Intent {intent.intent_id}")
        if intent.recipient_id is None:
            raise ValidationError(f"Intent {intent.intent_id} has no recipient")

        if model is WalletEntry:
            entry = WalletEntry(
                owner_id=intent.recipient_id,
                owner_type=intent.target,
                amount=amount,
                currency=intent.payload.get("currency", "INR"),
                reason=f"Payment for booking {intent.payload.get('booking_number', intent.booking_id)}",
                booking_id=intent.booking_id,
                source_intent_id=intent.intent_id,
            )
        else:
            entry = CoinEntry(
                owner_id=intent.recipient_id,
                amount=amount,
                entry_type="earned",
                reason="Reward coins for completed booking",
                booking_id=intent.booking_id,
                source_intent_id=intent.intent_id,
            )

        # A concurrent drainer may insert the same source_intent_id first
        db.add(entry)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.info(f"Ledger lost race on intent {intent.intent_id}; entry already written")
            return ApplyResult.DUPLICATE

        logger.info(
            f"Ledger credited {amount} ({intent.kind}) to {intent.target} {intent.recipient_id} "
            f"for booking {intent.booking_id}"
        )
        return ApplyResult.APPLIED

    async def wallet_balance(self, db: AsyncSession, owner_id: UUID) -> int:
        """Sum of wallet entries for an owner."""
        total = await db.scalar(
            select(func.coalesce(func.sum(WalletEntry.amount), 0)).where(WalletEntry.owner_id == owner_id)
        )
        return int(total or 0)

    async def coin_balance(self, db: AsyncSession, owner_id: UUID) -> int:
        """Sum of coin entries for an owner."""
        total = await db.scalar(
            select(func.coalesce(func.sum(CoinEntry.amount), 0)).where(CoinEntry.owner_id == owner_id)
        )
        return int(total or 0)

    async def list_wallet_entries(self, db: AsyncSession, owner_id: UUID, limit: int = 50) -> list[WalletEntry]:
        result = await db.execute(
            select(WalletEntry)
            .where(WalletEntry.owner_id == owner_id)
            .order_by(WalletEntry.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def list_coin_entries(self, db: AsyncSession, owner_id: UUID, limit: int = 50) -> list[CoinEntry]:
        result = await db.execute(
            select(CoinEntry)
            .where(CoinEntry.owner_id == owner_id)
            .order_by(CoinEntry.created_at.desc())
            .limit(limit)
        )
        return list(result.scalars().all())


ledger_service = LedgerService()
