"""Wallet and coin balance endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import get_db
from app.schemas.ledger import (
    CoinBalanceResponse,
    CoinEntryResponse,
    WalletEntryResponse,
    WalletResponse,
)
from app.services.ledger_service import ledger_service

router = APIRouter()


@router.get("/wallets/{owner_id}", response_model=WalletResponse)
async def get_wallet(
    owner_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=200),
) -> WalletResponse:
    """Wallet balance and recent entries of a worker or customer."""
    balance = await ledger_service.wallet_balance(db, owner_id)
    entries = await ledger_service.list_wallet_entries(db, owner_id, limit=limit)
    return WalletResponse(
        owner_id=owner_id,
        balance=balance,
        entries=[WalletEntryResponse.model_validate(entry) for entry in entries],
    )


@router.get("/coins/{owner_id}", response_model=CoinBalanceResponse)
async def get_coins(
    owner_id: UUID,
    db: Annotated[AsyncSession, Depends(get_db)],
    limit: int = Query(default=50, ge=1, le=200),
) -> CoinBalanceResponse:
    """Reward coin balance and recent entries of a customer."""
    balance = await ledger_service.coin_balance(db, owner_id)
    entries = await ledger_service.list_coin_entries(db, owner_id, limit=limit)
    return CoinBalanceResponse(
        owner_id=owner_id,
        balance=balance,
        entries=[CoinEntryResponse.model_validate(entry) for entry in entries],
    )
