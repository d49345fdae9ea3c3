"""Wallet and coin Pydantic schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class WalletEntryResponse(BaseModel):
    """Schema for a wallet entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: int
    currency: str
    reason: str
    booking_id: UUID | None
    source_intent_id: str
    created_at: datetime


class CoinEntryResponse(BaseModel):
    """Schema for a coin entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    amount: int
    entry_type: str
    reason: str
    booking_id: UUID | None
    source_intent_id: str
    created_at: datetime


class WalletResponse(BaseModel):
    """Wallet balance with recent entries."""

    owner_id: UUID
    balance: int
    entries: list[WalletEntryResponse]


class CoinBalanceResponse(BaseModel):
    """Coin balance with recent entries."""

    owner_id: UUID
    balance: int
    entries: list[CoinEntryResponse]
