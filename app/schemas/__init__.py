"""Pydantic schemas for API validation."""

from app.schemas.booking import (
    BookingCreate,
    BookingResponse,
    CandidateResponse,
    IntentResponse,
    TransitionRequest,
    TransitionResponse,
)
from app.schemas.ledger import (
    CoinBalanceResponse,
    CoinEntryResponse,
    WalletEntryResponse,
    WalletResponse,
)
from app.schemas.notification import NotificationListResponse, NotificationResponse

__all__ = [
    # Booking
    "BookingCreate",
    "BookingResponse",
    "CandidateResponse",
    "IntentResponse",
    "TransitionRequest",
    "TransitionResponse",
    # Ledger
    "CoinBalanceResponse",
    "CoinEntryResponse",
    "WalletEntryResponse",
    "WalletResponse",
    # Notification
    "NotificationListResponse",
    "NotificationResponse",
]
