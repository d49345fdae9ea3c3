"""Database models."""

from app.models.booking import Booking, BookingIntent, IntentReceipt
from app.models.financial import CoinEntry, WalletEntry
from app.models.notification import Notification
from app.models.user import Customer, Worker, worker_services

__all__ = [
    # Booking
    "Booking",
    "BookingIntent",
    "IntentReceipt",
    # Parties
    "Customer",
    "Worker",
    "worker_services",
    # Ledger
    "WalletEntry",
    "CoinEntry",
    # Notification
    "Notification",
]
