"""Main API router that includes all endpoint routers."""

from fastapi import APIRouter

from app.api.v1 import bookings, notifications, wallets

api_router = APIRouter()

# Bookings
api_router.include_router(bookings.router, prefix="/bookings", tags=["Bookings"])

# Wallets and coins
api_router.include_router(wallets.router, tags=["Wallets"])

# Notifications
api_router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
