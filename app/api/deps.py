"""API dependencies wiring services to the request."""

from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database import AsyncSessionLocal, get_db
from app.services.booking_store import SqlBookingStore
from app.services.intent_drainer import IntentDrainer, build_intent_drainer
from app.services.transition_service import BookingTransitionService
from app.services.worker_directory import WorkerDirectory

__all__ = [
    "get_db",
    "get_session_factory",
    "get_booking_store",
    "get_worker_directory",
    "get_transition_service",
    "get_intent_drainer",
]


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory used by the store, directory and drainer."""
    return AsyncSessionLocal


def get_booking_store(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> SqlBookingStore:
    return SqlBookingStore(session_factory)


def get_worker_directory(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> WorkerDirectory:
    return WorkerDirectory(session_factory)


def get_transition_service(
    store: Annotated[SqlBookingStore, Depends(get_booking_store)],
    workers: Annotated[WorkerDirectory, Depends(get_worker_directory)],
) -> BookingTransitionService:
    """Engine bound to the request's store and worker directory."""
    return BookingTransitionService(store, workers)


def get_intent_drainer(
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> IntentDrainer:
    return build_intent_drainer(session_factory)
