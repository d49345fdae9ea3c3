"""Booking endpoints."""

import logging
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query, status

from app.api.deps import (
    get_booking_store,
    get_intent_drainer,
    get_transition_service,
    get_worker_directory,
)
from app.config import settings
from app.core.exceptions import NotFoundError, ValidationError
from app.domain.booking_state import BookingStatus
from app.schemas.booking import (
    BookingCreate,
    BookingResponse,
    CandidateResponse,
    TransitionRequest,
    TransitionResponse,
)
from app.services.booking_store import SqlBookingStore
from app.services.intent_drainer import IntentDrainer
from app.services.transition_service import BookingTransitionService
from app.services.worker_directory import WorkerDirectory

logger = logging.getLogger(__name__)

router = APIRouter()


async def apply_booking_intents(drainer: IntentDrainer, booking_id: UUID) -> None:
    """Post-commit hook: apply the booking's new intents right away.

    Anything left pending is picked up by the periodic drain.
    """
    try:
        await drainer.drain_booking(booking_id)
    except Exception as e:
        logger.error(f"Post-commit intent drain for booking {booking_id} failed: {e}")


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    store: Annotated[SqlBookingStore, Depends(get_booking_store)],
) -> BookingResponse:
    """Create a pending booking."""
    record = await store.create(
        customer_id=booking_data.customer_id,
        service_id=booking_data.service_id,
        price=booking_data.price,
        scheduled_at=booking_data.scheduled_at,
        currency=booking_data.currency,
    )
    return BookingResponse.from_record(record)


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    store: Annotated[SqlBookingStore, Depends(get_booking_store)],
) -> BookingResponse:
    """Get booking with its version and intent log."""
    record = await store.get(booking_id)
    if record is None:
        raise NotFoundError("Booking", str(booking_id))
    return BookingResponse.from_record(record)


@router.post("/{booking_id}/transition", response_model=TransitionResponse)
async def transition_booking(
    booking_id: UUID,
    request: TransitionRequest,
    background_tasks: BackgroundTasks,
    engine: Annotated[BookingTransitionService, Depends(get_transition_service)],
    drainer: Annotated[IntentDrainer, Depends(get_intent_drainer)],
) -> TransitionResponse:
    """Apply an action to a booking.

    Errors: 404 NotFound, 403 Forbidden, 409 Conflict, 422 InvalidTransition /
    TerminalState / ValidationFailed, 503 DependencyUnavailable.
    """
    result = await engine.request_transition(
        booking_id=booking_id,
        actor_role=request.actor_role,
        action=request.action,
        payload=request.payload,
        actor_id=request.actor_id,
    )

    if settings.apply_intents_after_commit and result.intents:
        background_tasks.add_task(apply_booking_intents, drainer, booking_id)

    return TransitionResponse.from_result(result)


@router.get("/{booking_id}/candidates", response_model=list[CandidateResponse])
async def list_candidate_workers(
    booking_id: UUID,
    store: Annotated[SqlBookingStore, Depends(get_booking_store)],
    workers: Annotated[WorkerDirectory, Depends(get_worker_directory)],
    limit: int = Query(default=10, ge=1, le=50),
) -> list[CandidateResponse]:
    """Eligible workers for assigning or reassigning a booking."""
    record = await store.get(booking_id)
    if record is None:
        raise NotFoundError("Booking", str(booking_id))
    if record.status not in (
        BookingStatus.PENDING.value,
        BookingStatus.ASSIGNED.value,
    ):
        raise ValidationError(f"Booking in status '{record.status}' cannot be assigned")

    candidates = await workers.rank_candidates(record, limit=limit)
    return [CandidateResponse.from_candidate(candidate) for candidate in candidates]
