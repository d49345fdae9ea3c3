"""Booking-related Pydantic schemas.

Booking payloads use camelCase on the wire (``workerId``, ``actorRole``,
``appliedBy``) and accept snake_case field names on input as well.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.domain.records import BookingRecord, Intent
from app.services.transition_service import TransitionResult
from app.services.worker_directory import CandidateWorker


class CamelModel(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class BookingCreate(CamelModel):
    """Schema for creating a pending booking."""

    customer_id: UUID
    service_id: UUID
    price: int = Field(..., gt=0, description="Price in minor currency units")
    scheduled_at: datetime
    currency: str = Field(default="INR", pattern="^[A-Z]{3}$")


class IntentResponse(CamelModel):
    """One intent log entry."""

    intent_id: str
    seq: int
    kind: str
    target: str
    recipient_id: UUID | None
    payload: dict[str, Any]
    booking_version: int
    applied_by: list[str]

    @classmethod
    def from_intent(cls, intent: Intent) -> "IntentResponse":
        return cls(
            intent_id=intent.intent_id,
            seq=intent.seq,
            kind=intent.kind,
            target=intent.target,
            recipient_id=intent.recipient_id,
            payload=intent.payload,
            booking_version=intent.booking_version,
            applied_by=sorted(intent.applied_by),
        )


class BookingResponse(CamelModel):
    """Schema for booking response."""

    id: UUID
    booking_number: str
    customer_id: UUID
    worker_id: UUID | None
    service_id: UUID
    price: int
    currency: str
    scheduled_at: datetime
    status: str
    version: int
    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    intents: list[IntentResponse] = []

    @classmethod
    def from_record(cls, record: BookingRecord) -> "BookingResponse":
        return cls(
            id=record.id,
            booking_number=record.booking_number,
            customer_id=record.customer_id,
            worker_id=record.worker_id,
            service_id=record.service_id,
            price=record.price,
            currency=record.currency,
            scheduled_at=record.scheduled_at,
            status=record.status,
            version=record.version,
            cancelled_by=record.cancelled_by,
            cancellation_reason=record.cancellation_reason,
            intents=[IntentResponse.from_intent(intent) for intent in record.intent_log],
        )


class TransitionRequest(CamelModel):
    """Body of ``POST /bookings/{id}/transition``.

    ``action`` and ``actor_role`` are validated by the engine so unknown
    values come back as ``ValidationFailed``.
    """

    action: str = Field(..., min_length=1, max_length=20)
    actor_role: str = Field(..., min_length=1, max_length=20)
    actor_id: UUID | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class TransitionResponse(CamelModel):
    """Committed transition."""

    booking_id: UUID
    status: str
    version: int
    worker_id: UUID | None
    intents: list[IntentResponse]

    @classmethod
    def from_result(cls, result: TransitionResult) -> "TransitionResponse":
        return cls(
            booking_id=result.booking_id,
            status=result.status,
            version=result.version,
            worker_id=result.worker_id,
            intents=[IntentResponse.from_intent(intent) for intent in result.intents],
        )


class CandidateResponse(CamelModel):
    """Worker suggested for a booking."""

    worker_id: UUID
    full_name: str
    average_rating: float
    active_bookings: int

    @classmethod
    def from_candidate(cls, candidate: CandidateWorker) -> "CandidateResponse":
        return cls(
            worker_id=candidate.profile.id,
            full_name=candidate.profile.full_name,
            average_rating=candidate.profile.average_rating,
            active_bookings=candidate.active_bookings,
        )
