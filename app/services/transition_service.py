"""Booking assignment and status engine.

``request_transition`` is the only way a booking changes state. It loads the
booking, validates the requested action against the edge table in
``app.domain.booking_state`` and the actor, computes the next state plus the
side-effect intents, and commits both with one compare-and-swap. Side effects
are never performed here; the ledger and notifier consume the intent log.
"""

import dataclasses
import logging
from dataclasses import dataclass
from typing import Any, Protocol
from uuid import UUID

from app.config import settings
from app.core.exceptions import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from app.core.idempotency import generate_intent_id
from app.domain.booking_state import (
    ActorRole,
    BookingAction,
    BookingStatus,
    Edge,
    IntentKind,
    IntentTarget,
    check_worker_invariant,
    resolve_transition,
)
from app.domain.records import BookingRecord, Intent
from app.services.booking_store import CasOutcome
from app.services.worker_directory import WorkerProfile

logger = logging.getLogger(__name__)

# Attempts per request before a version conflict is surfaced as Conflict
MAX_TRANSITION_ATTEMPTS = 3


class BookingStore(Protocol):
    async def get(self, booking_id: UUID) -> BookingRecord | None: ...

    async def compare_and_swap(
        self, booking_id: UUID, expected_version: int, new_state: BookingRecord
    ) -> CasOutcome: ...


class WorkerLookup(Protocol):
    async def validate_assignment(self, booking: BookingRecord, worker_id: UUID) -> WorkerProfile: ...


@dataclass(frozen=True)
class TransitionResult:
    """Committed transition."""

    booking_id: UUID
    status: str
    version: int
    worker_id: UUID | None
    intents: tuple[Intent, ...]


@dataclass(frozen=True)
class _IntentDraft:
    kind: IntentKind
    target: IntentTarget
    recipient_id: UUID | None
    payload: dict[str, Any]


@dataclass(frozen=True)
class _Plan:
    status: BookingStatus
    worker_id: UUID | None
    drafts: list[_IntentDraft]
    cancelled_by: str | None = None
    cancellation_reason: str | None = None


def _parse_uuid(value: Any, field: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as e:
        raise ValidationError(f"'{field}' must be a valid UUID") from e


def _notify(target: IntentTarget, recipient_id: UUID | None, event: str, booking: BookingRecord, **extra: Any) -> _IntentDraft:
    payload = {
        "event": event,
        "booking_number": booking.booking_number,
        **{key: value for key, value in extra.items() if value is not None},
    }
    return _IntentDraft(IntentKind.NOTIFY, target, recipient_id, payload)


class BookingTransitionService:
    """Validates and commits booking transitions."""

    def __init__(
        self,
        store: BookingStore,
        workers: WorkerLookup,
        reward_coins: int | None = None,
    ) -> None:
        self._store = store
        self._workers = workers
        self._reward_coins = settings.completion_reward_coins if reward_coins is None else reward_coins

    async def request_transition(
        self,
        booking_id: UUID,
        actor_role: ActorRole | str,
        action: BookingAction | str,
        payload: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> TransitionResult:
        """Apply ``action`` to a booking on behalf of an actor.

        Args:
            booking_id: Booking to transition
            actor_role: customer, worker or admin
            action: One of ``BookingAction``
            payload: Action parameters (``worker_id`` for assign/reassign,
                ``reason`` for reject/cancel)
            actor_id: Identity of the caller, compared against the
                booking's customer or assigned worker

        Returns:
            TransitionResult: New status/version and the intents emitted

        Raises:
            NotFoundError, TerminalStateError, InvalidTransitionError,
            ForbiddenError, ValidationError, ConflictError,
            DependencyUnavailable
        """
        payload = payload or {}
        last_conflict: VersionConflictError | None = None

        for attempt in range(1, MAX_TRANSITION_ATTEMPTS + 1):
            try:
                return await self._attempt(booking_id, actor_role, action, payload, actor_id)
            except VersionConflictError as e:
                last_conflict = e
                logger.warning(
                    f"Version conflict on booking {booking_id} "
                    f"(action={action}, attempt {attempt}/{MAX_TRANSITION_ATTEMPTS})"
                )

        logger.warning(f"Giving up on booking {booking_id} after {MAX_TRANSITION_ATTEMPTS} conflicts")
        raise ConflictError() from last_conflict

    async def _attempt(
        self,
        booking_id: UUID,
        actor_role: ActorRole | str,
        action: BookingAction | str,
        payload: dict[str, Any],
        actor_id: UUID | None,
    ) -> TransitionResult:
        booking = await self._store.get(booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        edge = resolve_transition(booking.status, action, actor_role)
        action = BookingAction(action)
        role = ActorRole(actor_role)

        plan = await self._plan(booking, action, role, edge, payload, actor_id)

        new_version = booking.version + 1
        first_seq = len(booking.intent_log)
        new_intents = tuple(
            Intent(
                intent_id=generate_intent_id(booking.id, new_version, seq),
                booking_id=booking.id,
                seq=seq,
                kind=draft.kind.value,
                target=draft.target.value,
                recipient_id=draft.recipient_id,
                payload=draft.payload,
                booking_version=new_version,
            )
            for seq, draft in enumerate(plan.drafts, start=first_seq)
        )
        new_state = dataclasses.replace(
            booking,
            status=plan.status.value,
            worker_id=plan.worker_id,
            cancelled_by=plan.cancelled_by or booking.cancelled_by,
            cancellation_reason=plan.cancellation_reason or booking.cancellation_reason,
            intent_log=booking.intent_log + new_intents,
        )

        if not check_worker_invariant(new_state.status, new_state.worker_id):
            raise ValidationError(
                f"Booking {booking.id} cannot be '{new_state.status}' "
                f"{'without' if new_state.worker_id is None else 'with'} a worker"
            )

        outcome = await self._store.compare_and_swap(booking.id, booking.version, new_state)
        if outcome is CasOutcome.NOT_FOUND:
            raise NotFoundError("Booking", str(booking_id))
        if outcome is CasOutcome.VERSION_CONFLICT:
            raise VersionConflictError(str(booking_id), booking.version)

        logger.info(
            f"Booking {booking.id} {action.value} by {role.value}: "
            f"{booking.status} -> {plan.status.value} (v{new_version}, {len(new_intents)} intents)"
        )
        return TransitionResult(
            booking_id=booking.id,
            status=plan.status.value,
            version=new_version,
            worker_id=plan.worker_id,
            intents=new_intents,
        )

    async def _plan(
        self,
        booking: BookingRecord,
        action: BookingAction,
        role: ActorRole,
        edge: Edge,
        payload: dict[str, Any],
        actor_id: UUID | None,
    ) -> _Plan:
        """Validate the payload/actor and work out the next state and intents."""
        if action in (BookingAction.ASSIGN, BookingAction.REASSIGN):
            raw = payload.get("worker_id", payload.get("workerId"))
            if raw is None:
                raise ValidationError(f"'worker_id' is required to {action.value} a booking")
            worker_id = _parse_uuid(raw, "worker_id")
            if action is BookingAction.REASSIGN and worker_id == booking.worker_id:
                raise ValidationError("Booking is already assigned to this worker")

            worker = await self._workers.validate_assignment(booking, worker_id)
            drafts = [
                _notify(IntentTarget.WORKER, worker_id, "assigned", booking, worker_name=worker.full_name)
            ]
            if action is BookingAction.REASSIGN:
                drafts.append(_notify(IntentTarget.WORKER, booking.worker_id, "reassigned_away", booking))
            return _Plan(edge.next_status, worker_id, drafts)

        if action in (BookingAction.ACCEPT, BookingAction.REJECT, BookingAction.START):
            self._require_assigned_worker(booking, actor_id, action)

        if action is BookingAction.ACCEPT:
            return _Plan(
                edge.next_status,
                booking.worker_id,
                [_notify(IntentTarget.CUSTOMER, booking.customer_id, "accepted", booking)],
            )

        if action is BookingAction.START:
            return _Plan(
                edge.next_status,
                booking.worker_id,
                [_notify(IntentTarget.CUSTOMER, booking.customer_id, "started", booking)],
            )

        if action is BookingAction.REJECT:
            reason = str(payload.get("reason") or "").strip()
            if not reason:
                raise ValidationError("A reason is required to reject a booking")
            return _Plan(
                edge.next_status,
                None,
                [_notify(IntentTarget.CUSTOMER, booking.customer_id, "rejected", booking, reason=reason)],
                cancelled_by=ActorRole.WORKER.value,
                cancellation_reason=reason,
            )

        if action is BookingAction.COMPLETE:
            if role is ActorRole.WORKER:
                self._require_assigned_worker(booking, actor_id, action)
            drafts = [
                _IntentDraft(
                    IntentKind.CREDIT_WALLET,
                    IntentTarget.WORKER,
                    booking.worker_id,
                    {"amount": booking.price, "currency": booking.currency},
                )
            ]
            if self._reward_coins > 0:
                drafts.append(
                    _IntentDraft(
                        IntentKind.CREDIT_COINS,
                        IntentTarget.CUSTOMER,
                        booking.customer_id,
                        {"amount": self._reward_coins},
                    )
                )
            drafts.append(_notify(IntentTarget.CUSTOMER, booking.customer_id, "completed", booking))
            return _Plan(edge.next_status, booking.worker_id, drafts)

        if action is BookingAction.CANCEL:
            if role is ActorRole.CUSTOMER and actor_id != booking.customer_id:
                raise ForbiddenError("Only the customer who made the booking can cancel it")
            reason = str(payload.get("reason") or "").strip() or None
            if role is ActorRole.CUSTOMER:
                drafts = [_notify(IntentTarget.ADMIN, None, "cancelled", booking, reason=reason)]
            else:
                drafts = [_notify(IntentTarget.CUSTOMER, booking.customer_id, "cancelled", booking, reason=reason)]
            if booking.worker_id is not None:
                drafts.append(_notify(IntentTarget.WORKER, booking.worker_id, "cancelled", booking, reason=reason))
            return _Plan(
                edge.next_status,
                None,
                drafts,
                cancelled_by=role.value,
                cancellation_reason=reason,
            )

        raise ValidationError(f"Unsupported action '{action.value}'")

    @staticmethod
    def _require_assigned_worker(booking: BookingRecord, actor_id: UUID | None, action: BookingAction) -> None:
        if actor_id is None or actor_id != booking.worker_id:
            raise ForbiddenError(f"Only the assigned worker can {action.value} this booking")
