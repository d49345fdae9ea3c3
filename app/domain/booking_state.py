"""Booking state machine.

States:
- pending: Created by the customer, no worker yet
- assigned: Admin picked a worker, awaiting the worker's answer
- accepted: Worker accepted the job
- in_progress: Worker started the job on site
- completed / cancelled / rejected: Terminal
"""

from enum import Enum
from typing import NamedTuple

from app.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    TerminalStateError,
    ValidationError,
)


class BookingStatus(str, Enum):
    """Booking lifecycle states."""

    PENDING = "pending"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class BookingAction(str, Enum):
    """Actions that move a booking between states."""

    ASSIGN = "assign"
    REASSIGN = "reassign"
    ACCEPT = "accept"
    REJECT = "reject"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"


class ActorRole(str, Enum):
    """Who is requesting the transition."""

    CUSTOMER = "customer"
    WORKER = "worker"
    ADMIN = "admin"


class IntentKind(str, Enum):
    """Side effects recorded in a booking's intent log."""

    NOTIFY = "notify"
    CREDIT_WALLET = "creditWallet"
    CREDIT_COINS = "creditCoins"


class IntentTarget(str, Enum):
    """Party a side effect is addressed to."""

    CUSTOMER = "customer"
    WORKER = "worker"
    ADMIN = "admin"


TERMINAL_STATUSES = frozenset(
    {BookingStatus.COMPLETED, BookingStatus.CANCELLED, BookingStatus.REJECTED}
)

# worker_id must be set exactly in these states
WORKER_BOUND_STATUSES = frozenset(
    {
        BookingStatus.ASSIGNED,
        BookingStatus.ACCEPTED,
        BookingStatus.IN_PROGRESS,
        BookingStatus.COMPLETED,
    }
)


class Edge(NamedTuple):
    """One allowed transition."""

    next_status: BookingStatus
    allowed_roles: frozenset[ActorRole]
    intent_kinds: tuple[IntentKind, ...]


def _edge(next_status: BookingStatus, roles: set[ActorRole], *kinds: IntentKind) -> Edge:
    return Edge(next_status, frozenset(roles), kinds)


_S = BookingStatus
_A = BookingAction
_R = ActorRole

BOOKING_TRANSITIONS: dict[tuple[BookingStatus, BookingAction], Edge] = {
    (_S.PENDING, _A.ASSIGN): _edge(_S.ASSIGNED, {_R.ADMIN}, IntentKind.NOTIFY),
    (_S.PENDING, _A.CANCEL): _edge(_S.CANCELLED, {_R.CUSTOMER, _R.ADMIN}, IntentKind.NOTIFY),
    (_S.ASSIGNED, _A.ACCEPT): _edge(_S.ACCEPTED, {_R.WORKER}, IntentKind.NOTIFY),
    (_S.ASSIGNED, _A.REJECT): _edge(_S.REJECTED, {_R.WORKER}, IntentKind.NOTIFY),
    (_S.ASSIGNED, _A.REASSIGN): _edge(_S.ASSIGNED, {_R.ADMIN}, IntentKind.NOTIFY),
    (_S.ACCEPTED, _A.START): _edge(_S.IN_PROGRESS, {_R.WORKER}, IntentKind.NOTIFY),
    (_S.ACCEPTED, _A.CANCEL): _edge(_S.CANCELLED, {_R.ADMIN}, IntentKind.NOTIFY),
    (_S.IN_PROGRESS, _A.COMPLETE): _edge(
        _S.COMPLETED,
        {_R.WORKER, _R.ADMIN},
        IntentKind.CREDIT_WALLET,
        IntentKind.CREDIT_COINS,
        IntentKind.NOTIFY,
    ),
    (_S.IN_PROGRESS, _A.CANCEL): _edge(_S.CANCELLED, {_R.ADMIN}, IntentKind.NOTIFY),
}


def resolve_transition(
    current: BookingStatus | str,
    action: BookingAction | str,
    role: ActorRole | str,
) -> Edge:
    """Look up the edge for ``(current, action)`` and check the actor's role.

    Raises:
        TerminalStateError: If the booking is already finalized
        InvalidTransitionError: If no edge exists for the action
        ForbiddenError: If the role may not take this edge
    """
    current = BookingStatus(current)
    if current in TERMINAL_STATUSES:
        raise TerminalStateError(current.value)

    try:
        action = BookingAction(action)
        role = ActorRole(role)
    except ValueError as e:
        raise ValidationError(str(e)) from e

    edge = BOOKING_TRANSITIONS.get((current, action))
    if edge is None:
        raise InvalidTransitionError(current.value, action.value)
    if role not in edge.allowed_roles:
        raise ForbiddenError(
            f"Role '{role.value}' may not {action.value} a booking in status '{current.value}'"
        )
    return edge


def allowed_actions(current: BookingStatus | str) -> list[BookingAction]:
    """Actions available from a status, in table order."""
    current = BookingStatus(current)
    return [action for (status, action) in BOOKING_TRANSITIONS if status == current]


def check_worker_invariant(status: BookingStatus | str, worker_id: object | None) -> bool:
    """True when ``worker_id`` is set exactly for worker-bound statuses."""
    return (BookingStatus(status) in WORKER_BOUND_STATUSES) == (worker_id is not None)
