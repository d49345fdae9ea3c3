import pytest

from app.core.exceptions import (
    ForbiddenError,
    InvalidTransitionError,
    TerminalStateError,
    ValidationError,
)
from app.domain.booking_state import (
    BOOKING_TRANSITIONS,
    TERMINAL_STATUSES,
    ActorRole,
    BookingAction,
    BookingStatus,
    IntentKind,
    allowed_actions,
    check_worker_invariant,
    resolve_transition,
)

EXPECTED_EDGES = {
    ("pending", "assign"): ("assigned", {"admin"}),
    ("pending", "cancel"): ("cancelled", {"customer", "admin"}),
    ("assigned", "accept"): ("accepted", {"worker"}),
    ("assigned", "reject"): ("rejected", {"worker"}),
    ("assigned", "reassign"): ("assigned", {"admin"}),
    ("accepted", "start"): ("in_progress", {"worker"}),
    ("accepted", "cancel"): ("cancelled", {"admin"}),
    ("in_progress", "complete"): ("completed", {"worker", "admin"}),
    ("in_progress", "cancel"): ("cancelled", {"admin"}),
}


def test_edge_table_matches_lifecycle():
    table = {
        (status.value, action.value): (edge.next_status.value, {role.value for role in edge.allowed_roles})
        for (status, action), edge in BOOKING_TRANSITIONS.items()
    }
    assert table == EXPECTED_EDGES


def test_only_complete_credits_ledgers():
    for (status, action), edge in BOOKING_TRANSITIONS.items():
        if action is BookingAction.COMPLETE:
            assert edge.intent_kinds == (
                IntentKind.CREDIT_WALLET,
                IntentKind.CREDIT_COINS,
                IntentKind.NOTIFY,
            )
        else:
            assert edge.intent_kinds == (IntentKind.NOTIFY,)


def test_no_edges_leave_terminal_states():
    assert not [key for key in BOOKING_TRANSITIONS if key[0] in TERMINAL_STATUSES]
    for status in TERMINAL_STATUSES:
        assert allowed_actions(status) == []


@pytest.mark.parametrize("status", ["completed", "cancelled", "rejected"])
@pytest.mark.parametrize("action", [action.value for action in BookingAction])
@pytest.mark.parametrize("role", [role.value for role in ActorRole])
def test_terminal_states_reject_every_action(status, action, role):
    with pytest.raises(TerminalStateError):
        resolve_transition(status, action, role)


def test_missing_edge_is_invalid_transition():
    with pytest.raises(InvalidTransitionError) as exc:
        resolve_transition("pending", "accept", "worker")
    assert exc.value.status_code == 422
    assert exc.value.error_code == "InvalidTransition"


def test_wrong_role_is_forbidden():
    with pytest.raises(ForbiddenError) as exc:
        resolve_transition("accepted", "cancel", "customer")
    assert exc.value.status_code == 403


def test_unknown_action_or_role_is_validation_error():
    with pytest.raises(ValidationError):
        resolve_transition("pending", "teleport", "admin")
    with pytest.raises(ValidationError):
        resolve_transition("pending", "assign", "janitor")


def test_resolve_returns_edge():
    edge = resolve_transition(BookingStatus.IN_PROGRESS, BookingAction.COMPLETE, ActorRole.ADMIN)
    assert edge.next_status is BookingStatus.COMPLETED


def test_allowed_actions_in_table_order():
    assert allowed_actions("assigned") == [
        BookingAction.ACCEPT,
        BookingAction.REJECT,
        BookingAction.REASSIGN,
    ]


def test_worker_invariant():
    assert check_worker_invariant("pending", None)
    assert not check_worker_invariant("pending", "w-1")
    assert check_worker_invariant("completed", "w-1")
    assert not check_worker_invariant("accepted", None)
    assert check_worker_invariant("cancelled", None)
    assert check_worker_invariant("rejected", None)
