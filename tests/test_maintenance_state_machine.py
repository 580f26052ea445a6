# Maintenance lifecycle: allowed edges, terminal states, and the distinct same-state error.
from __future__ import annotations

from datetime import timedelta
from types import SimpleNamespace

import pytest

from rentalcore.clock import utcnow
from rentalcore.errors import AlreadyInState, Conflict, ErrorKind, InvalidTransition, ValidationError
from rentalcore.maintenance_states import ensure_can_open, ensure_mutable, is_terminal, transition

STATUSES = ["PENDING", "IN_PROGRESS", "COMPLETED", "CANCELLED"]
ALLOWED = {
    ("PENDING", "IN_PROGRESS"),
    ("PENDING", "CANCELLED"),
    ("IN_PROGRESS", "COMPLETED"),
    ("IN_PROGRESS", "CANCELLED"),
}


@pytest.mark.parametrize("current,requested", sorted(ALLOWED))
def test_allowed_edges_succeed(current: str, requested: str):
    assert transition(current, requested) == requested


@pytest.mark.parametrize(
    "current,requested",
    [(a, b) for a in STATUSES for b in STATUSES if a != b and (a, b) not in ALLOWED],
)
def test_every_other_edge_is_rejected(current: str, requested: str):
    with pytest.raises(InvalidTransition) as exc:
        transition(current, requested)
    assert exc.value.kind is ErrorKind.INVALID_TRANSITION
    assert exc.value.message == f"Cannot transition from {current} to {requested}"


@pytest.mark.parametrize("status", STATUSES)
def test_same_status_is_a_distinct_error(status: str):
    with pytest.raises(AlreadyInState) as exc:
        transition(status, status)
    assert exc.value.kind is ErrorKind.ALREADY_IN_STATE
    assert exc.value.message == f"Status is already {status}"


def test_pending_cannot_jump_to_completed():
    with pytest.raises(InvalidTransition):
        transition("PENDING", "COMPLETED")


def test_unknown_status_is_a_validation_error():
    with pytest.raises(ValidationError):
        transition("PENDING", "ON_HOLD")


def test_terminal_states():
    assert is_terminal("COMPLETED")
    assert is_terminal("CANCELLED")
    assert not is_terminal("PENDING")
    assert not is_terminal("IN_PROGRESS")
    with pytest.raises(InvalidTransition):
        ensure_mutable("COMPLETED")
    ensure_mutable("IN_PROGRESS")


def test_requests_open_only_on_active_contracts():
    now = utcnow()
    ensure_can_open(SimpleNamespace(end_date=now + timedelta(days=1)), now)
    # Last instant of the lease still counts as active
    ensure_can_open(SimpleNamespace(end_date=now), now)
    with pytest.raises(Conflict):
        ensure_can_open(SimpleNamespace(end_date=now - timedelta(seconds=1)), now)
