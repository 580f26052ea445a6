# Maintenance request lifecycle.
#
#   PENDING -> IN_PROGRESS -> COMPLETED
#      |            |
#      +------------+------> CANCELLED
#
# COMPLETED and CANCELLED are terminal.
from __future__ import annotations

from datetime import datetime
from typing import Dict, FrozenSet, Optional

from . import models
from .clock import is_active
from .errors import AlreadyInState, Conflict, InvalidTransition, ValidationError

S = models.MaintenanceStatus

TRANSITIONS: Dict[str, FrozenSet[str]] = {
    S.PENDING.value: frozenset({S.IN_PROGRESS.value, S.CANCELLED.value}),
    S.IN_PROGRESS.value: frozenset({S.COMPLETED.value, S.CANCELLED.value}),
    S.COMPLETED.value: frozenset(),
    S.CANCELLED.value: frozenset(),
}

INITIAL_STATUS = S.PENDING.value


def is_terminal(status: str) -> bool:
    return not TRANSITIONS.get(status)


def transition(current: str, requested: str) -> str:
    """Return `requested` if the edge current -> requested exists, otherwise raise."""
    if requested not in TRANSITIONS:
        raise ValidationError(f"Unknown maintenance status {requested}")
    if current == requested:
        raise AlreadyInState(f"Status is already {requested}")
    if requested not in TRANSITIONS.get(current, frozenset()):
        raise InvalidTransition(f"Cannot transition from {current} to {requested}")
    return requested


def ensure_mutable(current: str) -> None:
    if is_terminal(current):
        raise InvalidTransition(f"Maintenance request is {current} and can no longer be modified")


def ensure_can_open(contract: models.Contract, now: Optional[datetime] = None) -> None:
    # New requests are only accepted against a running lease
    if not is_active(contract.end_date, now):
        raise Conflict("Cannot create maintenance request for expired contract")
