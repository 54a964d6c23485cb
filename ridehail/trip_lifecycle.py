"""
Trip lifecycle state machine

Immediate rides:
    requested -> accepted -> driver_arrived -> in_progress -> completed
    cancelled from requested, accepted, driver_arrived

Scheduled bookings:
    pending -> assigned -> confirmed -> driver_arrived -> in_progress -> completed
    cancelled from any non-terminal state

Pure functions only - applying a transition to the store lives in trip_service.
"""

from typing import Dict, FrozenSet

from .models import TripKind, TripStatus
from .errors import IllegalTransition

S = TripStatus

TERMINAL_STATUSES: FrozenSet[TripStatus] = frozenset({S.COMPLETED, S.CANCELLED})

TRANSITIONS: Dict[TripKind, Dict[TripStatus, FrozenSet[TripStatus]]] = {
    TripKind.IMMEDIATE: {
        S.REQUESTED: frozenset({S.ACCEPTED, S.CANCELLED}),
        S.ACCEPTED: frozenset({S.DRIVER_ARRIVED, S.CANCELLED}),
        S.DRIVER_ARRIVED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
        S.IN_PROGRESS: frozenset({S.COMPLETED}),
    },
    TripKind.SCHEDULED: {
        S.PENDING: frozenset({S.ASSIGNED, S.CANCELLED}),
        S.ASSIGNED: frozenset({S.CONFIRMED, S.CANCELLED}),
        S.CONFIRMED: frozenset({S.DRIVER_ARRIVED, S.CANCELLED}),
        S.DRIVER_ARRIVED: frozenset({S.IN_PROGRESS, S.CANCELLED}),
        S.IN_PROGRESS: frozenset({S.COMPLETED, S.CANCELLED}),
    },
}

# Status a trip waits in for a driver, and the status assignment moves it to
AWAITING_DRIVER = {
    TripKind.IMMEDIATE: S.REQUESTED,
    TripKind.SCHEDULED: S.PENDING,
}
ASSIGNED_STATUS = {
    TripKind.IMMEDIATE: S.ACCEPTED,
    TripKind.SCHEDULED: S.ASSIGNED,
}

# Statuses in which a driver is bound to the trip
BOUND_STATUSES: Dict[TripKind, FrozenSet[TripStatus]] = {
    TripKind.IMMEDIATE: frozenset({S.ACCEPTED, S.DRIVER_ARRIVED, S.IN_PROGRESS}),
    TripKind.SCHEDULED: frozenset({S.ASSIGNED, S.CONFIRMED, S.DRIVER_ARRIVED, S.IN_PROGRESS}),
}


def initial_status(kind: TripKind) -> TripStatus:
    return AWAITING_DRIVER[kind]


def is_terminal(status: TripStatus) -> bool:
    return status in TERMINAL_STATUSES


def bound_statuses(kind: TripKind) -> FrozenSet[TripStatus]:
    return BOUND_STATUSES[kind]


def all_bound_statuses() -> FrozenSet[TripStatus]:
    return BOUND_STATUSES[TripKind.IMMEDIATE] | BOUND_STATUSES[TripKind.SCHEDULED]


def allowed_targets(kind: TripKind, current: TripStatus) -> FrozenSet[TripStatus]:
    return TRANSITIONS[kind].get(current, frozenset())


def can_transition(kind: TripKind, current: TripStatus, target: TripStatus) -> bool:
    return target in allowed_targets(kind, current)


def check_transition(kind: TripKind, current: TripStatus, target: TripStatus) -> None:
    """Raise IllegalTransition unless `current -> target` is allowed for `kind`"""
    if is_terminal(current):
        raise IllegalTransition(f"Trip is already {current.value}; cannot move to {target.value}")
    if not can_transition(kind, current, target):
        raise IllegalTransition(
            f"Cannot move a {kind.value} trip from {current.value} to {target.value}"
        )


def charges_cancellation_fee(kind: TripKind, current: TripStatus) -> bool:
    """Cancelling once a driver is bound costs the customer a fee"""
    return current in BOUND_STATUSES[kind]
