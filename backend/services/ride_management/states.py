"""Ride status values and the transitions allowed between them."""

from enum import Enum
from typing import Dict, FrozenSet

from .exceptions import InvalidTransitionError


class RideStatus(str, Enum):
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


TRANSITIONS: Dict[RideStatus, FrozenSet[RideStatus]] = {
    RideStatus.PENDING: frozenset({RideStatus.CONFIRMED, RideStatus.ACTIVE, RideStatus.CANCELLED}),
    RideStatus.CONFIRMED: frozenset({RideStatus.ACTIVE, RideStatus.CANCELLED}),
    RideStatus.ACTIVE: frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED}),
    RideStatus.COMPLETED: frozenset(),
    RideStatus.CANCELLED: frozenset(),
}

# Statuses in which the rider's active_ride_id points at the ride
RIDER_ACTIVE_STATUSES = frozenset({RideStatus.PENDING, RideStatus.CONFIRMED, RideStatus.ACTIVE})

# Statuses in which the ride carries a driver id
DRIVER_ASSIGNED_STATUSES = frozenset({RideStatus.CONFIRMED, RideStatus.ACTIVE, RideStatus.COMPLETED})

TERMINAL_STATUSES = frozenset({RideStatus.COMPLETED, RideStatus.CANCELLED})


def can_transition(current: RideStatus, target: RideStatus) -> bool:
    return RideStatus(target) in TRANSITIONS[RideStatus(current)]


def ensure_transition(current: RideStatus, target: RideStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move a ride from {RideStatus(current).value} to {RideStatus(target).value}"
        )


def is_terminal(status: RideStatus) -> bool:
    return RideStatus(status) in TERMINAL_STATUSES
