"""Fare estimation."""

from .fare_calculator import (
    FareBreakdown,
    calculate_fare,
    get_surge_multiplier,
    lookup_route,
    round_fare,
)

__all__ = [
    "FareBreakdown",
    "calculate_fare",
    "get_surge_multiplier",
    "lookup_route",
    "round_fare",
]
