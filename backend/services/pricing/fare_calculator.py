"""
Fare and surge calculation.

Pure functions: route + ride kind + time of day -> fare breakdown. Route
figures come from a static table of popular campus routes.
"""

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from django.utils import timezone

# (distance km, time minutes) keyed "pickup_destination"
ROUTE_TABLE: Dict[str, Tuple[float, float]] = {
    "MBU Main Gate_Tirupati Railway Station": (8, 30),
    "Hostel Block C_Tirupati Railway Station": (9, 23),
    "MBU Main Gate_Central Mall": (12, 30),
    "Library_City Bus Stand": (10, 25),
    "Admin Block_PVR Cinemas": (13, 33),
}
DEFAULT_ROUTE = (9, 22)

BASE_FARE_SOLO = 40
BASE_FARE_SHARED = 25
RATE_PER_KM = 10
RATE_PER_MINUTE = 1

PEAK_SURGE = 1.3
NIGHT_SURGE = 1.8
MAX_SURGE_MULTIPLIER = 1.5

FARE_ROUNDING = 5


@dataclass(frozen=True)
class FareBreakdown:
    base_fare: float
    distance_charge: float
    time_charge: float
    surge_multiplier: float
    surge_charge: float
    total_fare: int

    @property
    def subtotal(self) -> float:
        return self.base_fare + self.distance_charge + self.time_charge

    @property
    def is_capped(self) -> bool:
        return self.surge_multiplier >= MAX_SURGE_MULTIPLIER

    def to_dict(self) -> dict:
        return asdict(self)


def lookup_route(pickup: str, destination: str) -> Tuple[float, float]:
    """Route figures for the pair in either direction, else the default."""
    return (
        ROUTE_TABLE.get(f"{pickup}_{destination}")
        or ROUTE_TABLE.get(f"{destination}_{pickup}")
        or DEFAULT_ROUTE
    )


def get_surge_multiplier(when: datetime) -> float:
    """
    Time-of-day multiplier, capped.

    08-10 and 17-19 are peak (1.3x); 22-05 is night (1.8x before the cap).
    """
    hour = _local(when).hour
    surge = 1.0
    if 8 <= hour < 10 or 17 <= hour < 19:
        surge = PEAK_SURGE
    if hour >= 22 or hour < 5:
        surge = NIGHT_SURGE
    return min(surge, MAX_SURGE_MULTIPLIER)


def round_fare(amount: float) -> int:
    """Nearest multiple of 5, halves rounding up."""
    return int(math.floor(amount / FARE_ROUNDING + 0.5) * FARE_ROUNDING)


def calculate_fare(
    pickup: str,
    destination: str,
    ride_kind,
    when: Optional[datetime] = None,
) -> FareBreakdown:
    """
    Estimate the fare for a ride.

    Args:
        pickup: Pickup place name
        destination: Destination place name
        ride_kind: "Solo" or "Shared" (or the RideKind enum)
        when: Pickup time; defaults to now

    Returns:
        FareBreakdown whose total is rounded to the nearest 5
    """
    kind = getattr(ride_kind, "value", ride_kind)
    base_fare = BASE_FARE_SHARED if kind == "Shared" else BASE_FARE_SOLO

    distance, minutes = lookup_route(pickup, destination)
    distance_charge = distance * RATE_PER_KM
    time_charge = minutes * RATE_PER_MINUTE

    surge_multiplier = get_surge_multiplier(when or timezone.now())
    subtotal = base_fare + distance_charge + time_charge
    surge_charge = subtotal * (surge_multiplier - 1.0) if surge_multiplier > 1.0 else 0.0

    return FareBreakdown(
        base_fare=base_fare,
        distance_charge=distance_charge,
        time_charge=time_charge,
        surge_multiplier=surge_multiplier,
        surge_charge=round(surge_charge, 2),
        total_fare=round_fare(subtotal + surge_charge),
    )


def _local(when: datetime) -> datetime:
    if timezone.is_aware(when):
        return timezone.localtime(when)
    return when
