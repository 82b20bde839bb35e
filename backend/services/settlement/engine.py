"""
Ride settlement.

Completing a ride settles everything in one guarded write: the ride flips
Active -> Completed, the fare is debited, counters and earnings move by
atomic increments, and achievements unlock. The guard on the ride's status
makes a second completion of the same ride a no-op.
"""

import logging
from datetime import datetime
from typing import Optional

from django.utils import timezone

from realtime.store import EntityStore, UpdateIntent
from services.ride_management.exceptions import (
    NotPermittedError,
    ProfileNotFoundError,
    RideNotAvailableError,
    RideNotFoundError,
)
from services.ride_management.profiles import (
    TRANSACTIONS,
    driver_path,
    read_ride,
    read_rider,
    ride_path,
    rider_path,
    transaction_path,
)
from services.ride_management.records import (
    DriverProfile,
    Ride,
    Transaction,
    TransactionDirection,
    to_iso,
)
from services.ride_management.ride_lifecycle import RideResult
from services.ride_management.states import RideStatus, ensure_transition

from .achievements import evaluate_achievements

logger = logging.getLogger(__name__)

BASE_CO2_SAVINGS = 0.2
SHARED_CO2_SAVINGS = 1.0
EV_CO2_SAVINGS = 1.5

NIGHT_BONUS = 20
SHARED_BONUS = 15
EV_BONUS = 10
ONBOARDING_BONUS = 250
ONBOARDING_RIDE_THRESHOLD = 10

# Night bonus hours: [21:00, 06:00)
NIGHT_BONUS_START_HOUR = 21
NIGHT_BONUS_END_HOUR = 6


def compute_co2_savings(is_shared: bool, is_ev: bool) -> float:
    savings = BASE_CO2_SAVINGS
    if is_shared:
        savings += SHARED_CO2_SAVINGS
    if is_ev:
        savings += EV_CO2_SAVINGS
    return round(savings, 2)


def compute_driver_bonus(is_shared: bool, is_ev: bool, completed_at: datetime) -> float:
    """Per-ride bonus, without the one-time onboarding bonus."""
    bonus = 0
    if completed_at.hour >= NIGHT_BONUS_START_HOUR or completed_at.hour < NIGHT_BONUS_END_HOUR:
        bonus += NIGHT_BONUS
    if is_shared:
        bonus += SHARED_BONUS
    if is_ev:
        bonus += EV_BONUS
    return bonus


def earns_onboarding_bonus(driver_total_rides: int, already_awarded: bool) -> bool:
    return not already_awarded and driver_total_rides + 1 >= ONBOARDING_RIDE_THRESHOLD


def settle_ride(
    store: EntityStore,
    driver_id: str,
    ride_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Complete a ride and apply its financial and incentive side effects.

    Args:
        store: Entity store to write to
        driver_id: Id of the driver completing the ride
        ride_id: Ride to complete; defaults to the driver's current ride
        now: Completion time

    Returns:
        RideResult with the completed ride. ``extra["already_settled"]`` is
        True when the ride had been completed before and nothing was written.

    Raises:
        RideNotFoundError: If the driver has no ride to complete
        NotPermittedError: If the ride belongs to another driver
        InvalidTransitionError: If the ride is not Active
    """
    now = now or timezone.now()
    local_now = timezone.localtime(now) if timezone.is_aware(now) else now

    # The bonus decision and the guard below use this one read
    driver_record = store.read(driver_path(driver_id))
    if driver_record is None:
        raise ProfileNotFoundError("Driver profile not found")
    driver = DriverProfile.from_record(driver_id, driver_record)
    ride_id = ride_id or driver.current_ride_id
    if not ride_id:
        raise RideNotFoundError("You have no ride to complete")

    ride = read_ride(store, ride_id)
    if ride.driver_id != driver_id:
        raise NotPermittedError("This ride is assigned to another driver")
    if ride.status == RideStatus.COMPLETED:
        return _already_settled(ride)
    ensure_transition(ride.status, RideStatus.COMPLETED)

    rider = read_rider(store, ride.rider_id)
    fare = ride.fare

    co2_savings = compute_co2_savings(ride.is_shared, driver.is_ev)
    bonus = compute_driver_bonus(ride.is_shared, driver.is_ev, local_now)
    onboarding = earns_onboarding_bonus(driver.total_rides, driver.onboarding_bonus_awarded)
    if onboarding:
        bonus += ONBOARDING_BONUS

    transaction = Transaction(
        id=store.push(TRANSACTIONS),
        direction=TransactionDirection.DEBIT,
        amount=fare,
        timestamp=now,
        description=f"Ride to {ride.details.destination}",
    )

    unlocked = evaluate_achievements(
        rider.achievements,
        total_rides=rider.total_rides + 1,
        shared_rides=rider.shared_rides + (1 if ride.is_shared else 0),
        completed_at=local_now,
    )

    intent = (
        UpdateIntent()
        # Ride
        .set(ride_path(ride.id, "status"), RideStatus.COMPLETED.value)
        .set(ride_path(ride.id, "completed_at"), to_iso(now))
        .set(ride_path(ride.id, "co2_savings"), co2_savings)
        .set(ride_path(ride.id, "bonus"), bonus)
        # Ledger
        .set(transaction_path(transaction.id), transaction.to_record())
        # Rider
        .delete(rider_path(rider.id, "active_ride_id"))
        .set(rider_path(rider.id, "recent_rides", ride.id), True)
        .set(rider_path(rider.id, "transaction_history", transaction.id), True)
        .increment(rider_path(rider.id, "wallet_balance"), -fare)
        .increment(rider_path(rider.id, "total_rides"), 1)
        .increment(rider_path(rider.id, "total_co2_savings"), co2_savings)
        # Driver
        .delete(driver_path(driver_id, "current_ride_id"))
        .increment(driver_path(driver_id, "total_rides"), 1)
        .increment(driver_path(driver_id, "earnings"), fare + bonus)
        .increment(driver_path(driver_id, "total_co2_savings"), co2_savings)
    )
    if ride.is_shared:
        intent.increment(rider_path(rider.id, "shared_rides"), 1)
    if onboarding:
        intent.set(driver_path(driver_id, "onboarding_bonus_awarded"), True)
    for achievement in unlocked:
        intent.set(rider_path(rider.id, "achievements", achievement.id), True)

    guard = {
        ride_path(ride.id, "status"): RideStatus.ACTIVE.value,
        ride_path(ride.id, "driver_id"): driver_id,
        driver_path(driver_id, "total_rides"): driver_record.get("total_rides"),
        driver_path(driver_id, "onboarding_bonus_awarded"): driver_record.get("onboarding_bonus_awarded"),
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        latest = read_ride(store, ride.id)
        if latest.status == RideStatus.COMPLETED:
            return _already_settled(latest)
        raise RideNotAvailableError("The ride changed before it could be completed. Please try again.")

    ride.status = RideStatus.COMPLETED
    ride.completed_at = now
    ride.co2_savings = co2_savings
    ride.bonus = bonus
    logger.info(
        "Ride %s settled: fare=%s bonus=%s co2=%s achievements=%s",
        ride.id, fare, bonus, co2_savings, [a.id for a in unlocked],
    )
    return RideResult(
        success=True,
        ride=ride,
        message="Ride completed successfully",
        extra={
            "already_settled": False,
            "bonus": bonus,
            "co2_savings": co2_savings,
            "onboarding_bonus_awarded": onboarding,
            "transaction_id": transaction.id,
            "achievements_unlocked": [achievement.id for achievement in unlocked],
        },
    )


def _already_settled(ride: Ride) -> RideResult:
    logger.info("Ride %s was already settled; nothing written", ride.id)
    return RideResult(
        success=True,
        ride=ride,
        message="Ride already completed",
        extra={"already_settled": True},
    )
