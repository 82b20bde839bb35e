"""
Core ride lifecycle operations.

Every transition is written as one multi-path intent so the ride and the
rider/driver pointers that mirror it change together. Transitions that race
with other actors (cancel, confirm, start, expire) are guarded by
``compare_and_set`` on the ride's status.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.utils import timezone

from realtime.store import EntityStore, UpdateIntent

from .exceptions import (
    ActiveRideExistsError,
    DriverNotAvailableError,
    NotPermittedError,
    PreconditionError,
    RideNotAvailableError,
    RideNotFoundError,
)
from .profiles import (
    DISMISSALS,
    RIDE_REQUESTS,
    RIDES,
    dismissal_path,
    driver_path,
    heal_driver_pointer,
    heal_rider_pointer,
    read_driver,
    read_ride,
    read_rider,
    request_path,
    ride_path,
    rider_path,
    waitlist_path,
)
from .records import Ride, RideDetails, to_iso
from .states import RideStatus, ensure_transition

logger = logging.getLogger(__name__)

# Attempts at a guarded write before giving up on a contended ride
MAX_CAS_ATTEMPTS = 5

EXPIRED_REASON = "expired"
SUPERSEDED_REASON = "superseded"


@dataclass
class RideResult:
    """Result object for ride operations."""
    success: bool
    ride: Optional[Ride] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


def _now(now: Optional[datetime]) -> datetime:
    return now or timezone.now()


def price_details(details: RideDetails, now: datetime) -> RideDetails:
    """Set the fare from the fare calculator, replacing anything the client sent."""
    from services.pricing import calculate_fare
    details.fare = calculate_fare(
        details.pickup,
        details.destination,
        details.ride_kind,
        when=details.scheduled_time if details.is_scheduled else now,
    ).total_fare
    return details


# ===================== Rider Operations =====================

def check_active_ride(store: EntityStore, rider_id: str) -> Optional[Ride]:
    """Return the rider's non-terminal ride, repairing a stale pointer on the way."""
    rider = heal_rider_pointer(store, read_rider(store, rider_id))
    if not rider.active_ride_id:
        return None
    return read_ride(store, rider.active_ride_id)


def create_ride_request(
    store: EntityStore,
    rider_id: str,
    details: RideDetails,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Create a Pending ride and broadcast it to drivers.

    Args:
        store: Entity store to write to
        rider_id: Id of the booking rider
        details: What the rider asked for
        now: Booking time (defaults to the current time)

    Returns:
        RideResult with the created ride

    Raises:
        PreconditionError: If the details are incomplete
        ActiveRideExistsError: If the rider already has a ride or a waitlist spot
    """
    now = _now(now)
    details.validate(now)

    rider = heal_rider_pointer(store, read_rider(store, rider_id))
    if rider.active_ride_id or rider.is_on_waitlist:
        raise ActiveRideExistsError("You already have an active ride or a waitlist spot")

    price_details(details, now)

    ride = Ride(
        id=store.push(RIDES),
        rider_id=rider_id,
        details=details,
        status=RideStatus.PENDING,
        created_at=now,
    )
    record = ride.to_record()

    intent = (
        UpdateIntent()
        .set(ride_path(ride.id), record)
        .set(request_path(ride.id), record)
        .set(rider_path(rider_id, "active_ride_id"), ride.id)
    )
    guard = {
        rider_path(rider_id, "active_ride_id"): None,
        waitlist_path(rider_id): None,
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        raise ActiveRideExistsError("You already have an active ride or a waitlist spot")

    logger.info("Ride %s booked by rider %s (%s, %s)", ride.id, rider_id,
                details.ride_kind.value, details.booking_kind.value)
    return RideResult(
        success=True,
        ride=ride,
        message="Ride requested. Waiting for a driver to accept.",
    )


def cancel_ride_by_rider(
    store: EntityStore,
    rider_id: str,
    reason: str,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Cancel the rider's current ride in any non-terminal state.

    Args:
        store: Entity store to write to
        rider_id: Id of the rider cancelling
        reason: Why the ride is being cancelled (required)
        now: Cancellation time

    Returns:
        RideResult with the cancelled ride
    """
    if not (reason or "").strip():
        raise PreconditionError("A cancellation reason is required.")
    now = _now(now)

    for _ in range(MAX_CAS_ATTEMPTS):
        rider = heal_rider_pointer(store, read_rider(store, rider_id))
        if not rider.active_ride_id:
            raise RideNotFoundError("You have no active ride to cancel")

        ride = read_ride(store, rider.active_ride_id)
        if ride.rider_id != rider_id:
            raise NotPermittedError("This ride belongs to another rider")
        ensure_transition(ride.status, RideStatus.CANCELLED)

        guard = {
            ride_path(ride.id, "status"): ride.status.value,
            ride_path(ride.id, "driver_id"): ride.driver_id,
        }
        intent = _cancellation_intent(ride, reason, now)
        if store.compare_and_set(guard, intent.as_dict()):
            prune_dismissals(store, ride.id)
            was_assigned = ride.driver_id is not None
            ride.status = RideStatus.CANCELLED
            ride.cancellation_reason = reason
            ride.cancelled_at = now
            logger.info("Ride %s cancelled by rider %s: %s", ride.id, rider_id, reason)
            return RideResult(
                success=True,
                ride=ride,
                message="Ride cancelled successfully",
                extra={"was_assigned": was_assigned},
            )
        logger.debug("Ride %s changed during cancellation, retrying", ride.id)

    raise RideNotAvailableError("The ride changed while cancelling. Please try again.")


def _cancellation_intent(ride: Ride, reason: str, now: datetime) -> UpdateIntent:
    """Everything a cancellation touches: the ride, its broadcast and both pointers."""
    intent = (
        UpdateIntent()
        .set(ride_path(ride.id, "status"), RideStatus.CANCELLED.value)
        .set(ride_path(ride.id, "cancellation_reason"), reason)
        .set(ride_path(ride.id, "cancelled_at"), to_iso(now))
        .delete(request_path(ride.id))
        .delete(rider_path(ride.rider_id, "active_ride_id"))
    )
    if ride.driver_id:
        if ride.status == RideStatus.CONFIRMED:
            intent.delete(driver_path(ride.driver_id, "confirmed_rides", ride.id))
        else:
            intent.delete(driver_path(ride.driver_id, "current_ride_id"))
    return intent


def supersede_pending_ride(
    store: EntityStore,
    rider_id: str,
    ride_id: str,
    now: Optional[datetime] = None,
) -> bool:
    """
    Cancel an unassigned Pending ride so a later booking can take its place.

    Used when queued offline bookings are replayed back to back: each one
    becomes a Ride, and the previous one is withdrawn as superseded so the
    rider never holds two open rides.

    Returns:
        True if the ride was withdrawn, False if a driver already took it
    """
    now = _now(now)
    ride = read_ride(store, ride_id)
    if ride.rider_id != rider_id:
        raise NotPermittedError("This ride belongs to another rider")
    if ride.status != RideStatus.PENDING or ride.driver_id:
        return False

    guard = {
        ride_path(ride.id, "status"): RideStatus.PENDING.value,
        ride_path(ride.id, "driver_id"): None,
    }
    if not store.compare_and_set(guard, _cancellation_intent(ride, SUPERSEDED_REASON, now).as_dict()):
        return False

    prune_dismissals(store, ride.id)
    logger.info("Ride %s of rider %s superseded by a later queued booking", ride.id, rider_id)
    return True


# ===================== Driver Operations =====================

def confirm_scheduled_ride(
    store: EntityStore,
    driver_id: str,
    ride_id: str,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Bind a Pending scheduled ride to a driver ahead of its pickup time.

    The ride leaves the open requests and is indexed under the driver's
    ``confirmed_rides``; ``current_ride_id`` is only set by ``start_ride``.
    """
    now = _now(now)
    driver = read_driver(store, driver_id)
    if not driver.is_online:
        raise DriverNotAvailableError("Go online before confirming rides")

    ride = read_ride(store, ride_id)
    if not ride.details.is_scheduled:
        raise PreconditionError("Only scheduled rides can be confirmed ahead of time")
    if ride.status != RideStatus.PENDING or ride.driver_id:
        raise RideNotAvailableError("This ride was already handled or cancelled")

    intent = (
        UpdateIntent()
        .set(ride_path(ride.id, "status"), RideStatus.CONFIRMED.value)
        .set(ride_path(ride.id, "driver_id"), driver_id)
        .set(ride_path(ride.id, "accepted_at"), to_iso(now))
        .delete(request_path(ride.id))
        .set(driver_path(driver_id, "confirmed_rides", ride.id), True)
    )
    guard = {
        ride_path(ride.id, "status"): RideStatus.PENDING.value,
        ride_path(ride.id, "driver_id"): None,
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        raise RideNotAvailableError("This ride was already handled or cancelled")

    prune_dismissals(store, ride.id)
    ride.status = RideStatus.CONFIRMED
    ride.driver_id = driver_id
    ride.accepted_at = now
    logger.info("Scheduled ride %s confirmed by driver %s", ride.id, driver_id)
    return RideResult(success=True, ride=ride, message="Scheduled ride confirmed.")


def start_ride(
    store: EntityStore,
    driver_id: str,
    ride_id: str,
    now: Optional[datetime] = None,
) -> RideResult:
    """Move a Confirmed ride to Active once its driver is free."""
    ride = read_ride(store, ride_id)
    if ride.driver_id != driver_id:
        raise NotPermittedError("This ride is assigned to another driver")
    ensure_transition(ride.status, RideStatus.ACTIVE)
    if ride.status != RideStatus.CONFIRMED:
        raise RideNotAvailableError("Only confirmed rides can be started")

    driver = heal_driver_pointer(store, read_driver(store, driver_id))
    if not driver.is_idle:
        raise DriverNotAvailableError("Finish your current ride first")

    intent = (
        UpdateIntent()
        .set(ride_path(ride.id, "status"), RideStatus.ACTIVE.value)
        .set(driver_path(driver_id, "current_ride_id"), ride.id)
        .delete(driver_path(driver_id, "confirmed_rides", ride.id))
    )
    guard = {
        ride_path(ride.id, "status"): RideStatus.CONFIRMED.value,
        driver_path(driver_id, "current_ride_id"): None,
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        raise RideNotAvailableError("This ride was cancelled or changed")

    ride.status = RideStatus.ACTIVE
    logger.info("Ride %s started by driver %s", ride.id, driver_id)
    return RideResult(success=True, ride=ride, message="Ride started.")


def get_current_driver_ride(store: EntityStore, driver_id: str) -> Optional[Ride]:
    """Get driver's current active ride."""
    driver = heal_driver_pointer(store, read_driver(store, driver_id))
    if not driver.current_ride_id:
        return None
    return read_ride(store, driver.current_ride_id)


def get_current_rider_ride(store: EntityStore, rider_id: str) -> Optional[Ride]:
    """Get rider's current non-terminal ride."""
    return check_active_ride(store, rider_id)


# ===================== Maintenance =====================

def expire_stale_scheduled_rides(store: EntityStore, now: Optional[datetime] = None) -> List[str]:
    """
    Cancel Pending scheduled rides whose pickup time has passed.

    Such rides have already fallen out of every driver's visible window, so
    without this they would hold the rider's ``active_ride_id`` forever.

    Returns:
        Ids of the rides that were expired
    """
    now = _now(now)
    expired = []
    open_requests = store.read(RIDE_REQUESTS) or {}

    for ride_id, record in open_requests.items():
        ride = Ride.from_record(record)
        if ride.status != RideStatus.PENDING or not ride.details.is_scheduled:
            continue
        scheduled_time = ride.details.scheduled_time
        if scheduled_time is None or scheduled_time >= now:
            continue

        guard = {
            ride_path(ride_id, "status"): RideStatus.PENDING.value,
            ride_path(ride_id, "driver_id"): None,
        }
        if store.compare_and_set(guard, _cancellation_intent(ride, EXPIRED_REASON, now).as_dict()):
            prune_dismissals(store, ride_id)
            expired.append(ride_id)
            logger.info("Scheduled ride %s expired unaccepted (was due %s)", ride_id, scheduled_time)

    return expired


def prune_dismissals(store: EntityStore, ride_id: str) -> int:
    """Drop per-driver dismissals of a ride that is no longer open."""
    dismissals = store.read(DISMISSALS) or {}
    intent = UpdateIntent()
    for driver_id, rides in dismissals.items():
        if isinstance(rides, dict) and ride_id in rides:
            intent.delete(dismissal_path(driver_id, ride_id))
    if len(intent):
        intent.apply(store)
    return len(intent)
