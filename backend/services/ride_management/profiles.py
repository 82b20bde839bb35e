"""Reading rider, driver and ride records out of the entity store."""

import logging
from typing import Optional

from realtime.store import EntityStore, join_path

from .exceptions import ProfileNotFoundError, RideNotFoundError
from .records import DriverProfile, Ride, RiderProfile
from .states import RIDER_ACTIVE_STATUSES, RideStatus

logger = logging.getLogger(__name__)

RIDES = "rides"
RIDE_REQUESTS = "ride-requests"
RIDERS = "riders"
DRIVERS = "drivers"
WAITLIST = "waitlist"
TRANSACTIONS = "transactions"
DISMISSALS = "dismissals"


def ride_path(ride_id: str, *fields) -> str:
    return join_path(RIDES, ride_id, *fields)


def request_path(ride_id: str) -> str:
    return join_path(RIDE_REQUESTS, ride_id)


def rider_path(rider_id: str, *fields) -> str:
    return join_path(RIDERS, rider_id, *fields)


def driver_path(driver_id: str, *fields) -> str:
    return join_path(DRIVERS, driver_id, *fields)


def waitlist_path(rider_id: str, *fields) -> str:
    return join_path(WAITLIST, rider_id, *fields)


def transaction_path(transaction_id: str) -> str:
    return join_path(TRANSACTIONS, transaction_id)


def dismissal_path(driver_id: str, ride_id: Optional[str] = None) -> str:
    return join_path(DISMISSALS, driver_id, ride_id)


def read_ride(store: EntityStore, ride_id: str) -> Ride:
    data = store.read(ride_path(ride_id)) if ride_id else None
    if not data:
        raise RideNotFoundError("Ride not found")
    return Ride.from_record(data)


def read_rider(store: EntityStore, rider_id: str) -> RiderProfile:
    data = store.read(rider_path(rider_id))
    if data is None:
        raise ProfileNotFoundError("Rider profile not found")
    return RiderProfile.from_record(rider_id, data)


def read_driver(store: EntityStore, driver_id: str) -> DriverProfile:
    data = store.read(driver_path(driver_id))
    if data is None:
        raise ProfileNotFoundError("Driver profile not found")
    return DriverProfile.from_record(driver_id, data)


def ensure_rider(store: EntityStore, rider_id: str, name: str = "") -> RiderProfile:
    """Create the rider record with defaults the first time we see this user."""
    profile = RiderProfile(id=rider_id, name=name)
    if store.compare_and_set({rider_path(rider_id): None}, {rider_path(rider_id): profile.to_record()}):
        logger.info("Created rider record %s", rider_id)
    return read_rider(store, rider_id)


def ensure_driver(store: EntityStore, driver_id: str, name: str = "") -> DriverProfile:
    """Create the driver record with defaults the first time we see this user."""
    profile = DriverProfile(id=driver_id, name=name)
    if store.compare_and_set({driver_path(driver_id): None}, {driver_path(driver_id): profile.to_record()}):
        logger.info("Created driver record %s", driver_id)
    return read_driver(store, driver_id)


def heal_rider_pointer(store: EntityStore, rider: RiderProfile) -> RiderProfile:
    """
    Clear an ``active_ride_id`` that points at a missing or terminal ride,
    and an ``is_on_waitlist`` flag that has no waitlist entry behind it.

    A best-effort multi-path write can leave either behind; both are
    re-derivable from the ride and the waitlist, so they are repaired on read.
    """
    if rider.is_on_waitlist and store.read(waitlist_path(rider.id)) is None:
        if store.compare_and_set(
            {waitlist_path(rider.id): None, rider_path(rider.id, "is_on_waitlist"): True},
            {rider_path(rider.id, "is_on_waitlist"): False},
        ):
            logger.warning("Cleared stale is_on_waitlist on rider %s", rider.id)
        rider.is_on_waitlist = False

    if not rider.active_ride_id:
        return rider

    data = store.read(ride_path(rider.active_ride_id))
    if data and Ride.from_record(data).status in RIDER_ACTIVE_STATUSES:
        return rider

    stale = rider.active_ride_id
    if store.compare_and_set(
        {rider_path(rider.id, "active_ride_id"): stale},
        {rider_path(rider.id, "active_ride_id"): None},
    ):
        logger.warning("Cleared dangling active_ride_id %s on rider %s", stale, rider.id)
    rider.active_ride_id = None
    return rider


def heal_driver_pointer(store: EntityStore, driver: DriverProfile) -> DriverProfile:
    """Same repair for a driver's ``current_ride_id``."""
    if not driver.current_ride_id:
        return driver

    data = store.read(ride_path(driver.current_ride_id))
    if data:
        ride = Ride.from_record(data)
        if ride.driver_id == driver.id and ride.status == RideStatus.ACTIVE:
            return driver

    stale = driver.current_ride_id
    if store.compare_and_set(
        {driver_path(driver.id, "current_ride_id"): stale},
        {driver_path(driver.id, "current_ride_id"): None},
    ):
        logger.warning("Cleared dangling current_ride_id %s on driver %s", stale, driver.id)
    driver.current_ride_id = None
    return driver
