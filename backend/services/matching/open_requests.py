"""
Open ride requests as drivers see them, and the accept/decline responses.

A Pending ride is broadcast under ``ride-requests/<id>``. Each driver's view
is filtered by status, the scheduled-ride window and the driver's own
dismissals, then ordered closest pickup first.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from django.conf import settings
from django.utils import timezone

from common.utils import distance_between
from realtime.store import EntityStore, UpdateIntent
from services.ride_management.exceptions import (
    DriverNotAvailableError,
    RideNotAvailableError,
)
from services.ride_management.profiles import (
    RIDE_REQUESTS,
    dismissal_path,
    driver_path,
    heal_driver_pointer,
    read_driver,
    read_ride,
    request_path,
    ride_path,
)
from services.ride_management.records import DriverProfile, Ride, to_iso
from services.ride_management.ride_lifecycle import RideResult, prune_dismissals
from services.ride_management.states import RideStatus

logger = logging.getLogger(__name__)

DEFAULT_VISIBILITY_WINDOW_MINUTES = 30


def visibility_window() -> timedelta:
    minutes = getattr(settings, "SCHEDULED_VISIBILITY_WINDOW_MINUTES", DEFAULT_VISIBILITY_WINDOW_MINUTES)
    return timedelta(minutes=minutes)


def is_visible(ride: Ride, now: datetime, window: Optional[timedelta] = None) -> bool:
    """
    Whether an open request may be shown to drivers at ``now``.

    ASAP requests are visible while Pending; scheduled ones only from
    ``window`` before their pickup time until that time passes.
    """
    if ride.status != RideStatus.PENDING or ride.driver_id:
        return False
    if not ride.details.is_scheduled:
        return True
    scheduled_time = ride.details.scheduled_time
    if scheduled_time is None:
        return False
    window = window or visibility_window()
    return now <= scheduled_time <= now + window


def _distance_key(driver: DriverProfile, ride: Ride):
    distance = distance_between(driver.location, ride.details.pickup_coords)
    return (
        distance is None,
        distance or 0.0,
        ride.details.is_scheduled,
        ride.created_at.timestamp() if ride.created_at else 0.0,
    )


def visible_requests(store: EntityStore, driver_id: str, now: Optional[datetime] = None) -> List[Ride]:
    """
    Open requests a driver may accept right now, closest pickup first.

    Offline drivers and drivers already holding a ride see nothing.
    """
    now = now or timezone.now()
    driver = heal_driver_pointer(store, read_driver(store, driver_id))
    if not driver.is_online or not driver.is_idle:
        return []

    dismissed = store.read(dismissal_path(driver_id)) or {}
    open_requests = store.read(RIDE_REQUESTS) or {}
    window = visibility_window()

    rides = []
    for ride_id, record in open_requests.items():
        if ride_id in dismissed:
            continue
        ride = Ride.from_record(record)
        if is_visible(ride, now, window):
            rides.append(ride)

    rides.sort(key=lambda ride: _distance_key(driver, ride))
    return rides


def accept_ride_request(
    store: EntityStore,
    driver_id: str,
    ride_id: str,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Accept an open request. First driver to land the guarded write wins.

    Args:
        store: Entity store to write to
        driver_id: Id of the accepting driver
        ride_id: Id of the ride to accept

    Returns:
        RideResult with the now Active ride

    Raises:
        DriverNotAvailableError: If the driver is offline or already busy
        RideNotAvailableError: If the ride was taken, cancelled or is out of window
    """
    now = now or timezone.now()
    driver = heal_driver_pointer(store, read_driver(store, driver_id))
    if not driver.is_online:
        raise DriverNotAvailableError("Please go online before accepting rides")
    if not driver.is_idle:
        raise DriverNotAvailableError("Finish your current ride before accepting another")

    ride = read_ride(store, ride_id)
    if not is_visible(ride, now):
        raise RideNotAvailableError("This ride was already handled or cancelled")

    intent = (
        UpdateIntent()
        .set(ride_path(ride_id, "status"), RideStatus.ACTIVE.value)
        .set(ride_path(ride_id, "driver_id"), driver_id)
        .set(ride_path(ride_id, "accepted_at"), to_iso(now))
        .set(driver_path(driver_id, "current_ride_id"), ride_id)
        .delete(request_path(ride_id))
    )
    guard = {
        ride_path(ride_id, "status"): RideStatus.PENDING.value,
        ride_path(ride_id, "driver_id"): None,
        driver_path(driver_id, "current_ride_id"): None,
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        logger.info("Driver %s lost the race for ride %s", driver_id, ride_id)
        raise RideNotAvailableError("Another driver accepted this ride first")

    prune_dismissals(store, ride_id)
    ride.status = RideStatus.ACTIVE
    ride.driver_id = driver_id
    ride.accepted_at = now
    logger.info("Ride %s accepted by driver %s", ride_id, driver_id)
    return RideResult(
        success=True,
        ride=ride,
        message="Ride Accepted Successfully! Navigate to pickup location.",
    )


def decline_ride_request(store: EntityStore, driver_id: str, ride_id: str) -> RideResult:
    """Hide a request from this driver only; other drivers still see it."""
    ride = read_ride(store, ride_id)
    if ride.status != RideStatus.PENDING:
        raise RideNotAvailableError("This ride was already handled or cancelled")

    store.write(dismissal_path(driver_id, ride_id), True)
    logger.info("Driver %s dismissed ride %s", driver_id, ride_id)
    return RideResult(success=True, ride=ride, message="Ride request dismissed.")
