"""Driver availability: going online/offline and reporting location."""

import logging
from datetime import datetime
from typing import Optional

from django.utils import timezone

from realtime.store import EntityStore
from services.ride_management.exceptions import RideNotAvailableError
from services.ride_management.profiles import driver_path, heal_driver_pointer, read_driver
from services.ride_management.records import Coordinates
from services.ride_management.ride_lifecycle import MAX_CAS_ATTEMPTS, RideResult

from .waitlist import match_next_waitlisted

logger = logging.getLogger(__name__)


def toggle_driver_status(store: EntityStore, driver_id: str, now: Optional[datetime] = None) -> RideResult:
    """
    Flip the driver's online flag.

    Coming online with no current ride immediately pulls the earliest
    waitlisted rider, if any.
    """
    now = now or timezone.now()
    online_path = driver_path(driver_id, "is_online")

    for _ in range(MAX_CAS_ATTEMPTS):
        driver = heal_driver_pointer(store, read_driver(store, driver_id))
        stored_flag = store.read(online_path)
        going_online = not driver.is_online
        if store.compare_and_set({online_path: stored_flag}, {online_path: going_online}):
            break
    else:
        raise RideNotAvailableError("Your status changed meanwhile. Please try again.")

    logger.info("Driver %s is now %s", driver_id, "online" if going_online else "offline")

    extra = {"is_online": going_online}
    if going_online and driver.is_idle:
        matched = match_next_waitlisted(store, driver_id, now)
        if matched is not None:
            matched.extra = {**extra, **(matched.extra or {})}
            return matched

    return RideResult(
        success=True,
        message="You are now online." if going_online else "You are now offline.",
        extra=extra,
    )


def update_driver_location(store: EntityStore, driver_id: str, lat: float, lng: float) -> Coordinates:
    """Record the driver's last known position (orders their request list)."""
    read_driver(store, driver_id)
    location = Coordinates(lat=float(lat), lng=float(lng))
    store.write(driver_path(driver_id, "location"), location.to_record())
    return location
