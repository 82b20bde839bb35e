"""
Waitlist matching.

Riders who find no driver free wait under ``waitlist/<rider_id>`` with a
store-assigned timestamp. Drivers coming online pull the earliest entry;
a driver can also pick a specific entry. Either way the ride is created
directly in Active.
"""

import logging
from datetime import datetime
from typing import List, Optional

from django.utils import timezone

from realtime.store import SERVER_TIMESTAMP, EntityStore, UpdateIntent
from services.ride_management.exceptions import (
    ActiveRideExistsError,
    DriverNotAvailableError,
    RideNotAvailableError,
    RideNotFoundError,
)
from services.ride_management.profiles import (
    RIDES,
    WAITLIST,
    driver_path,
    heal_driver_pointer,
    heal_rider_pointer,
    read_driver,
    read_rider,
    ride_path,
    rider_path,
    waitlist_path,
)
from services.ride_management.records import Ride, RideDetails, WaitlistItem
from services.ride_management.ride_lifecycle import RideResult, price_details
from services.ride_management.states import RideStatus

logger = logging.getLogger(__name__)


def join_waitlist(
    store: EntityStore,
    rider_id: str,
    details: RideDetails,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Queue the rider for the next free driver instead of creating a ride.

    Raises:
        PreconditionError: If the details are incomplete
        ActiveRideExistsError: If the rider already has a ride or a waitlist spot
    """
    now = now or timezone.now()
    details.validate(now)

    rider = heal_rider_pointer(store, read_rider(store, rider_id))
    if rider.active_ride_id or rider.is_on_waitlist:
        raise ActiveRideExistsError("You already have an active ride or a waitlist spot")

    price_details(details, now)
    intent = (
        UpdateIntent()
        .set(waitlist_path(rider_id), {
            "rider_id": rider_id,
            "timestamp": SERVER_TIMESTAMP,
            "ride_details": details.to_record(),
        })
        .set(rider_path(rider_id, "is_on_waitlist"), True)
    )
    guard = {
        rider_path(rider_id, "active_ride_id"): None,
        waitlist_path(rider_id): None,
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        raise ActiveRideExistsError("You already have an active ride or a waitlist spot")

    logger.info("Rider %s joined the waitlist", rider_id)
    return RideResult(
        success=True,
        message="No drivers free right now. You have been added to the waitlist.",
        extra={"position": waitlist_position(store, rider_id)},
    )


def leave_waitlist(store: EntityStore, rider_id: str) -> RideResult:
    """Remove only this rider's entry and flag."""
    heal_rider_pointer(store, read_rider(store, rider_id))
    if store.read(waitlist_path(rider_id)) is None:
        raise RideNotFoundError("You are not on the waitlist")

    UpdateIntent().delete(waitlist_path(rider_id)).set(
        rider_path(rider_id, "is_on_waitlist"), False
    ).apply(store)

    logger.info("Rider %s left the waitlist", rider_id)
    return RideResult(success=True, message="You have left the waitlist.")


def list_waitlist(store: EntityStore) -> List[WaitlistItem]:
    """All waiting riders, earliest first."""
    entries = store.read(WAITLIST) or {}
    items = [WaitlistItem.from_record(rider_id, data) for rider_id, data in entries.items()]
    items.sort(key=lambda item: (item.timestamp, item.rider_id))
    return items


def waitlist_position(store: EntityStore, rider_id: str) -> Optional[int]:
    for position, item in enumerate(list_waitlist(store), start=1):
        if item.rider_id == rider_id:
            return position
    return None


def match_waitlisted_rider(
    store: EntityStore,
    driver_id: str,
    rider_id: str,
    now: Optional[datetime] = None,
) -> RideResult:
    """
    Turn one waitlist entry into an Active ride assigned to ``driver_id``.

    The write is guarded on the entry's timestamp and on the driver still
    being free, so two drivers can never take the same rider.

    Raises:
        DriverNotAvailableError: If the driver is offline or already busy
        RideNotAvailableError: If the entry is gone or was taken meanwhile
    """
    now = now or timezone.now()
    driver = heal_driver_pointer(store, read_driver(store, driver_id))
    if not driver.is_online:
        raise DriverNotAvailableError("Please go online before accepting rides")
    if not driver.is_idle:
        raise DriverNotAvailableError("Finish your current ride before accepting another")

    data = store.read(waitlist_path(rider_id))
    if data is None:
        raise RideNotAvailableError("This rider is no longer waiting")
    item = WaitlistItem.from_record(rider_id, data)

    ride = Ride(
        id=store.push(RIDES),
        rider_id=rider_id,
        details=price_details(item.ride_details, now),
        status=RideStatus.ACTIVE,
        created_at=now,
        driver_id=driver_id,
        accepted_at=now,
    )
    intent = (
        UpdateIntent()
        .set(ride_path(ride.id), ride.to_record())
        .delete(waitlist_path(rider_id))
        .set(rider_path(rider_id, "is_on_waitlist"), False)
        .set(rider_path(rider_id, "active_ride_id"), ride.id)
        .set(driver_path(driver_id, "current_ride_id"), ride.id)
    )
    guard = {
        waitlist_path(rider_id, "timestamp"): item.timestamp,
        rider_path(rider_id, "active_ride_id"): None,
        driver_path(driver_id, "current_ride_id"): None,
    }
    if not store.compare_and_set(guard, intent.as_dict()):
        raise RideNotAvailableError("This rider was matched with another driver")

    logger.info("Driver %s matched waitlisted rider %s (ride %s)", driver_id, rider_id, ride.id)
    return RideResult(
        success=True,
        ride=ride,
        message="Matched with a waiting rider. Navigate to pickup location.",
        extra={"matched_rider_id": rider_id},
    )


def match_next_waitlisted(
    store: EntityStore,
    driver_id: str,
    now: Optional[datetime] = None,
) -> Optional[RideResult]:
    """Match the earliest waiting rider; None when the waitlist is empty."""
    for item in list_waitlist(store):
        try:
            return match_waitlisted_rider(store, driver_id, item.rider_id, now)
        except RideNotAvailableError:
            logger.debug("Waitlist entry for %s taken meanwhile, trying next", item.rider_id)
            continue
    return None
