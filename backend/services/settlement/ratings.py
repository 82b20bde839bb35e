"""Post-ride rating of the driver by the rider."""

import logging
from typing import Optional

from realtime.store import EntityStore, UpdateIntent
from services.ride_management.exceptions import (
    NotPermittedError,
    PreconditionError,
    RideNotAvailableError,
)
from services.ride_management.profiles import driver_path, read_driver, read_ride, ride_path
from services.ride_management.ride_lifecycle import MAX_CAS_ATTEMPTS, RideResult
from services.ride_management.states import RideStatus

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


def running_average(current: float, count: int, rating: int) -> float:
    return round(((current * count) + rating) / (count + 1), 2)


def submit_rating(
    store: EntityStore,
    rider_id: str,
    ride_id: str,
    driver_id: str,
    rating: int,
    feedback: Optional[str] = None,
) -> RideResult:
    """
    Rate the driver of a completed ride and fold it into their average.

    Only the ride's own rider may rate, once, after completion.
    """
    if not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise PreconditionError("Rating must be a whole number from 1 to 5.")

    ride = read_ride(store, ride_id)
    if ride.rider_id != rider_id:
        raise NotPermittedError("Only the rider of this ride can rate it")
    if ride.driver_id != driver_id:
        raise PreconditionError("This driver did not drive this ride")
    if ride.status != RideStatus.COMPLETED:
        raise RideNotAvailableError("Only completed rides can be rated")
    if ride.rating is not None:
        raise RideNotAvailableError("This ride has already been rated")

    for _ in range(MAX_CAS_ATTEMPTS):
        driver = read_driver(store, driver_id)
        new_average = running_average(driver.rating, driver.rating_count, rating)

        intent = (
            UpdateIntent()
            .set(driver_path(driver_id, "rating"), new_average)
            .set(driver_path(driver_id, "rating_count"), driver.rating_count + 1)
            .set(ride_path(ride_id, "rating"), rating)
        )
        if feedback:
            intent.set(ride_path(ride_id, "feedback"), feedback)

        # The average depends on the snapshot just read, so guard on it
        guard = {
            driver_path(driver_id, "rating_count"): store.read(driver_path(driver_id, "rating_count")),
            ride_path(ride_id, "rating"): None,
        }
        if store.compare_and_set(guard, intent.as_dict()):
            ride.rating = rating
            ride.feedback = feedback or None
            logger.info("Ride %s rated %s; driver %s now %.2f", ride_id, rating, driver_id, new_average)
            return RideResult(
                success=True,
                ride=ride,
                message="Thank you for rating your ride!",
                extra={"driver_rating": new_average, "rating_count": driver.rating_count + 1},
            )
        if store.read(ride_path(ride_id, "rating")) is not None:
            raise RideNotAvailableError("This ride has already been rated")

    raise RideNotAvailableError("Could not record the rating. Please try again.")
