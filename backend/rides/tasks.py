"""Celery tasks for ride-related background processing."""

from celery import shared_task
import logging

from realtime.store import StoreError

logger = logging.getLogger(__name__)


@shared_task
def expire_scheduled_rides_task():
    """
    Periodic sweep cancelling scheduled rides whose time passed unaccepted.

    Scheduled by beat every ``SCHEDULED_EXPIRY_SWEEP_SECONDS``.
    """
    from realtime.store import get_entity_store
    from services.ride_management import expire_stale_scheduled_rides

    try:
        expired = expire_stale_scheduled_rides(get_entity_store())
    except StoreError:
        logger.exception("Scheduled ride sweep could not reach the store")
        return []

    if expired:
        logger.info("Expired %d scheduled ride(s): %s", len(expired), ", ".join(expired))
    return expired


@shared_task
def replay_offline_bookings_task(rider_id: str = None):
    """
    Replay queued bookings, for one rider or for every rider with a queue.

    Returns:
        {rider_id: number of bookings submitted}
    """
    from rides.models import QueuedBooking
    from services.coordinator import RideCoordinator

    if rider_id is not None:
        rider_ids = [str(rider_id)]
    else:
        rider_ids = list(
            QueuedBooking.objects.order_by().values_list("rider_id", flat=True).distinct()
        )

    submitted = {}
    for queued_rider_id in rider_ids:
        result = RideCoordinator(queued_rider_id, "rider").replay_offline_bookings()
        submitted[queued_rider_id] = len(result.submitted)
        if not result.completed:
            logger.warning(
                "Replay for rider %s stopped with %d booking(s) left: %s",
                queued_rider_id, result.remaining, result.error,
            )
    return submitted


@shared_task
def probe_store_connectivity():
    """Ping the store; a transition back online triggers queued replays."""
    from realtime.connectivity import get_connectivity_monitor

    try:
        return get_connectivity_monitor().probe()
    except StoreError:
        logger.exception("Connectivity probe failed")
        get_connectivity_monitor().set_online(False)
        return False
