"""
Fan-out of entity store changes to Channels groups.

The store notifies in-process subscribers; this module subscribes to the
top-level collections and forwards each change to the groups whose sessions
display it:

    rides/<id>          -> rider_<rider_id>, driver_<driver_id>  (ride_updated)
    riders/<id>         -> rider_<id>                            (rider_updated)
    drivers/<id>        -> driver_<id>                           (driver_updated)
    ride-requests/...   -> open_requests                         (open_requests_changed)
    waitlist/...        -> waitlist                              (waitlist_changed)
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable, List, Set

from services.ride_management.profiles import (
    DRIVERS,
    RIDE_REQUESTS,
    RIDERS,
    RIDES,
    WAITLIST,
    driver_path,
    ride_path,
    rider_path,
)

from .notifications import OPEN_REQUESTS_GROUP, WAITLIST_GROUP, group_name, send_to_group
from .store.base import ChangeEvent, EntityStore, split_path

logger = logging.getLogger(__name__)


def _record_ids(collection: str, changed_paths: Iterable[str]) -> Set[str]:
    """Ids of the records under ``collection`` touched by a write."""
    ids = set()
    for path in changed_paths:
        segments = split_path(path)
        if len(segments) >= 2 and segments[0] == collection:
            ids.add(segments[1])
    return ids


def _safely(handler: Callable[[EntityStore, ChangeEvent], None], store: EntityStore):
    def on_change(event: ChangeEvent):
        try:
            handler(store, event)
        except Exception:
            logger.exception("Broadcast of %s change failed", event.path)
    return on_change


# ---------------------- Handlers ----------------------

def _on_rides(store: EntityStore, event: ChangeEvent) -> None:
    for ride_id in _record_ids(RIDES, event.changed_paths):
        record = store.read(ride_path(ride_id))
        if not record:
            continue
        payload = {"type": "ride_updated", "ride_id": ride_id, "ride_data": record}
        send_to_group(group_name("rider", record["rider_id"]), payload)
        if record.get("driver_id"):
            send_to_group(group_name("driver", record["driver_id"]), payload)


def _on_riders(store: EntityStore, event: ChangeEvent) -> None:
    for rider_id in _record_ids(RIDERS, event.changed_paths):
        send_to_group(group_name("rider", rider_id), {
            "type": "rider_updated",
            "rider_id": rider_id,
            "rider_data": store.read(rider_path(rider_id)),
        })


def _on_drivers(store: EntityStore, event: ChangeEvent) -> None:
    for driver_id in _record_ids(DRIVERS, event.changed_paths):
        send_to_group(group_name("driver", driver_id), {
            "type": "driver_updated",
            "driver_id": driver_id,
            "driver_data": store.read(driver_path(driver_id)),
        })


def _on_open_requests(store: EntityStore, event: ChangeEvent) -> None:
    send_to_group(OPEN_REQUESTS_GROUP, {
        "type": "open_requests_changed",
        "ride_ids": sorted(_record_ids(RIDE_REQUESTS, event.changed_paths)),
    })


def _on_waitlist(store: EntityStore, event: ChangeEvent) -> None:
    send_to_group(WAITLIST_GROUP, {
        "type": "waitlist_changed",
        "rider_ids": sorted(_record_ids(WAITLIST, event.changed_paths)),
    })


def install_store_broadcast(store: EntityStore) -> List[Callable[[], None]]:
    """
    Subscribe the fan-out handlers to ``store``.

    Returns:
        Unsubscribe functions, one per collection
    """
    handlers = {
        RIDES: _on_rides,
        RIDERS: _on_riders,
        DRIVERS: _on_drivers,
        RIDE_REQUESTS: _on_open_requests,
        WAITLIST: _on_waitlist,
    }
    unsubscribers = [
        store.subscribe(collection, _safely(handler, store), emit_initial=False)
        for collection, handler in handlers.items()
    ]
    logger.info("Store broadcast installed for %s", ", ".join(handlers))
    return unsubscribers
