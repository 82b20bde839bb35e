"""
Observable client-side view of the store.

``ClientState`` holds the latest snapshot a rider or driver session has
seen. It is fed only by store subscriptions: every change is turned into an
action and folded in by ``reduce_state``; nothing else mutates it.
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from services.ride_management.profiles import (
    RIDE_REQUESTS,
    WAITLIST,
    driver_path,
    ride_path,
    rider_path,
)
from services.ride_management.records import DriverProfile, Ride, RiderProfile, WaitlistItem

logger = logging.getLogger(__name__)

RIDER_CHANGED = "rider_changed"
DRIVER_CHANGED = "driver_changed"
RIDE_CHANGED = "ride_changed"
REQUESTS_CHANGED = "requests_changed"
WAITLIST_CHANGED = "waitlist_changed"
CONNECTIVITY_CHANGED = "connectivity_changed"


@dataclass(frozen=True)
class ClientSnapshot:
    rider: Optional[RiderProfile] = None
    driver: Optional[DriverProfile] = None
    active_ride: Optional[Ride] = None
    ride_requests: Tuple[Ride, ...] = ()
    waitlist: Tuple[WaitlistItem, ...] = ()
    is_online: bool = True
    version: int = 0

    def to_record(self) -> Dict[str, Any]:
        return {
            "rider": self.rider.to_record() if self.rider else None,
            "driver": self.driver.to_record() if self.driver else None,
            "active_ride": self.active_ride.to_record() if self.active_ride else None,
            "ride_requests": [ride.to_record() for ride in self.ride_requests],
            "waitlist": [item.to_record() for item in self.waitlist],
            "is_online": self.is_online,
            "version": self.version,
        }


@dataclass(frozen=True)
class Action:
    type: str
    payload: Any = None
    actor_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


def reduce_state(state: ClientSnapshot, action: Action) -> ClientSnapshot:
    """Pure reducer: previous snapshot + action -> next snapshot."""
    payload = action.payload

    if action.type == RIDER_CHANGED:
        rider = RiderProfile.from_record(action.actor_id, payload) if payload else None
        return replace(state, rider=rider, version=state.version + 1)

    if action.type == DRIVER_CHANGED:
        driver = DriverProfile.from_record(action.actor_id, payload) if payload else None
        return replace(state, driver=driver, version=state.version + 1)

    if action.type == RIDE_CHANGED:
        ride = Ride.from_record(payload) if payload else None
        return replace(state, active_ride=ride, version=state.version + 1)

    if action.type == REQUESTS_CHANGED:
        rides = tuple(Ride.from_record(record) for record in (payload or {}).values())
        return replace(state, ride_requests=rides, version=state.version + 1)

    if action.type == WAITLIST_CHANGED:
        items = sorted(
            (WaitlistItem.from_record(rider_id, data) for rider_id, data in (payload or {}).items()),
            key=lambda item: (item.timestamp, item.rider_id),
        )
        return replace(state, waitlist=tuple(items), version=state.version + 1)

    if action.type == CONNECTIVITY_CHANGED:
        return replace(state, is_online=bool(payload), version=state.version + 1)

    logger.debug("Ignoring unknown action %s", action.type)
    return state


class ClientState:
    """Snapshot container with listeners, bound to one actor's store paths."""

    def __init__(self, initial: Optional[ClientSnapshot] = None):
        self._state = initial or ClientSnapshot()
        self._lock = threading.RLock()
        self._listeners: List[Callable[[ClientSnapshot], None]] = []
        self._unsubscribers: List[Callable[[], None]] = []
        self._ride_unsubscribe: Optional[Callable[[], None]] = None
        self._tracked_ride_id: Optional[str] = None
        self._store = None

    @property
    def state(self) -> ClientSnapshot:
        return self._state

    def dispatch(self, action: Action) -> ClientSnapshot:
        with self._lock:
            self._state = reduce_state(self._state, action)
            state = self._state
            listeners = list(self._listeners)

        for listener in listeners:
            try:
                listener(state)
            except Exception:
                logger.exception("Client state listener failed")
        return state

    def subscribe(self, listener: Callable[[ClientSnapshot], None]) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    # ---------------------- Store binding ----------------------

    def bind(self, store, actor_id: str, role: str) -> "ClientState":
        """
        Subscribe to everything this actor's session shows.

        Riders follow their record and active ride; drivers follow their
        record, current ride, the open requests and the waitlist.
        """
        self._store = store

        if role == "driver":
            def on_driver(event):
                self.dispatch(Action(DRIVER_CHANGED, event.value, actor_id))
                self._track_ride((event.value or {}).get("current_ride_id"))

            self._unsubscribers.append(store.subscribe(driver_path(actor_id), on_driver))
            self._unsubscribers.append(store.subscribe(
                RIDE_REQUESTS, lambda event: self.dispatch(Action(REQUESTS_CHANGED, event.value))
            ))
            self._unsubscribers.append(store.subscribe(
                WAITLIST, lambda event: self.dispatch(Action(WAITLIST_CHANGED, event.value))
            ))
        else:
            def on_rider(event):
                self.dispatch(Action(RIDER_CHANGED, event.value, actor_id))
                self._track_ride((event.value or {}).get("active_ride_id"))

            self._unsubscribers.append(store.subscribe(rider_path(actor_id), on_rider))

        return self

    def _track_ride(self, ride_id: Optional[str]) -> None:
        """Follow whichever ride the actor's pointer currently names."""
        with self._lock:
            if ride_id == self._tracked_ride_id:
                return
            previous = self._ride_unsubscribe
            self._ride_unsubscribe = None
            self._tracked_ride_id = ride_id

        if previous:
            previous()

        if ride_id is None:
            self.dispatch(Action(RIDE_CHANGED, None))
            return

        unsubscribe = self._store.subscribe(
            ride_path(ride_id), lambda event: self.dispatch(Action(RIDE_CHANGED, event.value))
        )
        with self._lock:
            if self._tracked_ride_id == ride_id:
                self._ride_unsubscribe = unsubscribe
                return
        unsubscribe()

    def set_online(self, online: bool) -> None:
        self.dispatch(Action(CONNECTIVITY_CHANGED, online))

    def close(self) -> None:
        with self._lock:
            unsubscribers = self._unsubscribers
            self._unsubscribers = []
            ride_unsubscribe = self._ride_unsubscribe
            self._ride_unsubscribe = None
            self._tracked_ride_id = None

        for unsubscribe in unsubscribers:
            unsubscribe()
        if ride_unsubscribe:
            ride_unsubscribe()
