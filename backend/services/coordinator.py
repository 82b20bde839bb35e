"""
Ride coordinator: one call per user-visible action.

``RideCoordinator`` is the presentation-facing facade over the lifecycle,
matching, settlement and offline-queue services. It is bound to one actor
(rider or driver) and takes care of the cross-cutting rules every action
shares:

    - actions attempted by the wrong role are silent no-ops
      (``error_code="not_permitted"``), nothing is written
    - store failures are caught here, logged, surfaced as a transient
      notification and returned as ``error_code="store_error"``
    - while connectivity is down, bookings go to the durable offline queue
      and are replayed in order when it comes back

Domain errors (``RideServiceError`` subclasses other than
``NotPermittedError``) propagate to the caller, which maps them to
user-visible messages.
"""

import logging
from datetime import datetime
from typing import Any, Callable, List, Optional, Union

from django.utils import timezone

from realtime.connectivity import ConnectivityMonitor, get_connectivity_monitor
from realtime.notifications import notify_user
from realtime.state import ClientState
from realtime.store import EntityStore, StoreError, StoreUnavailableError, get_entity_store

from .matching import (
    accept_ride_request,
    decline_ride_request,
    join_waitlist,
    leave_waitlist,
    list_waitlist,
    match_waitlisted_rider,
    toggle_driver_status,
    update_driver_location,
    visible_requests,
    waitlist_position,
)
from .offline import OfflineBookingQueue, ReplayResult
from .ride_management import (
    NotPermittedError,
    RideDetails,
    RideResult,
    WaitlistItem,
    cancel_ride_by_rider,
    confirm_scheduled_ride,
    create_ride_request,
    get_current_driver_ride,
    get_current_rider_ride,
    start_ride,
    supersede_pending_ride,
)
from .ride_management.profiles import (
    DRIVERS,
    ensure_driver,
    ensure_rider,
    read_driver,
    read_rider,
    ride_path,
)
from .ride_management.records import DriverProfile
from .settlement import (
    ACHIEVEMENTS,
    add_funds,
    complete_driver_onboarding,
    settle_ride,
    submit_rating,
    transaction_history,
)

logger = logging.getLogger(__name__)

RIDER = "rider"
DRIVER = "driver"

STORE_ERROR_MESSAGE = "We couldn't reach the ride service. Please try again."


def drivers_available(store: EntityStore, details: RideDetails) -> bool:
    """Whether any driver is online and free right now."""
    drivers = store.read(DRIVERS) or {}
    for driver_id, data in drivers.items():
        driver = DriverProfile.from_record(driver_id, data)
        if driver.is_online and driver.is_idle:
            return True
    return False


class RideCoordinator:
    """Facade bound to one rider or driver."""

    def __init__(
        self,
        actor_id: str,
        role: str,
        store: Optional[EntityStore] = None,
        connectivity: Optional[ConnectivityMonitor] = None,
        notifier: Optional[Callable[..., Any]] = None,
        clock: Optional[Callable[[], datetime]] = None,
        availability: Optional[Callable[[EntityStore, RideDetails], bool]] = None,
    ):
        self.actor_id = str(actor_id)
        self.role = role
        self.store = store or get_entity_store()
        self.connectivity = connectivity or get_connectivity_monitor()
        self.notifier = notifier or notify_user
        self.clock = clock or timezone.now
        self.availability = availability or drivers_available
        self.offline_queue = OfflineBookingQueue(self.actor_id)
        self.state: Optional[ClientState] = None
        self._unregister_callbacks: List[Callable[[], None]] = []
        self._replay_on_reconnect = False

    @classmethod
    def for_user(cls, user, **kwargs) -> "RideCoordinator":
        """Coordinator for a Django user, creating their store record on first use."""
        coordinator = cls(user.store_id, user.role, **kwargs)
        try:
            if coordinator.role == DRIVER:
                ensure_driver(coordinator.store, coordinator.actor_id, user.get_username())
            else:
                ensure_rider(coordinator.store, coordinator.actor_id, user.get_username())
        except StoreError:
            logger.warning("Could not ensure store record for %s %s", user.role, user.pk)
        return coordinator

    # ---------------------- Session ----------------------

    def watch(self, replay_on_reconnect: bool = True) -> ClientState:
        """
        Start following this actor's store data (long-lived sessions).

        The state tracks connectivity too. With ``replay_on_reconnect`` a
        rider's queued bookings are replayed by this coordinator when the
        store comes back; sessions in a process where ``rides.apps`` already
        schedules the replay pass False.
        """
        if self.state is None:
            self.state = ClientState().bind(self.store, self.actor_id, self.role)
            self.state.set_online(self.connectivity.is_online())
            self._replay_on_reconnect = replay_on_reconnect and self.role == RIDER
            self._unregister_callbacks = [
                self.connectivity.on_online(self._on_reconnect),
                self.connectivity.on_offline(self._on_disconnect),
            ]
        return self.state

    def close(self) -> None:
        for unregister in self._unregister_callbacks:
            unregister()
        self._unregister_callbacks = []
        if self.state is not None:
            self.state.close()
            self.state = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def _on_reconnect(self) -> None:
        if self.state is not None:
            self.state.set_online(True)
        if self._replay_on_reconnect:
            self.replay_offline_bookings()

    def _on_disconnect(self) -> None:
        if self.state is not None:
            self.state.set_online(False)

    # ---------------------- Plumbing ----------------------

    def _run(self, action: str, operation: Callable[[], RideResult], role: Optional[str] = None) -> RideResult:
        if role and self.role != role:
            logger.info("Ignoring %s by %s %s: wrong role", action, self.role, self.actor_id)
            return RideResult(success=False, message="Not permitted", error_code="not_permitted")

        try:
            return operation()
        except NotPermittedError as exc:
            logger.info("Ignoring %s by %s %s: %s", action, self.role, self.actor_id, exc)
            return RideResult(success=False, message=str(exc), error_code="not_permitted")
        except StoreError as exc:
            logger.exception("Store failure during %s for %s %s", action, self.role, self.actor_id)
            if isinstance(exc, StoreUnavailableError):
                self.connectivity.set_online(False)
            self._notify("Connection problem", STORE_ERROR_MESSAGE, level="error")
            return RideResult(success=False, message=STORE_ERROR_MESSAGE, error_code="store_error")

    def _notify(self, title: str, message: str, level: str = "info") -> None:
        try:
            self.notifier(self.role, self.actor_id, title, message, level=level)
        except Exception:
            logger.exception("Notification to %s %s failed", self.role, self.actor_id)

    # ---------------------- Rider actions ----------------------

    def book_ride(self, details: RideDetails) -> RideResult:
        """Broadcast a new ride, or queue it locally while offline."""
        def operation():
            now = self.clock()
            details.validate(now)
            if not self.connectivity.is_online():
                self.offline_queue.enqueue(details)
                self._notify("You are offline", "Ride booking queued. It will be sent upon reconnection.")
                return RideResult(
                    success=True,
                    message="You are offline. Your ride request will be sent when you reconnect.",
                    extra={"queued": True, "queue_length": len(self.offline_queue)},
                )
            return create_ride_request(self.store, self.actor_id, details, now)

        return self._run("book_ride", operation, role=RIDER)

    def request_ride(self, details: RideDetails) -> RideResult:
        """Book directly when a driver is free, otherwise join the waitlist."""
        def operation():
            if not self.connectivity.is_online() or self.availability(self.store, details):
                return self.book_ride(details)
            return self.join_waitlist(details)

        return self._run("request_ride", operation, role=RIDER)

    def join_waitlist(self, details: RideDetails) -> RideResult:
        def operation():
            result = join_waitlist(self.store, self.actor_id, details, self.clock())
            self._notify("Added to Waitlist", "We will find a driver for you shortly!")
            return result

        return self._run("join_waitlist", operation, role=RIDER)

    def leave_waitlist(self) -> RideResult:
        return self._run("leave_waitlist", lambda: leave_waitlist(self.store, self.actor_id), role=RIDER)

    def waitlist_position(self) -> RideResult:
        def operation():
            return RideResult(success=True, extra={"position": waitlist_position(self.store, self.actor_id)})

        return self._run("waitlist_position", operation, role=RIDER)

    def cancel_ride(self, reason: str) -> RideResult:
        return self._run(
            "cancel_ride",
            lambda: cancel_ride_by_rider(self.store, self.actor_id, reason, self.clock()),
            role=RIDER,
        )

    def submit_rating(self, ride_id: str, driver_id: str, rating: int, feedback: Optional[str] = None) -> RideResult:
        return self._run(
            "submit_rating",
            lambda: submit_rating(self.store, self.actor_id, ride_id, driver_id, rating, feedback),
            role=RIDER,
        )

    def add_funds_to_wallet(self, amount: float) -> RideResult:
        return self._run(
            "add_funds_to_wallet",
            lambda: add_funds(self.store, self.actor_id, amount, self.clock()),
            role=RIDER,
        )

    def transactions(self) -> RideResult:
        def operation():
            return RideResult(success=True, extra={"transactions": transaction_history(self.store, self.actor_id)})

        return self._run("transactions", operation, role=RIDER)

    def ride_history(self) -> RideResult:
        """
        The rider's completed rides, newest first.

        Refreshes the local cache on success; when the store cannot be
        reached the cached copy is served instead.
        """
        from rides.models import RideHistoryCache

        if self.role != RIDER:
            return RideResult(success=False, message="Not permitted", error_code="not_permitted")

        try:
            rider = read_rider(self.store, self.actor_id)
            rides = []
            for ride_id in rider.recent_rides:
                data = self.store.read(ride_path(ride_id))
                if data:
                    rides.append(data)
            rides.sort(key=lambda record: record.get("completed_at") or record.get("created_at") or "", reverse=True)
        except StoreError:
            logger.warning("Serving cached ride history for rider %s", self.actor_id)
            cache = RideHistoryCache.objects.filter(rider_id=self.actor_id).first()
            return RideResult(
                success=cache is not None,
                message="" if cache else STORE_ERROR_MESSAGE,
                error_code=None if cache else "store_error",
                extra={"rides": cache.rides if cache else [], "cached": True},
            )

        RideHistoryCache.objects.update_or_create(rider_id=self.actor_id, defaults={"rides": rides})
        return RideResult(success=True, extra={"rides": rides, "cached": False})

    def replay_offline_bookings(self) -> ReplayResult:
        """
        Submit queued bookings in order through the normal booking path.

        Every entry becomes a Ride. A ride created earlier in the same pass
        that is still unassigned is withdrawn as superseded before the next
        one is booked, so the latest booking is the rider's active ride.
        """
        if self.role != RIDER:
            return ReplayResult()

        booked = []

        def submit(details: RideDetails) -> RideResult:
            now = self.clock()
            if booked:
                supersede_pending_ride(self.store, self.actor_id, booked[-1], now)
            outcome = create_ride_request(self.store, self.actor_id, details, now)
            booked.append(outcome.ride.id)
            return outcome

        result = self.offline_queue.replay(submit)
        if result.submitted:
            self._notify("Back online", f"{len(result.submitted)} queued ride request(s) sent.")
        if result.dropped:
            self._notify(
                "Queued ride not sent",
                f"{len(result.dropped)} queued ride request(s) could no longer be booked and were removed.",
                level="warning",
            )
        if result.error:
            self._notify("Queued ride not sent", result.error, level="warning")
        return result

    # ---------------------- Driver actions ----------------------

    def toggle_driver_status(self) -> RideResult:
        return self._run(
            "toggle_driver_status",
            lambda: toggle_driver_status(self.store, self.actor_id, self.clock()),
            role=DRIVER,
        )

    def update_location(self, lat: float, lng: float) -> RideResult:
        def operation():
            location = update_driver_location(self.store, self.actor_id, lat, lng)
            return RideResult(success=True, extra={"location": location.to_record()})

        return self._run("update_location", operation, role=DRIVER)

    def visible_requests(self) -> RideResult:
        def operation():
            rides = visible_requests(self.store, self.actor_id, self.clock())
            return RideResult(success=True, extra={"rides": rides})

        return self._run("visible_requests", operation, role=DRIVER)

    def waitlist(self) -> RideResult:
        def operation():
            return RideResult(success=True, extra={"waitlist": list_waitlist(self.store)})

        return self._run("waitlist", operation, role=DRIVER)

    def handle_ride_request(self, ride_id: str, accept: bool) -> RideResult:
        def operation():
            if accept:
                return accept_ride_request(self.store, self.actor_id, ride_id, self.clock())
            return decline_ride_request(self.store, self.actor_id, ride_id)

        return self._run("handle_ride_request", operation, role=DRIVER)

    def accept_waitlisted_ride(self, item: Union[WaitlistItem, str]) -> RideResult:
        rider_id = item.rider_id if isinstance(item, WaitlistItem) else str(item)
        return self._run(
            "accept_waitlisted_ride",
            lambda: match_waitlisted_rider(self.store, self.actor_id, rider_id, self.clock()),
            role=DRIVER,
        )

    def confirm_scheduled_ride(self, ride_id: str) -> RideResult:
        return self._run(
            "confirm_scheduled_ride",
            lambda: confirm_scheduled_ride(self.store, self.actor_id, ride_id, self.clock()),
            role=DRIVER,
        )

    def start_ride(self, ride_id: str) -> RideResult:
        return self._run(
            "start_ride",
            lambda: start_ride(self.store, self.actor_id, ride_id, self.clock()),
            role=DRIVER,
        )

    def complete_ride(self) -> RideResult:
        def operation():
            result = settle_ride(self.store, self.actor_id, now=self.clock())
            extra = result.extra or {}
            if extra.get("onboarding_bonus_awarded"):
                self._notify("Bonus Unlocked!", "You earned a ₹250 sign-up bonus!")
            for achievement_id in extra.get("achievements_unlocked", []):
                try:
                    self.notifier(RIDER, result.ride.rider_id, "Achievement Unlocked!",
                                  ACHIEVEMENTS[achievement_id].name, level="success")
                except Exception:
                    logger.exception("Achievement notification failed")
            return result

        return self._run("complete_ride", operation, role=DRIVER)

    def complete_driver_onboarding(self, vehicle_details: dict, is_ev: bool = False) -> RideResult:
        return self._run(
            "complete_driver_onboarding",
            lambda: complete_driver_onboarding(self.store, self.actor_id, vehicle_details, is_ev),
            role=DRIVER,
        )

    # ---------------------- Queries ----------------------

    def current_ride(self) -> RideResult:
        """The actor's profile record and non-terminal ride, if any."""
        def operation():
            if self.role == DRIVER:
                ride = get_current_driver_ride(self.store, self.actor_id)
                profile = read_driver(self.store, self.actor_id)
            else:
                ride = get_current_rider_ride(self.store, self.actor_id)
                profile = read_rider(self.store, self.actor_id)
            return RideResult(
                success=True,
                ride=ride,
                extra={"profile": profile, "queued_bookings": len(self.offline_queue)},
            )

        return self._run("current_ride", operation)
