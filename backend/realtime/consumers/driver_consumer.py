"""Driver WebSocket consumer for open requests, the waitlist and ride actions."""

import logging
from typing import Dict, Any

from realtime.notifications import OPEN_REQUESTS_GROUP, WAITLIST_GROUP

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - Online/offline toggle and location updates
        - Accept / decline of open requests, accepting waitlisted riders
        - Confirm / start of scheduled rides and completion
        - Live open-request and waitlist views
    """

    expected_role = "driver"

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        await self._join_group(OPEN_REQUESTS_GROUP)
        await self._join_group(WAITLIST_GROUP)

        await self.send_json({
            "type": "connection_established",
            "user_id": self.store_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })
        await self.run_action("current_ride", self.coordinator.current_ride)
        await self.run_action("ride_requests", self.coordinator.visible_requests)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""

        if msg_type == "toggle_status":
            await self.run_action(msg_type, self.coordinator.toggle_driver_status)

        elif msg_type == "driver_location_update":
            lat = data.get("latitude")
            lon = data.get("longitude")
            if lat is None or lon is None:
                await self.send_error("driver_location_update requires latitude and longitude")
                return
            await self.run_action(msg_type, self.coordinator.update_location, float(lat), float(lon))

        elif msg_type in ("accept_ride", "decline_ride"):
            ride_id = data.get("ride_id")
            if not ride_id:
                await self.send_error(f"{msg_type} requires ride_id")
                return
            await self.run_action(
                msg_type, self.coordinator.handle_ride_request, str(ride_id), msg_type == "accept_ride"
            )
            if msg_type == "decline_ride":
                await self.run_action("ride_requests", self.coordinator.visible_requests)

        elif msg_type == "accept_waitlisted":
            rider_id = data.get("rider_id")
            if not rider_id:
                await self.send_error("accept_waitlisted requires rider_id")
                return
            await self.run_action(msg_type, self.coordinator.accept_waitlisted_ride, str(rider_id))

        elif msg_type in ("confirm_ride", "start_ride"):
            ride_id = data.get("ride_id")
            if not ride_id:
                await self.send_error(f"{msg_type} requires ride_id")
                return
            method = (
                self.coordinator.confirm_scheduled_ride if msg_type == "confirm_ride"
                else self.coordinator.start_ride
            )
            await self.run_action(msg_type, method, str(ride_id))

        elif msg_type == "complete_ride":
            await self.run_action(msg_type, self.coordinator.complete_ride)

        elif msg_type == "get_requests":
            await self.run_action("ride_requests", self.coordinator.visible_requests)

        elif msg_type == "get_waitlist":
            await self.run_action("waitlist", self.coordinator.waitlist)

        elif msg_type == "ping":
            await self.send_success("pong")

        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def driver_updated(self, event):
        """Forward the driver's own record (online flag, earnings, current ride)."""
        await self.send_json({
            "type": "driver_updated",
            "driver": event.get("driver_data"),
        })

    async def open_requests_changed(self, event):
        """Recompute this driver's visible list; visibility depends on the driver."""
        await self.run_action("ride_requests", self.coordinator.visible_requests)

    async def waitlist_changed(self, event):
        await self.run_action("waitlist", self.coordinator.waitlist)
