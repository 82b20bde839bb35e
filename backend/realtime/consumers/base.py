"""Base WebSocket consumer with shared functionality for all consumers."""

import asyncio
import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer
from channels.db import database_sync_to_async

from common.utils import serialize_value
from realtime.notifications import group_name
from services.coordinator import RideCoordinator
from services.ride_management import RideServiceError

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Subclasses set ``expected_role`` and override:
        - on_connect(): extra groups / initial payload
        - handle_message(msg_type, data): handle incoming messages
    """

    expected_role = None

    async def connect(self):
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        # Basic attributes available to all consumers
        self.store_id = str(self.user.pk)
        self.role = getattr(self.user, "role", None)

        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()

        if self.expected_role and self.role != self.expected_role:
            await self.accept()
            await self.send_error(f"This endpoint is for {self.expected_role}s only")
            await self.close()
            return

        self.coordinator = await database_sync_to_async(RideCoordinator.for_user)(self.user)

        # Personal group (useful for targeted server->user messages)
        self.user_group = group_name(self.role, self.store_id)
        await self._join_group(self.user_group)

        await self.accept()
        await self.on_connect()
        await self._watch_state()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.store_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        """Stop following the store and leave all joined groups."""
        try:
            await self._stop_watching()
            for group in list(getattr(self, "joined_groups", ())):
                await self._leave_group(group)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'store_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except RideServiceError as exc:
            await self.send_error(str(exc), action=msg_type)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Coordinator Helpers ----------------------

    async def run_action(self, action: str, method, *args, **kwargs):
        """
        Run a coordinator method off the event loop and report its result
        to the client as ``<action>_result``.
        """
        result = await database_sync_to_async(method)(*args, **kwargs)
        payload = {
            "type": f"{action}_result",
            "success": result.success,
            "message": result.message,
            "error_code": result.error_code,
            **serialize_value(result.extra or {}),
        }
        if result.ride is not None:
            payload["ride"] = result.ride.to_record()
        await self.send_json(payload)
        return result

    # ---------------------- Client State ----------------------

    async def _watch_state(self):
        """
        Follow this actor's store data and forward every snapshot as
        ``client_state``. Store changes arrive on whichever thread wrote
        them, so snapshots are handed back to this consumer's loop.
        """
        loop = asyncio.get_running_loop()

        def forward(snapshot):
            asyncio.run_coroutine_threadsafe(self.send_state(snapshot), loop)

        # Replay on reconnect is scheduled process-wide by rides.apps
        self.client_state = await database_sync_to_async(self.coordinator.watch)(replay_on_reconnect=False)
        self._state_unsubscribe = self.client_state.subscribe(forward)
        await self.send_state(self.client_state.state)

    async def _stop_watching(self):
        unsubscribe = getattr(self, "_state_unsubscribe", None)
        if unsubscribe:
            unsubscribe()
            self._state_unsubscribe = None
        coordinator = getattr(self, "coordinator", None)
        if coordinator is not None:
            await database_sync_to_async(coordinator.close)()

    async def send_state(self, snapshot):
        if getattr(self, "_state_unsubscribe", None) is None:
            return
        await self.send_json({"type": "client_state", **snapshot.to_record()})

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str, **kwargs):
        """Send an error message to the client."""
        await self.send_json({
            "type": "error",
            "message": message,
            **kwargs,
        })

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    # ---------------------- Common Event Handlers ----------------------
    # These handle group_send events from server-side code

    async def ride_updated(self, event):
        """A ride this session shows was written."""
        await self.send_json({
            "type": "ride_updated",
            "ride_id": event.get("ride_id"),
            "ride": event.get("ride_data", {}),
            "message": event.get("message", ""),
        })

    async def notification(self, event):
        """Transient toast (errors, bonuses, achievements)."""
        await self.send_json({
            "type": "notification",
            "title": event.get("title", ""),
            "message": event.get("message", ""),
            "level": event.get("level", "info"),
        })
