"""Rider WebSocket consumer: booking actions and live ride updates."""

import logging
from typing import Dict, Any

from rides.serializers import RideDetailsSerializer
from riders.serializers import CancelRideSerializer, RatingSerializer, WalletTopUpSerializer

from .base import BaseConsumer

logger = logging.getLogger(__name__)


class RiderConsumer(BaseConsumer):
    """
    WebSocket consumer for riders.

    Handles:
        - book_ride / join_waitlist / leave_waitlist / cancel_ride
        - submit_rating / add_funds
        - Forwarding of the rider's record and active ride as they change
    """

    expected_role = "rider"

    async def on_connect(self):
        await self.send_json({
            "type": "connection_established",
            "user_id": self.store_id,
            "role": self.role,
            "message": "Rider connected successfully",
        })
        await self.run_action("current_ride", self.coordinator.current_ride)

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle rider-specific messages."""

        if msg_type in ("book_ride", "join_waitlist"):
            serializer = RideDetailsSerializer(data=data.get("details") or {})
            if not serializer.is_valid():
                await self.send_error("Invalid ride details", action=msg_type, errors=serializer.errors)
                return
            method = self.coordinator.book_ride if msg_type == "book_ride" else self.coordinator.join_waitlist
            await self.run_action(msg_type, method, serializer.to_details())

        elif msg_type == "leave_waitlist":
            await self.run_action(msg_type, self.coordinator.leave_waitlist)

        elif msg_type == "cancel_ride":
            serializer = CancelRideSerializer(data=data)
            if not serializer.is_valid():
                await self.send_error("Please provide a reason for cancellation.", action=msg_type)
                return
            await self.run_action(msg_type, self.coordinator.cancel_ride, serializer.validated_data["reason"])

        elif msg_type == "submit_rating":
            serializer = RatingSerializer(data=data)
            if not serializer.is_valid():
                await self.send_error("Invalid rating", action=msg_type, errors=serializer.errors)
                return
            rating = serializer.validated_data
            await self.run_action(
                msg_type, self.coordinator.submit_rating,
                data.get("ride_id"), rating["driver_id"], rating["rating"], rating.get("feedback") or None,
            )

        elif msg_type == "add_funds":
            serializer = WalletTopUpSerializer(data=data)
            if not serializer.is_valid():
                await self.send_error("Amount must be greater than zero.", action=msg_type)
                return
            await self.run_action(
                msg_type, self.coordinator.add_funds_to_wallet, float(serializer.validated_data["amount"])
            )

        elif msg_type == "ping":
            await self.send_success("pong")

        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Event Handlers (from group_send) ----------------------

    async def rider_updated(self, event):
        """Forward the rider's own record (wallet, counters, pointers)."""
        await self.send_json({
            "type": "rider_updated",
            "rider": event.get("rider_data"),
        })
