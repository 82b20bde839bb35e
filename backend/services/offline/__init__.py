"""Offline booking queue."""

from .booking_queue import OfflineBookingQueue, ReplayResult

__all__ = [
    "OfflineBookingQueue",
    "ReplayResult",
]
