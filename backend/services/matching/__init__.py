"""
Driver matching service.

This module handles:
    - The open-request view each driver sees (window, dismissals, distance)
    - Accepting an open request with a guarded first-wins write
    - Per-driver decline
    - The FIFO waitlist and matching it when drivers come online
"""

from .open_requests import (
    is_visible,
    visible_requests,
    accept_ride_request,
    decline_ride_request,
)
from .waitlist import (
    join_waitlist,
    leave_waitlist,
    list_waitlist,
    waitlist_position,
    match_waitlisted_rider,
    match_next_waitlisted,
)
from .driver_status import toggle_driver_status, update_driver_location

__all__ = [
    "is_visible",
    "visible_requests",
    "accept_ride_request",
    "decline_ride_request",
    "join_waitlist",
    "leave_waitlist",
    "list_waitlist",
    "waitlist_position",
    "match_waitlisted_rider",
    "match_next_waitlisted",
    "toggle_driver_status",
    "update_driver_location",
]
