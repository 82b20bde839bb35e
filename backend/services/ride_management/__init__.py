"""
Ride management service - Core ride lifecycle operations.

This module handles:
    - Ride records and the status state machine
    - Creating ride requests
    - Cancelling, confirming and starting rides
    - Expiring scheduled rides nobody accepted
"""

from .ride_lifecycle import (
    RideResult,
    check_active_ride,
    create_ride_request,
    cancel_ride_by_rider,
    confirm_scheduled_ride,
    start_ride,
    expire_stale_scheduled_rides,
    supersede_pending_ride,
    prune_dismissals,
    get_current_rider_ride,
    get_current_driver_ride,
)

from .records import (
    BookingKind,
    Coordinates,
    DriverProfile,
    Ride,
    RideDetails,
    RideKind,
    RiderProfile,
    Transaction,
    TransactionDirection,
    WaitlistItem,
)

from .states import RideStatus

from .exceptions import (
    RideServiceError,
    RideNotFoundError,
    ProfileNotFoundError,
    RideNotAvailableError,
    DriverNotAvailableError,
    ActiveRideExistsError,
    InvalidTransitionError,
    PreconditionError,
    NotPermittedError,
)

__all__ = [
    # Lifecycle operations
    "RideResult",
    "check_active_ride",
    "create_ride_request",
    "cancel_ride_by_rider",
    "confirm_scheduled_ride",
    "start_ride",
    "expire_stale_scheduled_rides",
    "supersede_pending_ride",
    "prune_dismissals",
    "get_current_rider_ride",
    "get_current_driver_ride",
    # Records
    "BookingKind",
    "Coordinates",
    "DriverProfile",
    "Ride",
    "RideDetails",
    "RideKind",
    "RiderProfile",
    "RideStatus",
    "Transaction",
    "TransactionDirection",
    "WaitlistItem",
    # Exceptions
    "RideServiceError",
    "RideNotFoundError",
    "ProfileNotFoundError",
    "RideNotAvailableError",
    "DriverNotAvailableError",
    "ActiveRideExistsError",
    "InvalidTransitionError",
    "PreconditionError",
    "NotPermittedError",
]
