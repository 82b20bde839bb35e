"""Custom exceptions for ride management."""


class RideServiceError(Exception):
    """Base class for every ride-service failure."""
    pass


class RideNotFoundError(RideServiceError):
    """Raised when a ride cannot be found."""
    pass


class ProfileNotFoundError(RideServiceError):
    """Raised when a rider or driver record is missing from the store."""
    pass


class RideNotAvailableError(RideServiceError):
    """Raised when a ride is not in an available state for the operation."""
    pass


class DriverNotAvailableError(RideServiceError):
    """Raised when driver is not available to accept rides."""
    pass


class ActiveRideExistsError(RideServiceError):
    """Raised when user already has an active ride or a waitlist spot."""
    pass


class InvalidTransitionError(RideServiceError):
    """Raised when a ride status change is not allowed by the state machine."""
    pass


class PreconditionError(RideServiceError):
    """Raised when required input is missing or invalid; nothing was written."""
    pass


class NotPermittedError(RideServiceError):
    """Raised when the actor is not allowed to perform the action on this ride."""
    pass
