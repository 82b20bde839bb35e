"""Turning service outcomes into DRF responses."""

from rest_framework import status
from rest_framework.response import Response

from services.ride_management import (
    ActiveRideExistsError,
    DriverNotAvailableError,
    InvalidTransitionError,
    NotPermittedError,
    PreconditionError,
    ProfileNotFoundError,
    RideNotAvailableError,
    RideNotFoundError,
    RideServiceError,
)

ERROR_CODE_STATUS = {
    "not_permitted": status.HTTP_403_FORBIDDEN,
    "store_error": status.HTTP_503_SERVICE_UNAVAILABLE,
}

# Most specific first
EXCEPTION_STATUS = (
    (NotPermittedError, status.HTTP_403_FORBIDDEN),
    (PreconditionError, status.HTTP_400_BAD_REQUEST),
    (InvalidTransitionError, status.HTTP_400_BAD_REQUEST),
    (RideNotFoundError, status.HTTP_404_NOT_FOUND),
    (ProfileNotFoundError, status.HTTP_404_NOT_FOUND),
    (ActiveRideExistsError, status.HTTP_409_CONFLICT),
    (RideNotAvailableError, status.HTTP_409_CONFLICT),
    (DriverNotAvailableError, status.HTTP_409_CONFLICT),
)


def serialize_value(value):
    """Records, enums and lists of them as JSON-ready data."""
    if hasattr(value, "to_record"):
        return value.to_record()
    if hasattr(value, "to_dict"):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [serialize_value(item) for item in value]
    if isinstance(value, dict):
        return {key: serialize_value(item) for key, item in value.items()}
    return value


def result_response(result, success_status=status.HTTP_200_OK):
    """
    Build the HTTP response for a ``RideResult``.

    Failed results carry ``error`` and ``error_code``; successful ones
    carry the ride record and whatever the operation put in ``extra``.
    A booking queued while offline is reported as 202 Accepted.
    """
    extra = serialize_value(result.extra or {})

    if not result.success:
        code = ERROR_CODE_STATUS.get(result.error_code, status.HTTP_400_BAD_REQUEST)
        return Response(
            {"error": result.message, "error_code": result.error_code, **extra},
            status=code,
        )

    body = {"message": result.message, **extra}
    if result.ride is not None:
        body["ride"] = result.ride.to_record()

    if extra.get("queued"):
        return Response(body, status=status.HTTP_202_ACCEPTED)
    return Response(body, status=success_status)


def error_response(exc: RideServiceError):
    for exc_class, code in EXCEPTION_STATUS:
        if isinstance(exc, exc_class):
            return Response({"error": str(exc)}, status=code)
    return Response({"error": str(exc)}, status=status.HTTP_400_BAD_REQUEST)


def respond(action, success_status=status.HTTP_200_OK):
    """Run a coordinator call and map its outcome or domain error."""
    try:
        result = action()
    except RideServiceError as exc:
        return error_response(exc)
    return result_response(result, success_status=success_status)
