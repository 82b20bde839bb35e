"""Common utility functions."""

from .geo import calculate_distance, distance_between
from .responses import error_response, respond, result_response, serialize_value

__all__ = [
    "calculate_distance",
    "distance_between",
    "error_response",
    "respond",
    "result_response",
    "serialize_value",
]
