from rest_framework import serializers

from services.pricing.fare_calculator import ROUTE_TABLE
from services.ride_management import BookingKind, Coordinates, RideDetails, RideKind


class CoordinatesSerializer(serializers.Serializer):
    """
    Latitude/longitude pair.

    Expected body:
    {
        "latitude": <float>,
        "longitude": <float>
    }
    """
    latitude = serializers.FloatField(min_value=-90, max_value=90)
    longitude = serializers.FloatField(min_value=-180, max_value=180)

    def to_coordinates(self, data=None):
        data = data if data is not None else self.validated_data
        return Coordinates(lat=data["latitude"], lng=data["longitude"])


class RideDetailsSerializer(serializers.Serializer):
    """
    Validates a booking (direct or waitlist).

    Scheduled bookings must carry ``scheduled_time``; the time being in the
    future is checked by the service against its own clock.
    """
    pickup = serializers.CharField(max_length=255)
    destination = serializers.CharField(max_length=255)
    ride_kind = serializers.ChoiceField(
        choices=[kind.value for kind in RideKind], default=RideKind.SOLO.value
    )
    booking_kind = serializers.ChoiceField(
        choices=[kind.value for kind in BookingKind], default=BookingKind.ASAP.value
    )
    scheduled_time = serializers.DateTimeField(required=False, allow_null=True)
    group_size = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    pickup_coords = CoordinatesSerializer(required=False, allow_null=True)
    destination_coords = CoordinatesSerializer(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs.get("booking_kind") == BookingKind.SCHEDULED.value and not attrs.get("scheduled_time"):
            raise serializers.ValidationError(
                {"scheduled_time": "Please select a date and time for your scheduled ride."}
            )
        return attrs

    def to_details(self) -> RideDetails:
        data = self.validated_data
        coords = CoordinatesSerializer()
        is_scheduled = data["booking_kind"] == BookingKind.SCHEDULED.value
        return RideDetails(
            pickup=data["pickup"].strip(),
            destination=data["destination"].strip(),
            ride_kind=data["ride_kind"],
            booking_kind=data["booking_kind"],
            scheduled_time=data.get("scheduled_time") if is_scheduled else None,
            group_size=data.get("group_size"),
            pickup_coords=coords.to_coordinates(data["pickup_coords"]) if data.get("pickup_coords") else None,
            destination_coords=(
                coords.to_coordinates(data["destination_coords"]) if data.get("destination_coords") else None
            ),
        )


class FareQuoteSerializer(serializers.Serializer):
    """Input for a fare quote; ``when`` defaults to now."""
    pickup = serializers.CharField(max_length=255)
    destination = serializers.CharField(max_length=255)
    ride_kind = serializers.ChoiceField(
        choices=[kind.value for kind in RideKind], default=RideKind.SOLO.value
    )
    when = serializers.DateTimeField(required=False, allow_null=True)

    def validate(self, attrs):
        if attrs["pickup"].strip() == attrs["destination"].strip():
            raise serializers.ValidationError("Pickup and destination must differ.")
        return attrs


class KnownRouteSerializer(serializers.Serializer):
    pickup = serializers.CharField()
    destination = serializers.CharField()
    distance_km = serializers.FloatField()
    duration_min = serializers.FloatField()


def known_routes():
    return [
        {"pickup": pickup, "destination": destination, "distance_km": km, "duration_min": minutes}
        for (pickup, destination), (km, minutes) in sorted(
            (tuple(key.split("_", 1)), figures) for key, figures in ROUTE_TABLE.items()
        )
    ]
