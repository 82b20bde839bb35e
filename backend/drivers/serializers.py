from rest_framework import serializers

from rides.serializers import CoordinatesSerializer


class VehicleDetailsSerializer(serializers.Serializer):
    make = serializers.CharField(max_length=64)
    model = serializers.CharField(max_length=64)
    license_plate = serializers.CharField(max_length=32)


class OnboardingSerializer(serializers.Serializer):
    """
    Vehicle registration submitted once by a new driver.

    Expected body:
    {
        "vehicle_details": {"make": "...", "model": "...", "license_plate": "..."},
        "is_ev": <bool>
    }
    """
    vehicle_details = VehicleDetailsSerializer()
    is_ev = serializers.BooleanField(default=False)


class LocationUpdateSerializer(CoordinatesSerializer):
    """
    Serializer for driver location updates; same shape as any coordinate pair.
    """
    pass
