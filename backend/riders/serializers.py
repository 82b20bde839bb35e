from rest_framework import serializers


class CancelRideSerializer(serializers.Serializer):
    """A cancellation must say why."""
    reason = serializers.CharField(max_length=500, trim_whitespace=True)


class RatingSerializer(serializers.Serializer):
    """
    Rating for a completed ride.

    Expected body:
    {
        "driver_id": "<driver store id>",
        "rating": 1..5,
        "feedback": "<optional text>"
    }
    """
    driver_id = serializers.CharField(max_length=64)
    rating = serializers.IntegerField(min_value=1, max_value=5)
    feedback = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=1000)


class WalletTopUpSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)

    def validate_amount(self, value):
        if value <= 0:
            raise serializers.ValidationError("Amount must be greater than zero.")
        return value
