from rest_framework import serializers
from .models import User


class UserSerializer(serializers.ModelSerializer):
    store_id = serializers.CharField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "store_id",
            "username",
            "email",
            "role",
            "phone_number",
        ]
        read_only_fields = ["id", "store_id", "role"]
