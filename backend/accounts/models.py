from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model with role selection"""
    RIDER = 'rider'
    DRIVER = 'driver'

    ROLE_CHOICES = [
        (RIDER, 'Rider'),
        (DRIVER, 'Driver'),
    ]

    # Role & basic info
    role = models.CharField(max_length=10, choices=ROLE_CHOICES, default=RIDER)
    phone_number = models.CharField(max_length=15, blank=True)

    class Meta:
        db_table = 'users'

    @property
    def store_id(self) -> str:
        """Key of this user's rider/driver record in the entity store."""
        return str(self.pk)

    @property
    def is_rider(self) -> bool:
        return self.role == self.RIDER

    @property
    def is_driver(self) -> bool:
        return self.role == self.DRIVER

    def __str__(self):
        return f"{self.username} ({self.get_role_display()})"
