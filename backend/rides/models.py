from django.db import models


class QueuedBooking(models.Model):
    """A ride request made while the store was unreachable, awaiting replay."""

    rider_id = models.CharField(max_length=64, db_index=True)

    # RideDetails record as it would have been submitted
    payload = models.JSONField()

    queued_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'queued_bookings'
        ordering = ['queued_at', 'id']

    def __str__(self):
        return f"Queued booking #{self.id} - rider {self.rider_id}"


class RideHistoryCache(models.Model):
    """Last known list of a rider's finished rides, served when the store is down."""

    rider_id = models.CharField(max_length=64, unique=True)
    rides = models.JSONField(default=list)
    refreshed_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'ride_history_cache'

    def __str__(self):
        return f"Ride history for rider {self.rider_id} ({len(self.rides)} rides)"
