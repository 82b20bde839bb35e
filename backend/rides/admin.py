"""Tells what to show in the Django admin interface for rides app"""

from django.contrib import admin
from .models import QueuedBooking, RideHistoryCache


@admin.register(QueuedBooking)
class QueuedBookingAdmin(admin.ModelAdmin):
    """Bookings waiting for the store to come back"""
    list_display = ['id', 'rider_id', 'queued_at']
    search_fields = ['rider_id']
    readonly_fields = ['queued_at']
    date_hierarchy = 'queued_at'


@admin.register(RideHistoryCache)
class RideHistoryCacheAdmin(admin.ModelAdmin):
    list_display = ("rider_id", "refreshed_at")
    search_fields = ("rider_id",)
