"""Rides app configuration."""

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class RidesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'rides'

    def ready(self):
        # Queued bookings go out as soon as the store is reachable again.
        from realtime.connectivity import get_connectivity_monitor
        get_connectivity_monitor().on_online(schedule_offline_replay)


def schedule_offline_replay():
    from rides.tasks import replay_offline_bookings_task

    try:
        replay_offline_bookings_task.delay()
    except Exception:
        logger.exception("Could not schedule offline booking replay; running inline")
        replay_offline_bookings_task()
