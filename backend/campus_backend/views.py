from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from realtime.connectivity import get_connectivity_monitor
from realtime.store import StoreError, get_entity_store
from rides.models import QueuedBooking
from rides.tasks import expire_scheduled_rides_task


def _check_entity_store():
    try:
        if get_entity_store().ping():
            return "healthy"
        return "unhealthy: ping failed"
    except StoreError as e:
        return f"unhealthy: {e}"


def _check_channel_layer():
    if get_channel_layer() is None:
        return "unhealthy: no channel layer"
    return "healthy"


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """
    Health check endpoint for monitoring system status.

    Reports the entity store, the channel layer and the Celery task
    registry, plus how many bookings wait in the offline queue. The
    connectivity flag is reported as last observed; checking here does not
    change it.
    """
    services = {
        "entity_store": _check_entity_store(),
        "channels": _check_channel_layer(),
        "celery": "healthy" if expire_scheduled_rides_task.name else "unhealthy: task not registered",
        "connectivity": "online" if get_connectivity_monitor().is_online() else "offline",
    }

    try:
        services["queued_bookings"] = QueuedBooking.objects.count()
        services["database"] = "healthy"
    except Exception as e:
        services["database"] = f"unhealthy: {e}"

    checked = ("entity_store", "channels", "celery", "database")
    healthy = all(services[name] == "healthy" for name in checked)

    return Response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
