from django.core.management.base import BaseCommand
from realtime.store import get_entity_store
from services.ride_management import expire_stale_scheduled_rides


class Command(BaseCommand):
    help = "Cancel scheduled rides whose pickup time passed before any driver confirmed them."

    def handle(self, *args, **options):
        expired = expire_stale_scheduled_rides(get_entity_store())

        self.stdout.write(
            self.style.SUCCESS(f"Expired {len(expired)} scheduled ride(s).")
        )
        for ride_id in expired:
            self.stdout.write(f"  {ride_id}")
