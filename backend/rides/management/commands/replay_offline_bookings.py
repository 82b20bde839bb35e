from django.core.management.base import BaseCommand
from rides.tasks import replay_offline_bookings_task


class Command(BaseCommand):
    help = "Submit bookings that were queued while the ride service was unreachable."

    def add_arguments(self, parser):
        parser.add_argument(
            "--rider",
            type=str,
            default=None,
            help="Only replay the queue of this rider id (default: every rider).",
        )

    def handle(self, *args, **options):
        submitted = replay_offline_bookings_task(rider_id=options["rider"])

        total = sum(submitted.values())
        self.stdout.write(
            self.style.SUCCESS(
                f"Submitted {total} queued booking(s) for {len(submitted)} rider(s)."
            )
        )
