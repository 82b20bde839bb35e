"""
Durable per-rider queue of bookings made while the store was unreachable.

Entries are replayed strictly in the order they were queued. Each entry is
deleted only after its submission succeeds or it is found unbookable, so a
store failure part-way through leaves the rest queued for the next replay
(at-least-once delivery).
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from django.db import transaction

from realtime.store import StoreError
from rides.models import QueuedBooking
from services.ride_management.exceptions import ActiveRideExistsError, PreconditionError, RideServiceError
from services.ride_management.records import RideDetails
from services.ride_management.ride_lifecycle import RideResult

logger = logging.getLogger(__name__)


@dataclass
class ReplayResult:
    """Outcome of one replay pass."""
    submitted: List[str] = field(default_factory=list)
    dropped: List[int] = field(default_factory=list)
    remaining: int = 0
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.error is None and self.remaining == 0


class OfflineBookingQueue:
    """FIFO of ``RideDetails`` payloads for one rider, backed by ``QueuedBooking`` rows."""

    def __init__(self, rider_id: str):
        self.rider_id = str(rider_id)

    def _queryset(self):
        return QueuedBooking.objects.filter(rider_id=self.rider_id).order_by('queued_at', 'id')

    def enqueue(self, details: RideDetails) -> QueuedBooking:
        entry = QueuedBooking.objects.create(rider_id=self.rider_id, payload=details.to_record())
        logger.info("Queued offline booking #%s for rider %s", entry.id, self.rider_id)
        return entry

    def entries(self) -> List[QueuedBooking]:
        return list(self._queryset())

    def __len__(self) -> int:
        return self._queryset().count()

    def clear(self) -> int:
        deleted, _ = self._queryset().delete()
        return deleted

    def replay(self, submit: Callable[[RideDetails], RideResult]) -> ReplayResult:
        """
        Submit queued bookings oldest first through ``submit``.

        Entries that can no longer be booked are dropped: a scheduled time
        that passed while offline, or a ride the rider already holds. Any
        other failure stops the pass and keeps that entry and everything
        after it.
        """
        result = ReplayResult()

        while True:
            with transaction.atomic():
                entry = self._queryset().select_for_update().first()
                if entry is None:
                    break
                entry_id = entry.id

                try:
                    outcome = submit(RideDetails.from_record(entry.payload))
                except (PreconditionError, ActiveRideExistsError) as exc:
                    logger.warning("Dropping queued booking #%s for rider %s: %s",
                                   entry_id, self.rider_id, exc)
                    result.dropped.append(entry_id)
                    entry.delete()
                    continue
                except (RideServiceError, StoreError) as exc:
                    logger.warning("Replay stopped at queued booking #%s for rider %s: %s",
                                   entry_id, self.rider_id, exc)
                    result.error = str(exc)
                    break

                if outcome is not None and not outcome.success:
                    result.error = outcome.message or "Submission failed"
                    break

                entry.delete()
                ride = outcome.ride if outcome is not None else None
                result.submitted.append(ride.id if ride else str(entry_id))

        result.remaining = len(self)
        if result.submitted or result.dropped:
            logger.info("Replayed %d queued booking(s) for rider %s, %d remaining",
                        len(result.submitted), self.rider_id, result.remaining)
        return result
