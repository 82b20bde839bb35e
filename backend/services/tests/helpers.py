"""Builders shared by the service, view and task tests."""

from datetime import datetime

from django.utils import timezone

from realtime.store import MemoryEntityStore
from services.ride_management import RideDetails
from services.ride_management.profiles import ensure_driver, ensure_rider

# Monday 09:00 campus time: morning peak
MORNING = timezone.make_aware(datetime(2025, 3, 3, 9, 0))
# Same day 22:00: night bonus and night achievement
NIGHT = timezone.make_aware(datetime(2025, 3, 3, 22, 0))
# Same day 14:00: no surge, no bonus
AFTERNOON = timezone.make_aware(datetime(2025, 3, 3, 14, 0))


def make_store(riders=("r1",), drivers=("d1",)):
	store = MemoryEntityStore()
	for rider_id in riders:
		ensure_rider(store, rider_id, f"rider {rider_id}")
	for driver_id in drivers:
		ensure_driver(store, driver_id, f"driver {driver_id}")
	return store


def go_online(store, *driver_ids):
	store.multi_path_update({f"drivers/{driver_id}/is_online": True for driver_id in driver_ids})


def station_trip(**overrides):
	values = {
		"pickup": "MBU Main Gate",
		"destination": "Tirupati Railway Station",
	}
	values.update(overrides)
	return RideDetails(**values)
