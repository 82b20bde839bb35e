from datetime import datetime

from django.test import SimpleTestCase
from django.utils import timezone

from services.pricing import calculate_fare, get_surge_multiplier, lookup_route, round_fare
from services.pricing.fare_calculator import DEFAULT_ROUTE, MAX_SURGE_MULTIPLIER

from .helpers import AFTERNOON, MORNING


def at_hour(hour):
	return timezone.make_aware(datetime(2025, 3, 3, hour, 0))


class FareCalculatorTests(SimpleTestCase):
	def test_station_trip_in_morning_peak(self):
		fare = calculate_fare("MBU Main Gate", "Tirupati Railway Station", "Solo", when=MORNING)

		self.assertEqual(fare.base_fare, 40)
		self.assertEqual(fare.distance_charge, 80)
		self.assertEqual(fare.time_charge, 30)
		self.assertEqual(fare.surge_multiplier, 1.3)
		self.assertEqual(fare.total_fare, 195)

	def test_shared_ride_uses_lower_base_fare(self):
		fare = calculate_fare("MBU Main Gate", "Tirupati Railway Station", "Shared", when=AFTERNOON)

		self.assertEqual(fare.base_fare, 25)
		self.assertEqual(fare.surge_multiplier, 1.0)
		self.assertEqual(fare.surge_charge, 0.0)
		self.assertEqual(fare.total_fare, 135)

	def test_route_lookup_works_in_both_directions(self):
		self.assertEqual(lookup_route("Tirupati Railway Station", "MBU Main Gate"), (8, 30))
		self.assertEqual(lookup_route("Somewhere", "Elsewhere"), DEFAULT_ROUTE)

	def test_night_surge_is_capped(self):
		self.assertEqual(get_surge_multiplier(at_hour(23)), MAX_SURGE_MULTIPLIER)
		self.assertEqual(get_surge_multiplier(at_hour(3)), MAX_SURGE_MULTIPLIER)
		fare = calculate_fare("Library", "City Bus Stand", "Solo", when=at_hour(23))
		self.assertTrue(fare.is_capped)

	def test_surge_never_exceeds_cap_and_fares_are_multiples_of_five(self):
		for hour in range(24):
			for kind in ("Solo", "Shared"):
				fare = calculate_fare("Admin Block", "PVR Cinemas", kind, when=at_hour(hour))
				self.assertLessEqual(fare.surge_multiplier, MAX_SURGE_MULTIPLIER)
				self.assertEqual(fare.total_fare % 5, 0, (hour, kind, fare))

	def test_round_fare_halves_round_up(self):
		self.assertEqual(round_fare(192.4), 190)
		self.assertEqual(round_fare(197.5), 200)
		self.assertEqual(round_fare(175.5), 175)
