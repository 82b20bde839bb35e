from unittest.mock import patch

from django.test import SimpleTestCase

from services.matching import accept_ride_request
from services.ride_management import (
	NotPermittedError,
	PreconditionError,
	RideNotAvailableError,
	RideNotFoundError,
	create_ride_request,
)
from services.settlement import (
	add_funds,
	complete_driver_onboarding,
	compute_co2_savings,
	compute_driver_bonus,
	settle_ride,
	submit_rating,
	transaction_history,
)
from services.settlement.achievements import FIRST_RIDE, FIVE_SHARED, NIGHT_RIDE, TEN_RIDES, evaluate_achievements
from services.settlement.ratings import running_average

from .helpers import AFTERNOON, MORNING, NIGHT, go_online, make_store, station_trip


def active_ride(store, rider_id="r1", driver_id="d1", **details):
	ride = create_ride_request(store, rider_id, station_trip(**details), MORNING).ride
	accept_ride_request(store, driver_id, ride.id, MORNING)
	return ride


class IncentiveRuleTests(SimpleTestCase):
	def test_co2_savings(self):
		self.assertEqual(compute_co2_savings(False, False), 0.2)
		self.assertEqual(compute_co2_savings(True, False), 1.2)
		self.assertEqual(compute_co2_savings(True, True), 2.7)

	def test_driver_bonus(self):
		self.assertEqual(compute_driver_bonus(False, False, AFTERNOON), 0)
		self.assertEqual(compute_driver_bonus(False, False, NIGHT), 20)
		self.assertEqual(compute_driver_bonus(True, True, NIGHT), 45)

	def test_achievements_only_unlock_once(self):
		unlocked = evaluate_achievements({}, total_rides=10, shared_rides=5, completed_at=NIGHT)
		self.assertEqual({a.id for a in unlocked}, {FIRST_RIDE, TEN_RIDES, FIVE_SHARED, NIGHT_RIDE})

		earned = {FIRST_RIDE: True, NIGHT_RIDE: True}
		unlocked = evaluate_achievements(earned, total_rides=11, shared_rides=1, completed_at=NIGHT)
		self.assertEqual([a.id for a in unlocked], [TEN_RIDES])


class SettleRideTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store()
		go_online(self.store, "d1")
		self.store.multi_path_update({
			"riders/r1/wallet_balance": 500,
			"drivers/d1/is_ev": True,
			"drivers/d1/total_rides": 9,
		})

	def test_tenth_shared_ev_ride_at_night(self):
		ride = active_ride(self.store, ride_kind="Shared")
		fare = self.store.read(f"rides/{ride.id}/fare")

		result = settle_ride(self.store, "d1", now=NIGHT)

		self.assertTrue(result.success)
		self.assertEqual(result.extra["co2_savings"], 2.7)
		self.assertEqual(result.extra["bonus"], 295)
		self.assertTrue(result.extra["onboarding_bonus_awarded"])
		self.assertEqual(set(result.extra["achievements_unlocked"]), {FIRST_RIDE, NIGHT_RIDE})

		driver = self.store.read("drivers/d1")
		self.assertEqual(driver["total_rides"], 10)
		self.assertEqual(driver["earnings"], fare + 295)
		self.assertTrue(driver["onboarding_bonus_awarded"])
		self.assertNotIn("current_ride_id", driver)

		rider = self.store.read("riders/r1")
		self.assertEqual(rider["wallet_balance"], 500 - fare)
		self.assertEqual(rider["total_rides"], 1)
		self.assertEqual(rider["shared_rides"], 1)
		self.assertAlmostEqual(rider["total_co2_savings"], 2.7)
		self.assertNotIn("active_ride_id", rider)
		self.assertTrue(rider["recent_rides"][ride.id])
		self.assertTrue(rider["achievements"][NIGHT_RIDE])

		transaction = self.store.read(f"transactions/{result.extra['transaction_id']}")
		self.assertEqual(transaction["direction"], "debit")
		self.assertEqual(transaction["amount"], fare)
		self.assertEqual(transaction["description"], "Ride to Tirupati Railway Station")

		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Completed")

	def test_settling_twice_changes_nothing(self):
		ride = active_ride(self.store)
		settle_ride(self.store, "d1", now=NIGHT)
		before = self.store.dump()

		again = settle_ride(self.store, "d1", ride.id, now=NIGHT)

		self.assertTrue(again.success)
		self.assertTrue(again.extra["already_settled"])
		self.assertEqual(self.store.dump(), before)

	def test_onboarding_bonus_is_paid_once(self):
		active_ride(self.store)
		first = settle_ride(self.store, "d1", now=AFTERNOON)
		active_ride(self.store)
		second = settle_ride(self.store, "d1", now=AFTERNOON)

		self.assertTrue(first.extra["onboarding_bonus_awarded"])
		self.assertFalse(second.extra["onboarding_bonus_awarded"])
		self.assertEqual(second.extra["bonus"], 10)

	def test_completion_is_rejected_when_ride_count_moves(self):
		self.store.write("drivers/d1/total_rides", 8)
		ride = active_ride(self.store)
		real_compare_and_set = self.store.compare_and_set

		def other_completion_lands_first(expected, updates):
			self.store.atomic_increment("drivers/d1/total_rides", 1)
			return real_compare_and_set(expected, updates)

		with patch.object(self.store, "compare_and_set", side_effect=other_completion_lands_first):
			with self.assertRaises(RideNotAvailableError):
				settle_ride(self.store, "d1", now=AFTERNOON)
		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Active")
		self.assertEqual(self.store.read("drivers/d1/total_rides"), 9)

		result = settle_ride(self.store, "d1", now=AFTERNOON)

		self.assertTrue(result.extra["onboarding_bonus_awarded"])
		self.assertEqual(self.store.read("drivers/d1/total_rides"), 10)

	def test_plain_daytime_ride(self):
		self.store.multi_path_update({"drivers/d1/is_ev": False, "drivers/d1/total_rides": 0})
		active_ride(self.store)

		result = settle_ride(self.store, "d1", now=AFTERNOON)

		self.assertEqual(result.extra["bonus"], 0)
		self.assertEqual(result.extra["co2_savings"], 0.2)
		self.assertEqual(result.extra["achievements_unlocked"], [FIRST_RIDE])

	def test_nothing_to_complete(self):
		with self.assertRaises(RideNotFoundError):
			settle_ride(self.store, "d1", now=NIGHT)

	def test_other_driver_cannot_complete(self):
		ride = active_ride(self.store)
		self.store.write("drivers/d2", {"name": "other", "is_online": True})

		with self.assertRaises(NotPermittedError):
			settle_ride(self.store, "d2", ride.id, now=NIGHT)
		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Active")


class RatingTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store(riders=("r1", "r2"))
		go_online(self.store, "d1")
		self.ride = active_ride(self.store)

	def test_running_average(self):
		self.assertEqual(running_average(0.0, 0, 4), 4.0)
		self.assertEqual(running_average(4.0, 1, 5), 4.5)
		self.assertEqual(running_average(4.5, 2, 3), 4.0)

	def test_rate_completed_ride_once(self):
		settle_ride(self.store, "d1", now=AFTERNOON)

		result = submit_rating(self.store, "r1", self.ride.id, "d1", 5, "Smooth ride")

		self.assertEqual(result.extra["driver_rating"], 5.0)
		self.assertEqual(self.store.read("drivers/d1/rating_count"), 1)
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/rating"), 5)
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/feedback"), "Smooth ride")
		with self.assertRaises(RideNotAvailableError):
			submit_rating(self.store, "r1", self.ride.id, "d1", 4)
		self.assertEqual(self.store.read("drivers/d1/rating_count"), 1)

	def test_active_ride_cannot_be_rated(self):
		with self.assertRaises(RideNotAvailableError):
			submit_rating(self.store, "r1", self.ride.id, "d1", 5)

	def test_rating_bounds_and_ownership(self):
		settle_ride(self.store, "d1", now=AFTERNOON)

		with self.assertRaises(PreconditionError):
			submit_rating(self.store, "r1", self.ride.id, "d1", 6)
		with self.assertRaises(NotPermittedError):
			submit_rating(self.store, "r2", self.ride.id, "d1", 5)
		self.assertIsNone(self.store.read(f"rides/{self.ride.id}/rating"))


class WalletAndOnboardingTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store()

	def test_add_funds(self):
		result = add_funds(self.store, "r1", 250, MORNING)

		self.assertEqual(result.extra["wallet_balance"], 250)
		history = transaction_history(self.store, "r1")
		self.assertEqual(len(history), 1)
		self.assertEqual(history[0].description, "Funds added to wallet")
		self.assertEqual(history[0].direction.value, "credit")

	def test_non_positive_amount_is_rejected(self):
		for amount in (0, -50, None):
			with self.assertRaises(PreconditionError):
				add_funds(self.store, "r1", amount, MORNING)
		self.assertIsNone(self.store.read("transactions"))

	def test_history_is_newest_first(self):
		add_funds(self.store, "r1", 100, MORNING)
		add_funds(self.store, "r1", 200, AFTERNOON)

		self.assertEqual([t.amount for t in transaction_history(self.store, "r1")], [200, 100])

	def test_onboarding(self):
		complete_driver_onboarding(
			self.store, "d1", {"make": "Tata", "model": "Nexon EV", "license_plate": "AP03 AB 1234"}, is_ev=True
		)

		driver = self.store.read("drivers/d1")
		self.assertTrue(driver["is_verified"])
		self.assertTrue(driver["has_completed_onboarding"])
		self.assertTrue(driver["is_ev"])
		self.assertEqual(driver["vehicle_details"]["model"], "Nexon EV")

	def test_onboarding_needs_every_vehicle_field(self):
		with self.assertRaises(PreconditionError):
			complete_driver_onboarding(self.store, "d1", {"make": "Tata", "model": "Nexon"})
		self.assertFalse(self.store.read("drivers/d1/is_verified"))
