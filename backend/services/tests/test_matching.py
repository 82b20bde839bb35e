from datetime import timedelta
from unittest.mock import patch

from django.test import SimpleTestCase

from services.matching import (
	accept_ride_request,
	decline_ride_request,
	join_waitlist,
	leave_waitlist,
	list_waitlist,
	match_waitlisted_rider,
	toggle_driver_status,
	update_driver_location,
	visible_requests,
	waitlist_position,
)
from services.ride_management import (
	ActiveRideExistsError,
	Coordinates,
	DriverNotAvailableError,
	RideNotAvailableError,
	RideNotFoundError,
	RideStatus,
	create_ride_request,
)
from services.ride_management.profiles import read_ride

from .helpers import MORNING, go_online, make_store, station_trip

MAIN_GATE = Coordinates(lat=13.6288, lng=79.4192)
NEAR_MAIN_GATE = Coordinates(lat=13.6290, lng=79.4195)
ACROSS_TOWN = Coordinates(lat=13.6500, lng=79.4500)


class VisibleRequestsTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store(riders=("r1", "r2", "r3"), drivers=("d1", "d2"))
		go_online(self.store, "d1", "d2")

	def test_offline_driver_sees_nothing(self):
		create_ride_request(self.store, "r1", station_trip(), MORNING)
		self.store.write("drivers/d1/is_online", False)

		self.assertEqual(visible_requests(self.store, "d1", MORNING), [])

	def test_scheduled_requests_appear_inside_window_only(self):
		soon = create_ride_request(self.store, "r1", station_trip(
			booking_kind="Scheduled", scheduled_time=MORNING + timedelta(minutes=20)), MORNING).ride
		later = create_ride_request(self.store, "r2", station_trip(
			booking_kind="Scheduled", scheduled_time=MORNING + timedelta(hours=2)), MORNING).ride

		ids = [ride.id for ride in visible_requests(self.store, "d1", MORNING)]

		self.assertIn(soon.id, ids)
		self.assertNotIn(later.id, ids)
		later_ids = [ride.id for ride in visible_requests(self.store, "d1", MORNING + timedelta(hours=1, minutes=45))]
		self.assertIn(later.id, later_ids)

	def test_closest_pickup_first(self):
		update_driver_location(self.store, "d1", MAIN_GATE.lat, MAIN_GATE.lng)
		far = create_ride_request(self.store, "r1", station_trip(pickup_coords=ACROSS_TOWN), MORNING).ride
		unknown = create_ride_request(self.store, "r2", station_trip(), MORNING).ride
		near = create_ride_request(self.store, "r3", station_trip(pickup_coords=NEAR_MAIN_GATE), MORNING).ride

		ids = [ride.id for ride in visible_requests(self.store, "d1", MORNING)]

		self.assertEqual(ids, [near.id, far.id, unknown.id])

	def test_decline_hides_request_from_that_driver_only(self):
		ride = create_ride_request(self.store, "r1", station_trip(), MORNING).ride

		decline_ride_request(self.store, "d1", ride.id)

		self.assertEqual(visible_requests(self.store, "d1", MORNING), [])
		self.assertEqual([r.id for r in visible_requests(self.store, "d2", MORNING)], [ride.id])
		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Pending")


class AcceptRideTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store(riders=("r1", "r2"), drivers=("d1", "d2"))
		go_online(self.store, "d1", "d2")
		self.ride = create_ride_request(self.store, "r1", station_trip(), MORNING).ride

	def test_accept_assigns_driver_and_closes_request(self):
		result = accept_ride_request(self.store, "d1", self.ride.id, MORNING)

		self.assertEqual(result.ride.status, RideStatus.ACTIVE)
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/driver_id"), "d1")
		self.assertEqual(self.store.read("drivers/d1/current_ride_id"), self.ride.id)
		self.assertIsNone(self.store.read(f"ride-requests/{self.ride.id}"))
		self.assertEqual(visible_requests(self.store, "d2", MORNING), [])

	def test_second_driver_loses_race(self):
		stale = read_ride(self.store, self.ride.id)
		accept_ride_request(self.store, "d1", self.ride.id, MORNING)

		# d2 read the request before d1's write landed
		with patch("services.matching.open_requests.read_ride", return_value=stale):
			with self.assertRaisesMessage(RideNotAvailableError, "Another driver accepted this ride first"):
				accept_ride_request(self.store, "d2", self.ride.id, MORNING)

		self.assertEqual(self.store.read(f"rides/{self.ride.id}/driver_id"), "d1")
		self.assertIsNone(self.store.read("drivers/d2/current_ride_id"))

	def test_busy_driver_cannot_accept(self):
		accept_ride_request(self.store, "d1", self.ride.id, MORNING)
		other = create_ride_request(self.store, "r2", station_trip(), MORNING).ride

		with self.assertRaises(DriverNotAvailableError):
			accept_ride_request(self.store, "d1", other.id, MORNING)
		self.assertEqual(self.store.read(f"rides/{other.id}/status"), "Pending")

	def test_offline_driver_cannot_accept(self):
		self.store.write("drivers/d2/is_online", False)

		with self.assertRaises(DriverNotAvailableError):
			accept_ride_request(self.store, "d2", self.ride.id, MORNING)

	def test_accept_clears_other_drivers_dismissals(self):
		decline_ride_request(self.store, "d2", self.ride.id)

		accept_ride_request(self.store, "d1", self.ride.id, MORNING)

		self.assertIsNone(self.store.read("dismissals"))


class WaitlistTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store(riders=("r1", "r2", "r3"), drivers=("d1", "d2"))

	def join_all(self):
		for rider_id in ("r1", "r2", "r3"):
			join_waitlist(self.store, rider_id, station_trip(), MORNING)

	def test_join_records_entry_and_flag(self):
		result = join_waitlist(self.store, "r1", station_trip(), MORNING)

		self.assertEqual(result.extra["position"], 1)
		self.assertTrue(self.store.read("riders/r1/is_on_waitlist"))
		self.assertEqual(self.store.read("waitlist/r1/ride_details/fare"), 195)
		self.assertIsInstance(self.store.read("waitlist/r1/timestamp"), int)

	def test_cannot_join_twice_or_book_while_waiting(self):
		join_waitlist(self.store, "r1", station_trip(), MORNING)

		with self.assertRaises(ActiveRideExistsError):
			join_waitlist(self.store, "r1", station_trip(), MORNING)
		with self.assertRaises(ActiveRideExistsError):
			create_ride_request(self.store, "r1", station_trip(), MORNING)

	def test_waitlist_is_first_in_first_out(self):
		self.join_all()

		self.assertEqual([item.rider_id for item in list_waitlist(self.store)], ["r1", "r2", "r3"])
		self.assertEqual(waitlist_position(self.store, "r3"), 3)

		result = toggle_driver_status(self.store, "d1", MORNING)

		self.assertEqual(result.extra["matched_rider_id"], "r1")
		self.assertTrue(result.extra["is_online"])
		self.assertEqual(result.ride.status, RideStatus.ACTIVE)
		self.assertEqual(self.store.read("riders/r1/active_ride_id"), result.ride.id)
		self.assertFalse(self.store.read("riders/r1/is_on_waitlist"))
		self.assertEqual(self.store.read("drivers/d1/current_ride_id"), result.ride.id)
		self.assertEqual([item.rider_id for item in list_waitlist(self.store)], ["r2", "r3"])

		second = toggle_driver_status(self.store, "d2", MORNING)
		self.assertEqual(second.extra["matched_rider_id"], "r2")

	def test_going_online_with_empty_waitlist(self):
		result = toggle_driver_status(self.store, "d1", MORNING)

		self.assertIsNone(result.ride)
		self.assertTrue(self.store.read("drivers/d1/is_online"))

		toggle_driver_status(self.store, "d1", MORNING)
		self.assertFalse(self.store.read("drivers/d1/is_online"))

	def test_driver_picks_specific_rider(self):
		self.join_all()
		go_online(self.store, "d1")

		result = match_waitlisted_rider(self.store, "d1", "r2", MORNING)

		self.assertEqual(result.ride.rider_id, "r2")
		self.assertEqual(result.ride.driver_id, "d1")
		self.assertEqual([item.rider_id for item in list_waitlist(self.store)], ["r1", "r3"])

	def test_taken_rider_cannot_be_matched_again(self):
		self.join_all()
		go_online(self.store, "d1", "d2")
		match_waitlisted_rider(self.store, "d1", "r1", MORNING)

		with self.assertRaises(RideNotAvailableError):
			match_waitlisted_rider(self.store, "d2", "r1", MORNING)

	def test_offline_driver_cannot_match(self):
		self.join_all()

		with self.assertRaises(DriverNotAvailableError):
			match_waitlisted_rider(self.store, "d1", "r1", MORNING)

	def test_leave_waitlist(self):
		join_waitlist(self.store, "r1", station_trip(), MORNING)

		leave_waitlist(self.store, "r1")

		self.assertIsNone(self.store.read("waitlist"))
		self.assertFalse(self.store.read("riders/r1/is_on_waitlist"))
		with self.assertRaises(RideNotFoundError):
			leave_waitlist(self.store, "r1")

	def test_stale_waitlist_flag_is_repaired_on_read(self):
		self.store.write("riders/r1/is_on_waitlist", True)

		with self.assertRaises(RideNotFoundError):
			leave_waitlist(self.store, "r1")
		self.assertFalse(self.store.read("riders/r1/is_on_waitlist"))

		join_waitlist(self.store, "r1", station_trip(), MORNING)
		self.assertEqual(waitlist_position(self.store, "r1"), 1)
