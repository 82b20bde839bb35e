from datetime import timedelta

from django.test import SimpleTestCase

from services.matching import accept_ride_request
from services.ride_management import (
	ActiveRideExistsError,
	InvalidTransitionError,
	NotPermittedError,
	PreconditionError,
	RideNotFoundError,
	RideStatus,
	cancel_ride_by_rider,
	check_active_ride,
	confirm_scheduled_ride,
	create_ride_request,
	expire_stale_scheduled_rides,
	start_ride,
)
from services.ride_management.states import can_transition

from .helpers import MORNING, go_online, make_store, station_trip


def scheduled_trip(at):
	return station_trip(booking_kind="Scheduled", scheduled_time=at)


class RideStateMachineTests(SimpleTestCase):
	def test_terminal_states_have_no_exits(self):
		for target in RideStatus:
			self.assertFalse(can_transition(RideStatus.COMPLETED, target))
			self.assertFalse(can_transition(RideStatus.CANCELLED, target))

	def test_pending_can_skip_confirmation(self):
		self.assertTrue(can_transition(RideStatus.PENDING, RideStatus.ACTIVE))
		self.assertFalse(can_transition(RideStatus.PENDING, RideStatus.COMPLETED))


class CreateRideRequestTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store()

	def test_booking_writes_ride_broadcast_and_pointer_together(self):
		result = create_ride_request(self.store, "r1", station_trip(), MORNING)

		ride = result.ride
		self.assertTrue(result.success)
		self.assertEqual(ride.status, RideStatus.PENDING)
		self.assertEqual(ride.fare, 195)
		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Pending")
		self.assertEqual(self.store.read(f"ride-requests/{ride.id}/rider_id"), "r1")
		self.assertEqual(self.store.read("riders/r1/active_ride_id"), ride.id)

	def test_fare_sent_with_the_booking_is_replaced(self):
		result = create_ride_request(self.store, "r1", station_trip(fare=0), MORNING)

		self.assertEqual(result.ride.fare, 195)
		self.assertEqual(self.store.read(f"rides/{result.ride.id}/fare"), 195)

	def test_second_booking_is_rejected(self):
		create_ride_request(self.store, "r1", station_trip(), MORNING)

		with self.assertRaises(ActiveRideExistsError):
			create_ride_request(self.store, "r1", station_trip(destination="Central Mall"), MORNING)
		self.assertEqual(len(self.store.read("rides")), 1)

	def test_booking_while_waitlisted_is_rejected(self):
		self.store.multi_path_update({
			"waitlist/r1": {"rider_id": "r1", "timestamp": 1, "ride_details": station_trip().to_record()},
			"riders/r1/is_on_waitlist": True,
		})

		with self.assertRaises(ActiveRideExistsError):
			create_ride_request(self.store, "r1", station_trip(), MORNING)
		self.assertIsNone(self.store.read("rides"))

	def test_scheduled_ride_needs_a_future_time(self):
		with self.assertRaises(PreconditionError):
			create_ride_request(self.store, "r1", scheduled_trip(None), MORNING)
		with self.assertRaises(PreconditionError):
			create_ride_request(self.store, "r1", scheduled_trip(MORNING - timedelta(minutes=5)), MORNING)
		self.assertIsNone(self.store.read("rides"))
		self.assertIsNone(self.store.read("riders/r1/active_ride_id"))

	def test_dangling_pointer_is_healed_on_read(self):
		self.store.write("riders/r1/active_ride_id", "ghost")

		self.assertIsNone(check_active_ride(self.store, "r1"))
		self.assertIsNone(self.store.read("riders/r1/active_ride_id"))
		create_ride_request(self.store, "r1", station_trip(), MORNING)


class CancelRideTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store(riders=("r1", "r2"))
		self.ride = create_ride_request(self.store, "r1", station_trip(), MORNING).ride

	def test_cancel_pending_ride(self):
		result = cancel_ride_by_rider(self.store, "r1", "Plans changed", MORNING)

		self.assertTrue(result.success)
		self.assertFalse(result.extra["was_assigned"])
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/status"), "Cancelled")
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/cancellation_reason"), "Plans changed")
		self.assertIsNone(self.store.read(f"ride-requests/{self.ride.id}"))
		self.assertIsNone(self.store.read("riders/r1/active_ride_id"))

	def test_cancel_requires_reason(self):
		with self.assertRaises(PreconditionError):
			cancel_ride_by_rider(self.store, "r1", "   ", MORNING)
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/status"), "Pending")

	def test_cancel_without_ride(self):
		with self.assertRaises(RideNotFoundError):
			cancel_ride_by_rider(self.store, "r2", "No ride", MORNING)

	def test_cancel_someone_elses_ride(self):
		self.store.write("riders/r2/active_ride_id", self.ride.id)

		with self.assertRaises(NotPermittedError):
			cancel_ride_by_rider(self.store, "r2", "Not mine", MORNING)
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/status"), "Pending")

	def test_cancel_active_ride_frees_driver(self):
		go_online(self.store, "d1")
		accept_ride_request(self.store, "d1", self.ride.id, MORNING)

		result = cancel_ride_by_rider(self.store, "r1", "Driver too far", MORNING)

		self.assertTrue(result.extra["was_assigned"])
		self.assertIsNone(self.store.read("drivers/d1/current_ride_id"))
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/driver_id"), "d1")

	def test_cancelled_ride_cannot_be_started(self):
		go_online(self.store, "d1")
		accept_ride_request(self.store, "d1", self.ride.id, MORNING)
		cancel_ride_by_rider(self.store, "r1", "Plans changed", MORNING)

		with self.assertRaises(InvalidTransitionError):
			start_ride(self.store, "d1", self.ride.id, MORNING)


class ScheduledRideTests(SimpleTestCase):
	def setUp(self):
		self.store = make_store()
		go_online(self.store, "d1")
		self.pickup_at = MORNING + timedelta(minutes=20)
		self.ride = create_ride_request(self.store, "r1", scheduled_trip(self.pickup_at), MORNING).ride

	def test_confirm_then_start(self):
		confirm_scheduled_ride(self.store, "d1", self.ride.id, MORNING)

		self.assertEqual(self.store.read(f"rides/{self.ride.id}/status"), "Confirmed")
		self.assertTrue(self.store.read(f"drivers/d1/confirmed_rides/{self.ride.id}"))
		self.assertIsNone(self.store.read("drivers/d1/current_ride_id"))
		self.assertIsNone(self.store.read(f"ride-requests/{self.ride.id}"))
		self.assertEqual(self.store.read("riders/r1/active_ride_id"), self.ride.id)

		start_ride(self.store, "d1", self.ride.id, self.pickup_at)

		self.assertEqual(self.store.read(f"rides/{self.ride.id}/status"), "Active")
		self.assertEqual(self.store.read("drivers/d1/current_ride_id"), self.ride.id)
		self.assertIsNone(self.store.read("drivers/d1/confirmed_rides"))

	def test_only_scheduled_rides_are_confirmed(self):
		store = make_store()
		go_online(store, "d1")
		ride = create_ride_request(store, "r1", station_trip(), MORNING).ride

		with self.assertRaises(PreconditionError):
			confirm_scheduled_ride(store, "d1", ride.id, MORNING)

	def test_cancel_confirmed_ride_clears_driver_index(self):
		confirm_scheduled_ride(self.store, "d1", self.ride.id, MORNING)

		cancel_ride_by_rider(self.store, "r1", "Exam rescheduled", MORNING)

		self.assertIsNone(self.store.read("drivers/d1/confirmed_rides"))
		self.assertIsNone(self.store.read("riders/r1/active_ride_id"))

	def test_unaccepted_ride_expires_after_its_time(self):
		self.assertEqual(expire_stale_scheduled_rides(self.store, MORNING), [])

		expired = expire_stale_scheduled_rides(self.store, self.pickup_at + timedelta(minutes=1))

		self.assertEqual(expired, [self.ride.id])
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/status"), "Cancelled")
		self.assertEqual(self.store.read(f"rides/{self.ride.id}/cancellation_reason"), "expired")
		self.assertIsNone(self.store.read("riders/r1/active_ride_id"))
