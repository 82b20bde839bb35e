from datetime import timedelta
from unittest.mock import Mock

from django.test import TestCase

from realtime.connectivity import ConnectivityMonitor
from rides.models import QueuedBooking, RideHistoryCache
from services.coordinator import RideCoordinator, drivers_available
from services.ride_management import ActiveRideExistsError, PreconditionError, RideStatus

from .helpers import MORNING, go_online, make_store, station_trip


class CoordinatorTestCase(TestCase):
	def setUp(self):
		self.store = make_store(riders=("r1",), drivers=("d1",))
		self.monitor = ConnectivityMonitor(self.store)
		self.notifier = Mock()
		self.now = MORNING
		self.rider = self.coordinator("r1", "rider")
		self.driver = self.coordinator("d1", "driver")

	def coordinator(self, actor_id, role, **kwargs):
		return RideCoordinator(
			actor_id,
			role,
			store=self.store,
			connectivity=self.monitor,
			notifier=self.notifier,
			clock=lambda: self.now,
			**kwargs
		)


class RoleAndErrorTests(CoordinatorTestCase):
	def test_driver_cannot_book(self):
		result = self.driver.book_ride(station_trip())

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, "not_permitted")
		self.assertIsNone(self.store.read("rides"))

	def test_rider_cannot_complete_or_toggle(self):
		self.assertEqual(self.rider.complete_ride().error_code, "not_permitted")
		self.assertEqual(self.rider.toggle_driver_status().error_code, "not_permitted")
		self.assertFalse(self.store.read("drivers/d1/is_online"))

	def test_cancelling_another_riders_ride_is_a_silent_no_op(self):
		ride = self.rider.book_ride(station_trip()).ride
		self.store.write("riders/r2", {"name": "other", "active_ride_id": ride.id})
		other = self.coordinator("r2", "rider")

		result = other.cancel_ride("Not mine")

		self.assertEqual(result.error_code, "not_permitted")
		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Pending")

	def test_store_failure_is_reported_not_raised(self):
		self.store.available = False

		result = self.rider.book_ride(station_trip())

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, "store_error")
		self.assertFalse(self.monitor.is_online())
		self.notifier.assert_called_once()
		self.assertEqual(self.notifier.call_args.kwargs["level"], "error")

	def test_domain_errors_propagate(self):
		self.rider.book_ride(station_trip())
		with self.assertRaises(ActiveRideExistsError):
			self.rider.book_ride(station_trip())


class BookingTests(CoordinatorTestCase):
	def test_request_ride_waitlists_when_no_driver_is_free(self):
		self.assertFalse(drivers_available(self.store, station_trip()))

		result = self.rider.request_ride(station_trip())

		self.assertEqual(result.extra["position"], 1)
		self.assertIsNone(self.store.read("rides"))
		self.assertTrue(self.store.read("riders/r1/is_on_waitlist"))

	def test_request_ride_books_when_a_driver_is_free(self):
		go_online(self.store, "d1")

		result = self.rider.request_ride(station_trip())

		self.assertEqual(result.ride.status, RideStatus.PENDING)
		self.assertIsNone(self.store.read("waitlist"))

	def test_full_ride_through_the_facade(self):
		go_online(self.store, "d1")
		ride = self.rider.book_ride(station_trip()).ride

		self.assertEqual([r.id for r in self.driver.visible_requests().extra["rides"]], [ride.id])
		self.assertTrue(self.driver.handle_ride_request(ride.id, accept=True).success)
		completed = self.driver.complete_ride()
		rating = self.rider.submit_rating(ride.id, "d1", 4, "Good")

		self.assertEqual(completed.ride.status, RideStatus.COMPLETED)
		self.assertTrue(rating.success)
		self.notifier.assert_any_call("rider", "r1", "Achievement Unlocked!", "First Journey", level="success")

	def test_client_state_follows_active_ride(self):
		state = self.rider.watch()
		ride = self.rider.book_ride(station_trip()).ride

		self.assertEqual(state.state.active_ride.id, ride.id)
		self.assertEqual(state.state.rider.active_ride_id, ride.id)

		self.rider.cancel_ride("Plans changed")
		self.assertIsNone(state.state.active_ride)
		self.rider.close()

	def test_client_state_tracks_connectivity_and_releases_on_close(self):
		subscribers_before = self.store.subscriber_count()
		state = self.rider.watch(replay_on_reconnect=False)
		self.rider.book_ride(station_trip())

		self.monitor.set_online(False)
		self.assertFalse(state.state.is_online)
		self.rider.book_ride(station_trip(destination="Central Mall"))
		self.monitor.set_online(True)

		self.assertTrue(state.state.is_online)
		self.assertEqual(QueuedBooking.objects.filter(rider_id="r1").count(), 1)
		self.rider.close()
		self.assertEqual(self.store.subscriber_count(), subscribers_before)


class OfflineQueueTests(CoordinatorTestCase):
	def test_booking_while_offline_is_queued(self):
		self.monitor.set_online(False)

		result = self.rider.book_ride(station_trip())

		self.assertTrue(result.success)
		self.assertTrue(result.extra["queued"])
		self.assertEqual(result.extra["queue_length"], 1)
		self.assertIsNone(self.store.read("rides"))
		self.assertEqual(QueuedBooking.objects.filter(rider_id="r1").count(), 1)

	def test_invalid_booking_is_not_queued(self):
		self.monitor.set_online(False)

		with self.assertRaises(PreconditionError):
			self.rider.book_ride(station_trip(booking_kind="Scheduled"))
		self.assertEqual(QueuedBooking.objects.count(), 0)

	def test_reconnect_books_every_queued_ride_in_order(self):
		self.rider.watch()
		self.monitor.set_online(False)
		for destination in ("Central Mall", "PVR Cinemas", "Tirupati Railway Station"):
			self.rider.book_ride(station_trip(destination=destination))

		self.monitor.set_online(True)

		ride_ids = sorted(self.store.read("rides"))
		self.assertEqual(len(ride_ids), 3)
		self.assertEqual(
			[self.store.read(f"rides/{ride_id}/destination") for ride_id in ride_ids],
			["Central Mall", "PVR Cinemas", "Tirupati Railway Station"],
		)
		self.assertEqual(
			[self.store.read(f"rides/{ride_id}/status") for ride_id in ride_ids],
			["Cancelled", "Cancelled", "Pending"],
		)
		self.assertEqual(self.store.read(f"rides/{ride_ids[0]}/cancellation_reason"), "superseded")
		self.assertEqual(self.store.read("riders/r1/active_ride_id"), ride_ids[-1])
		self.assertEqual(list(self.store.read("ride-requests")), [ride_ids[-1]])
		self.assertEqual(QueuedBooking.objects.filter(rider_id="r1").count(), 0)
		self.assertTrue(self.rider.state.state.is_online)
		self.rider.close()

	def test_replay_drops_booking_when_rider_already_has_a_ride(self):
		self.rider.book_ride(station_trip(destination="Central Mall"))
		self.monitor.set_online(False)
		self.rider.book_ride(station_trip(destination="PVR Cinemas"))
		self.monitor.set_online(True)

		result = self.rider.replay_offline_bookings()

		self.assertEqual(result.submitted, [])
		self.assertEqual(len(result.dropped), 1)
		self.assertTrue(result.completed)
		self.assertEqual(len(self.store.read("rides")), 1)
		self.notifier.assert_any_call(
			"rider", "r1", "Queued ride not sent",
			"1 queued ride request(s) could no longer be booked and were removed.",
			level="warning",
		)

	def test_replay_drops_bookings_that_expired_while_offline(self):
		self.monitor.set_online(False)
		self.rider.book_ride(station_trip(
			booking_kind="Scheduled", scheduled_time=MORNING + timedelta(minutes=10)))
		self.monitor.set_online(True)
		self.now = MORNING + timedelta(hours=1)

		result = self.rider.replay_offline_bookings()

		self.assertEqual(len(result.dropped), 1)
		self.assertEqual(result.submitted, [])
		self.assertTrue(result.completed)
		self.assertEqual(QueuedBooking.objects.count(), 0)

	def test_replay_stops_when_store_is_down(self):
		self.monitor.set_online(False)
		self.rider.book_ride(station_trip())
		self.store.available = False

		result = self.rider.replay_offline_bookings()

		self.assertFalse(result.completed)
		self.assertEqual(result.remaining, 1)


class RideHistoryTests(CoordinatorTestCase):
	def test_history_is_cached_and_served_offline(self):
		go_online(self.store, "d1")
		ride = self.rider.book_ride(station_trip()).ride
		self.driver.handle_ride_request(ride.id, accept=True)
		self.driver.complete_ride()

		fresh = self.rider.ride_history()

		self.assertFalse(fresh.extra["cached"])
		self.assertEqual([r["id"] for r in fresh.extra["rides"]], [ride.id])
		self.assertTrue(RideHistoryCache.objects.filter(rider_id="r1").exists())

		self.store.available = False
		cached = self.rider.ride_history()

		self.assertTrue(cached.success)
		self.assertTrue(cached.extra["cached"])
		self.assertEqual([r["id"] for r in cached.extra["rides"]], [ride.id])

	def test_no_cache_and_no_store(self):
		self.store.available = False

		result = self.rider.ride_history()

		self.assertFalse(result.success)
		self.assertEqual(result.error_code, "store_error")
