from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from realtime.connectivity import ConnectivityMonitor, reset_connectivity_monitor
from realtime.store import MemoryEntityStore, reset_entity_store
from rides.models import QueuedBooking

from .views.info import RiderCurrentView, RiderRideHistoryView, RiderTransactionsView, RiderWalletTopUpView
from .views.rides import (
	RiderBookRideView,
	RiderCancelRideView,
	RiderJoinWaitlistView,
	RiderLeaveWaitlistView,
	RiderRateRideView,
	RiderWaitlistPositionView,
)

TRIP = {
	"pickup": "MBU Main Gate",
	"destination": "Tirupati Railway Station",
}


class RiderApiTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.store = MemoryEntityStore()
		self.monitor = ConnectivityMonitor(self.store)
		reset_entity_store(self.store)
		reset_connectivity_monitor(self.monitor)

		self.rider = User.objects.create_user(
			username='rider',
			password='pass1234',
			role='rider',
			phone_number='9000000000'
		)
		self.driver = User.objects.create_user(
			username='driver',
			password='driver1234',
			role='driver',
			phone_number='9000000001'
		)

	def tearDown(self):
		reset_entity_store(None)
		reset_connectivity_monitor(None)

	def call(self, view_class, method="post", data=None, user=None, **kwargs):
		request = getattr(self.factory, method)('/', data or {}, format='json')
		force_authenticate(request, user=user or self.rider)
		return view_class.as_view()(request, **kwargs)

	def book(self, **overrides):
		return self.call(RiderBookRideView, data={**TRIP, **overrides})


class BookRideTests(RiderApiTestCase):
	def test_booking_creates_pending_ride(self):
		response = self.book()

		self.assertEqual(response.status_code, 201)
		ride = response.data["ride"]
		self.assertEqual(ride["status"], "Pending")
		self.assertEqual(ride["rider_id"], self.rider.store_id)
		self.assertEqual(ride["fare"] % 5, 0)
		self.assertEqual(self.store.read(f"riders/{self.rider.store_id}/active_ride_id"), ride["id"])
		self.assertIsNotNone(self.store.read(f"ride-requests/{ride['id']}"))

	def test_fare_in_the_request_is_ignored(self):
		response = self.book(fare=0)

		self.assertEqual(response.status_code, 201)
		ride = response.data["ride"]
		self.assertGreaterEqual(ride["fare"], 150)
		self.assertEqual(self.store.read(f"rides/{ride['id']}/fare"), ride["fare"])

	def test_second_booking_conflicts(self):
		self.book()

		response = self.book(destination="Central Mall")

		self.assertEqual(response.status_code, 409)
		self.assertIn("error", response.data)

	def test_scheduled_booking_needs_a_time(self):
		response = self.book(booking_kind="Scheduled")

		self.assertEqual(response.status_code, 400)
		self.assertIn("scheduled_time", response.data)

	def test_scheduled_time_in_the_past_is_rejected(self):
		response = self.book(booking_kind="Scheduled", scheduled_time="2020-01-01T09:00:00+05:30")

		self.assertEqual(response.status_code, 400)
		self.assertIsNone(self.store.read("rides"))

	def test_unknown_ride_kind(self):
		response = self.book(ride_kind="Limousine")

		self.assertEqual(response.status_code, 400)

	def test_drivers_cannot_book(self):
		response = self.call(RiderBookRideView, data=TRIP, user=self.driver)

		self.assertEqual(response.status_code, 403)
		self.assertIsNone(self.store.read("rides"))

	def test_booking_while_offline_is_queued(self):
		self.monitor.set_online(False)

		response = self.book()

		self.assertEqual(response.status_code, 202)
		self.assertTrue(response.data["queued"])
		self.assertEqual(response.data["queue_length"], 1)
		self.assertEqual(QueuedBooking.objects.filter(rider_id=self.rider.store_id).count(), 1)

	def test_store_outage_is_503(self):
		self.call(RiderCurrentView, method="get")
		self.store.available = False

		response = self.book()

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data["error_code"], "store_error")
		self.assertFalse(self.monitor.is_online())

	def test_allow_waitlist_when_no_driver_is_free(self):
		response = self.book(allow_waitlist=True)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data["position"], 1)
		self.assertNotIn("ride", response.data)

	def test_allow_waitlist_books_when_a_driver_is_online(self):
		self.store.write(f"drivers/{self.driver.store_id}", {"name": "driver", "is_online": True})

		response = self.book(allow_waitlist=True)

		self.assertEqual(response.status_code, 201)
		self.assertEqual(response.data["ride"]["status"], "Pending")


class CancelRideTests(RiderApiTestCase):
	def test_cancel_needs_a_reason(self):
		self.book()

		response = self.call(RiderCancelRideView, data={"reason": ""})

		self.assertEqual(response.status_code, 400)

	def test_nothing_to_cancel(self):
		response = self.call(RiderCancelRideView, data={"reason": "Plans changed"})

		self.assertEqual(response.status_code, 404)

	def test_cancel_active_booking(self):
		ride_id = self.book().data["ride"]["id"]

		response = self.call(RiderCancelRideView, data={"reason": "Plans changed"})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data["ride"]["status"], "Cancelled")
		self.assertEqual(response.data["ride"]["cancellation_reason"], "Plans changed")
		self.assertIsNone(self.store.read(f"ride-requests/{ride_id}"))


class WaitlistTests(RiderApiTestCase):
	def test_join_position_leave(self):
		joined = self.call(RiderJoinWaitlistView, data=TRIP)
		position = self.call(RiderWaitlistPositionView, method="get")
		left = self.call(RiderLeaveWaitlistView)
		after = self.call(RiderWaitlistPositionView, method="get")

		self.assertEqual(joined.status_code, 201)
		self.assertEqual(position.data["position"], 1)
		self.assertEqual(left.status_code, 200)
		self.assertIsNone(after.data["position"])

	def test_cannot_join_twice(self):
		self.call(RiderJoinWaitlistView, data=TRIP)

		response = self.call(RiderJoinWaitlistView, data=TRIP)

		self.assertEqual(response.status_code, 409)


class WalletAndHistoryTests(RiderApiTestCase):
	def test_top_up_and_transactions(self):
		response = self.call(RiderWalletTopUpView, data={"amount": "150.00"})
		transactions = self.call(RiderTransactionsView, method="get")

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data["wallet_balance"], 150.0)
		self.assertEqual(len(transactions.data["transactions"]), 1)
		self.assertEqual(transactions.data["transactions"][0]["direction"], "credit")

	def test_top_up_must_be_positive(self):
		response = self.call(RiderWalletTopUpView, data={"amount": "0"})

		self.assertEqual(response.status_code, 400)

	def test_empty_history(self):
		response = self.call(RiderRideHistoryView, method="get")

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data["count"], 0)
		self.assertFalse(response.data["cached"])

	def test_history_unavailable_without_cache(self):
		self.call(RiderCurrentView, method="get")
		self.store.available = False

		response = self.call(RiderRideHistoryView, method="get")

		self.assertEqual(response.status_code, 503)

	def test_current_without_ride(self):
		response = self.call(RiderCurrentView, method="get")

		self.assertEqual(response.status_code, 200)
		self.assertFalse(response.data["has_active_ride"])
		self.assertEqual(response.data["user"]["username"], "rider")
		self.assertEqual(response.data["profile"]["name"], "rider")
		self.assertEqual(response.data["queued_bookings"], 0)

	def test_rating_unknown_ride(self):
		response = self.call(
			RiderRateRideView,
			data={"driver_id": self.driver.store_id, "rating": 5},
			ride_id="missing",
		)

		self.assertEqual(response.status_code, 404)

	def test_rating_out_of_range(self):
		response = self.call(
			RiderRateRideView,
			data={"driver_id": self.driver.store_id, "rating": 9},
			ride_id="missing",
		)

		self.assertEqual(response.status_code, 400)
