from datetime import timedelta

from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from realtime.connectivity import ConnectivityMonitor, reset_connectivity_monitor
from realtime.store import MemoryEntityStore, reset_entity_store
from services.coordinator import RideCoordinator
from services.ride_management import RideDetails

from .views import (
	DriverAcceptWaitlistedView,
	DriverCompleteRideView,
	DriverConfirmScheduledView,
	DriverCurrentView,
	DriverHandleRequestView,
	DriverLocationUpdateView,
	DriverOnboardingView,
	DriverRideRequestsView,
	DriverStartRideView,
	DriverStatusToggleView,
	DriverWaitlistView,
)


class DriverApiTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.store = MemoryEntityStore()
		reset_entity_store(self.store)
		reset_connectivity_monitor(ConnectivityMonitor(self.store))

		self.rider = User.objects.create_user(
			username='rider',
			password='pass1234',
			role='rider',
			phone_number='9000000000'
		)
		self.driver_one = User.objects.create_user(
			username='driver_one',
			password='driver1234',
			role='driver',
			phone_number='9000000001'
		)
		self.driver_two = User.objects.create_user(
			username='driver_two',
			password='driver1234',
			role='driver',
			phone_number='9000000002'
		)

	def tearDown(self):
		reset_entity_store(None)
		reset_connectivity_monitor(None)

	def call(self, view_class, method="post", data=None, user=None, **kwargs):
		request = getattr(self.factory, method)('/', data or {}, format='json')
		force_authenticate(request, user=user or self.driver_one)
		return view_class.as_view()(request, **kwargs)

	def go_online(self, user=None):
		response = self.call(DriverStatusToggleView, user=user)
		self.assertTrue(response.data["is_online"])
		return response

	def rider_books(self, **overrides):
		values = {"pickup": "MBU Main Gate", "destination": "Tirupati Railway Station"}
		values.update(overrides)
		return RideCoordinator.for_user(self.rider).book_ride(RideDetails(**values)).ride


class StatusTests(DriverApiTestCase):
	def test_toggle_online_and_back(self):
		online = self.call(DriverStatusToggleView)
		offline = self.call(DriverStatusToggleView)

		self.assertEqual(online.status_code, 200)
		self.assertTrue(online.data["is_online"])
		self.assertFalse(offline.data["is_online"])
		self.assertFalse(self.store.read(f"drivers/{self.driver_one.store_id}/is_online"))

	def test_coming_online_picks_up_waitlisted_rider(self):
		RideCoordinator.for_user(self.rider).join_waitlist(
			RideDetails(pickup="MBU Main Gate", destination="Central Mall")
		)

		response = self.go_online()

		self.assertEqual(response.data["matched_rider_id"], self.rider.store_id)
		self.assertEqual(response.data["ride"]["status"], "Active")
		self.assertIsNone(self.store.read("waitlist"))

	def test_riders_are_forbidden(self):
		response = self.call(DriverStatusToggleView, user=self.rider)

		self.assertEqual(response.status_code, 403)

	def test_location_update(self):
		response = self.call(DriverLocationUpdateView, data={"latitude": 13.63, "longitude": 79.42})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(
			self.store.read(f"drivers/{self.driver_one.store_id}/location"),
			{"lat": 13.63, "lng": 79.42},
		)

	def test_location_out_of_range(self):
		response = self.call(DriverLocationUpdateView, data={"latitude": 200, "longitude": 79.42})

		self.assertEqual(response.status_code, 400)

	def test_onboarding(self):
		response = self.call(DriverOnboardingView, data={
			"vehicle_details": {"make": "Tata", "model": "Nexon EV", "license_plate": "AP-03-1234"},
			"is_ev": True,
		})
		current = self.call(DriverCurrentView, method="get")

		self.assertEqual(response.status_code, 200)
		self.assertTrue(current.data["profile"]["is_verified"])
		self.assertTrue(current.data["profile"]["is_ev"])
		self.assertEqual(current.data["user"]["username"], "driver_one")

	def test_onboarding_needs_vehicle_details(self):
		response = self.call(DriverOnboardingView, data={"vehicle_details": {"make": "Tata"}})

		self.assertEqual(response.status_code, 400)


class RideRequestTests(DriverApiTestCase):
	def test_offline_driver_sees_no_requests(self):
		self.rider_books()

		response = self.call(DriverRideRequestsView, method="get")

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data["rides"], [])

	def test_online_driver_sees_and_accepts(self):
		ride = self.rider_books()
		self.go_online()

		listed = self.call(DriverRideRequestsView, method="get")
		accepted = self.call(DriverHandleRequestView, ride_id=ride.id, decision="accept")

		self.assertEqual([item["id"] for item in listed.data["rides"]], [ride.id])
		self.assertEqual(accepted.status_code, 200)
		self.assertEqual(accepted.data["ride"]["status"], "Active")
		self.assertEqual(accepted.data["ride"]["driver_id"], self.driver_one.store_id)
		self.assertIsNone(self.store.read(f"ride-requests/{ride.id}"))

	def test_second_driver_loses_the_race(self):
		ride = self.rider_books()
		self.go_online()
		self.go_online(user=self.driver_two)
		self.call(DriverHandleRequestView, ride_id=ride.id, decision="accept")

		response = self.call(DriverHandleRequestView, user=self.driver_two, ride_id=ride.id, decision="accept")

		self.assertEqual(response.status_code, 409)
		self.assertEqual(self.store.read(f"rides/{ride.id}/driver_id"), self.driver_one.store_id)

	def test_offline_driver_cannot_accept(self):
		ride = self.rider_books()

		response = self.call(DriverHandleRequestView, ride_id=ride.id, decision="accept")

		self.assertEqual(response.status_code, 409)

	def test_decline_hides_the_request_for_this_driver_only(self):
		ride = self.rider_books()
		self.go_online()
		self.go_online(user=self.driver_two)

		declined = self.call(DriverHandleRequestView, ride_id=ride.id, decision="decline")
		mine = self.call(DriverRideRequestsView, method="get")
		theirs = self.call(DriverRideRequestsView, method="get", user=self.driver_two)

		self.assertEqual(declined.status_code, 200)
		self.assertEqual(mine.data["rides"], [])
		self.assertEqual([item["id"] for item in theirs.data["rides"]], [ride.id])

	def test_unknown_ride(self):
		self.go_online()

		response = self.call(DriverHandleRequestView, ride_id="missing", decision="accept")

		self.assertEqual(response.status_code, 404)


class WaitlistTests(DriverApiTestCase):
	def test_list_and_accept_waitlisted_rider(self):
		RideCoordinator.for_user(self.rider).join_waitlist(
			RideDetails(pickup="MBU Main Gate", destination="Central Mall")
		)
		self.store.write(f"drivers/{self.driver_one.store_id}/is_online", True)

		listed = self.call(DriverWaitlistView, method="get")
		accepted = self.call(DriverAcceptWaitlistedView, rider_id=self.rider.store_id)

		self.assertEqual([item["rider_id"] for item in listed.data["waitlist"]], [self.rider.store_id])
		self.assertEqual(accepted.status_code, 200)
		self.assertEqual(accepted.data["ride"]["rider_id"], self.rider.store_id)

	def test_rider_no_longer_waiting(self):
		self.go_online()

		response = self.call(DriverAcceptWaitlistedView, rider_id=self.rider.store_id)

		self.assertEqual(response.status_code, 409)


class RideProgressTests(DriverApiTestCase):
	def test_complete_without_ride(self):
		response = self.call(DriverCompleteRideView)

		self.assertEqual(response.status_code, 404)

	def test_accept_and_complete(self):
		ride = self.rider_books()
		self.go_online()
		self.call(DriverHandleRequestView, ride_id=ride.id, decision="accept")

		response = self.call(DriverCompleteRideView)

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data["ride"]["status"], "Completed")
		self.assertEqual(response.data["co2_savings"], 0.2)
		driver = self.store.read(f"drivers/{self.driver_one.store_id}")
		self.assertEqual(driver["total_rides"], 1)
		self.assertNotIn("current_ride_id", driver)

	def test_confirm_then_start_scheduled_ride(self):
		ride = self.rider_books(booking_kind="Scheduled", scheduled_time=timezone.now() + timedelta(hours=2))
		self.go_online()

		confirmed = self.call(DriverConfirmScheduledView, ride_id=ride.id)
		started = self.call(DriverStartRideView, ride_id=ride.id)

		self.assertEqual(confirmed.status_code, 200)
		self.assertEqual(confirmed.data["ride"]["status"], "Confirmed")
		self.assertEqual(started.status_code, 200)
		self.assertEqual(started.data["ride"]["status"], "Active")
		self.assertEqual(
			self.store.read(f"drivers/{self.driver_one.store_id}/current_ride_id"), ride.id
		)

	def test_only_scheduled_rides_are_confirmed(self):
		ride = self.rider_books()
		self.go_online()

		response = self.call(DriverConfirmScheduledView, ride_id=ride.id)

		self.assertEqual(response.status_code, 400)

	def test_other_driver_cannot_start(self):
		ride = self.rider_books(booking_kind="Scheduled", scheduled_time=timezone.now() + timedelta(hours=2))
		self.go_online()
		self.call(DriverConfirmScheduledView, ride_id=ride.id)

		response = self.call(DriverStartRideView, user=self.driver_two, ride_id=ride.id)

		self.assertEqual(response.status_code, 403)
