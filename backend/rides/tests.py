from datetime import timedelta
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from campus_backend.views import health_check
from realtime.connectivity import ConnectivityMonitor, reset_connectivity_monitor
from realtime.store import reset_entity_store
from services.offline import OfflineBookingQueue
from services.pricing.fare_calculator import ROUTE_TABLE
from services.ride_management import create_ride_request
from services.tests.helpers import MORNING, make_store, station_trip

from .apps import schedule_offline_replay
from .models import QueuedBooking
from .tasks import expire_scheduled_rides_task, probe_store_connectivity, replay_offline_bookings_task
from .views import fare_quote, route_list


class RidesTestCase(TestCase):
	def setUp(self):
		self.factory = APIRequestFactory()
		self.store = make_store(riders=("r1", "r2"), drivers=("d1",))
		self.monitor = ConnectivityMonitor(self.store)
		reset_entity_store(self.store)
		reset_connectivity_monitor(self.monitor)
		self.user = User.objects.create_user(
			username='rider',
			password='pass1234',
			role='rider',
			phone_number='9000000000'
		)

	def tearDown(self):
		reset_entity_store(None)
		reset_connectivity_monitor(None)


class FareQuoteTests(RidesTestCase):
	def quote(self, data):
		request = self.factory.post('/api/rides/fare/', data, format='json')
		force_authenticate(request, user=self.user)
		return fare_quote(request)

	def test_morning_peak_quote(self):
		response = self.quote({
			'pickup': 'MBU Main Gate',
			'destination': 'Tirupati Railway Station',
			'when': '2025-03-03T09:00:00+05:30',
		})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['fare'], 195)
		self.assertEqual(response.data['distance_km'], 8)
		self.assertEqual(response.data['duration_min'], 30)
		self.assertEqual(response.data['ride_kind'], 'Solo')
		self.assertEqual(response.data['breakdown']['total_fare'], 195)

	def test_same_pickup_and_destination(self):
		response = self.quote({'pickup': 'MBU Main Gate', 'destination': 'MBU Main Gate'})

		self.assertEqual(response.status_code, 400)

	def test_unknown_route_uses_default_figures(self):
		response = self.quote({'pickup': 'Library', 'destination': 'Somewhere Else'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual((response.data['distance_km'], response.data['duration_min']), (9, 22))
		self.assertEqual(response.data['fare'] % 5, 0)

	def test_requires_login(self):
		request = self.factory.post('/api/rides/fare/', {'pickup': 'A', 'destination': 'B'}, format='json')

		response = fare_quote(request)

		self.assertIn(response.status_code, (401, 403))

	def test_route_list(self):
		request = self.factory.get('/api/rides/routes/')
		force_authenticate(request, user=self.user)

		response = route_list(request)

		self.assertEqual(response.data['count'], len(ROUTE_TABLE))
		pairs = [(route['pickup'], route['destination']) for route in response.data['routes']]
		self.assertEqual(pairs, sorted(pairs))
		self.assertIn(('MBU Main Gate', 'Tirupati Railway Station'), pairs)


class ExpiryTests(RidesTestCase):
	def book_scheduled(self, rider_id="r1"):
		details = station_trip(booking_kind="Scheduled", scheduled_time=MORNING + timedelta(minutes=30))
		return create_ride_request(self.store, rider_id, details, MORNING).ride

	def test_command_expires_overdue_scheduled_rides(self):
		ride = self.book_scheduled()
		out = StringIO()

		call_command('expire_scheduled_rides', stdout=out)

		self.assertIn('Expired 1 scheduled ride(s).', out.getvalue())
		self.assertIn(ride.id, out.getvalue())
		self.assertEqual(self.store.read(f"rides/{ride.id}/status"), "Cancelled")
		self.assertEqual(self.store.read(f"rides/{ride.id}/cancellation_reason"), "expired")
		self.assertIsNone(self.store.read("riders/r1/active_ride_id"))

	def test_task_leaves_asap_rides_alone(self):
		create_ride_request(self.store, "r2", station_trip(), MORNING)
		ride = self.book_scheduled()

		self.assertEqual(expire_scheduled_rides_task(), [ride.id])
		self.assertEqual(len(self.store.read("ride-requests")), 1)

	def test_task_survives_store_outage(self):
		self.store.available = False

		self.assertEqual(expire_scheduled_rides_task(), [])


class OfflineReplayTaskTests(RidesTestCase):
	def test_replays_every_rider_queue(self):
		OfflineBookingQueue("r1").enqueue(station_trip())
		OfflineBookingQueue("r2").enqueue(station_trip(destination="Central Mall"))

		submitted = replay_offline_bookings_task()

		self.assertEqual(submitted, {"r1": 1, "r2": 1})
		self.assertEqual(QueuedBooking.objects.count(), 0)
		self.assertEqual(len(self.store.read("ride-requests")), 2)

	def test_replay_for_one_rider_via_command(self):
		OfflineBookingQueue("r1").enqueue(station_trip())
		OfflineBookingQueue("r2").enqueue(station_trip())
		out = StringIO()

		call_command('replay_offline_bookings', '--rider', 'r1', stdout=out)

		self.assertIn('Submitted 1 queued booking(s) for 1 rider(s).', out.getvalue())
		self.assertEqual(list(QueuedBooking.objects.values_list('rider_id', flat=True)), ['r2'])

	def test_store_still_down_keeps_the_queue(self):
		OfflineBookingQueue("r1").enqueue(station_trip())
		self.store.available = False

		self.assertEqual(replay_offline_bookings_task(rider_id="r1"), {"r1": 0})
		self.assertEqual(QueuedBooking.objects.count(), 1)

	@patch('rides.tasks.replay_offline_bookings_task.delay')
	def test_reconnect_schedules_a_replay(self, delay):
		schedule_offline_replay()

		delay.assert_called_once_with()

	@patch('rides.tasks.replay_offline_bookings_task.delay', side_effect=ConnectionError("broker down"))
	def test_replay_runs_inline_without_a_broker(self, delay):
		OfflineBookingQueue("r1").enqueue(station_trip())

		schedule_offline_replay()

		self.assertEqual(QueuedBooking.objects.count(), 0)


class ConnectivityProbeTests(RidesTestCase):
	def test_probe_follows_store(self):
		self.store.available = False
		self.assertFalse(probe_store_connectivity())
		self.assertFalse(self.monitor.is_online())

		self.store.available = True
		self.assertTrue(probe_store_connectivity())
		self.assertTrue(self.monitor.is_online())


class HealthCheckTests(RidesTestCase):
	def test_healthy(self):
		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['services']['entity_store'], 'healthy')
		self.assertEqual(response.data['services']['queued_bookings'], 0)
		self.assertEqual(response.data['services']['connectivity'], 'online')

	def test_store_down_is_unhealthy_but_connectivity_untouched(self):
		self.store.available = False

		response = health_check(self.factory.get('/health/'))

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.data['status'], 'unhealthy')
		self.assertTrue(self.monitor.is_online())
