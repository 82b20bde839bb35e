from unittest.mock import Mock, patch

from asgiref.sync import async_to_sync
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase, TransactionTestCase

from accounts.models import User
from services.ride_management.records import RiderProfile

from .broadcast import install_store_broadcast
from .connectivity import ConnectivityMonitor, reset_connectivity_monitor
from .consumers import DriverConsumer, RiderConsumer
from .notifications import group_name, notify_user
from .state import (
	CONNECTIVITY_CHANGED,
	RIDER_CHANGED,
	WAITLIST_CHANGED,
	Action,
	ClientSnapshot,
	ClientState,
	reduce_state,
)
from .store import (
	SERVER_TIMESTAMP,
	MemoryEntityStore,
	StoreUnavailableError,
	UpdateIntent,
	increment,
	reset_entity_store,
)


class MemoryStoreTests(SimpleTestCase):
	def setUp(self):
		self.store = MemoryEntityStore()

	def test_write_and_read_nested_paths(self):
		self.store.write("rides/a", {"status": "Pending", "fare": 195})

		self.assertEqual(self.store.read("rides/a/status"), "Pending")
		self.assertEqual(self.store.read("rides"), {"a": {"status": "Pending", "fare": 195}})
		self.assertIsNone(self.store.read("rides/b"))

	def test_none_deletes_and_prunes_empty_parents(self):
		self.store.multi_path_update({"dismissals/d1/r1": True, "riders/r1/name": "x"})

		self.store.write("dismissals/d1/r1", None)

		self.assertIsNone(self.store.read("dismissals"))
		self.assertEqual(self.store.read("riders/r1/name"), "x")

	def test_none_entries_inside_a_record_are_dropped(self):
		self.store.write("riders/r1", {"name": "x", "active_ride_id": None})

		self.assertEqual(self.store.read("riders/r1"), {"name": "x"})

	def test_increment_and_server_timestamp(self):
		self.store.write("drivers/d1/total_rides", increment(1))
		self.store.multi_path_update({
			"drivers/d1/total_rides": increment(2),
			"drivers/d1/last_seen": SERVER_TIMESTAMP,
		})

		self.assertEqual(self.store.read("drivers/d1/total_rides"), 3)
		self.assertIsInstance(self.store.read("drivers/d1/last_seen"), int)

	def test_server_timestamps_strictly_increase(self):
		first = self.store.server_timestamp()
		second = self.store.server_timestamp()

		self.assertGreater(second, first)

	def test_overlapping_update_paths_are_rejected(self):
		with self.assertRaises(ValueError):
			self.store.multi_path_update({"rides/a": {"status": "Pending"}, "rides/a/fare": 10})
		self.assertIsNone(self.store.read("rides"))

	def test_invalid_path(self):
		with self.assertRaises(ValueError):
			self.store.read("rides//a")

	def test_compare_and_set(self):
		self.store.write("rides/a/status", "Pending")

		self.assertFalse(self.store.compare_and_set({"rides/a/status": "Active"}, {"rides/a/driver_id": "d1"}))
		self.assertTrue(self.store.compare_and_set(
			{"rides/a/status": "Pending", "rides/a/driver_id": None},
			{"rides/a/status": "Active", "rides/a/driver_id": "d1"},
		))
		self.assertEqual(self.store.read("rides/a"), {"status": "Active", "driver_id": "d1"})

	def test_push_reserves_ordered_unique_keys_without_writing(self):
		keys = [self.store.push("transactions") for _ in range(5)]

		self.assertEqual(len(set(keys)), 5)
		self.assertEqual(keys, sorted(keys))
		self.assertIsNone(self.store.read("transactions"))

	def test_reads_are_copies(self):
		self.store.write("riders/r1", {"name": "x"})
		record = self.store.read("riders/r1")
		record["name"] = "changed"

		self.assertEqual(self.store.read("riders/r1/name"), "x")

	def test_unavailable_store_raises(self):
		self.store.available = False

		with self.assertRaises(StoreUnavailableError):
			self.store.read("rides")
		with self.assertRaises(StoreUnavailableError):
			self.store.write("rides/a/status", "Pending")
		self.assertFalse(self.store.ping())


class SubscriptionTests(SimpleTestCase):
	def setUp(self):
		self.store = MemoryEntityStore()
		self.events = []

	def test_initial_value_then_related_writes(self):
		self.store.write("rides/a/status", "Pending")
		self.store.subscribe("rides/a", self.events.append)

		self.store.write("rides/a/status", "Active")
		self.store.write("rides/b/status", "Pending")
		self.store.write("rides", None)

		self.assertEqual([event.value for event in self.events], [
			{"status": "Pending"},
			{"status": "Active"},
			None,
		])
		self.assertEqual(self.events[1].changed_paths, ("rides/a/status",))

	def test_unsubscribe(self):
		unsubscribe = self.store.subscribe("waitlist", self.events.append, emit_initial=False)
		unsubscribe()

		self.store.write("waitlist/r1/timestamp", 1)

		self.assertEqual(self.events, [])
		self.assertEqual(self.store.subscriber_count(), 0)

	def test_failing_subscriber_does_not_break_the_write(self):
		self.store.subscribe("rides", Mock(side_effect=RuntimeError("boom")), emit_initial=False)
		self.store.subscribe("rides", self.events.append, emit_initial=False)

		self.store.write("rides/a/status", "Pending")

		self.assertEqual(self.store.read("rides/a/status"), "Pending")
		self.assertEqual(len(self.events), 1)

	def test_rejected_compare_and_set_notifies_nobody(self):
		self.store.subscribe("rides", self.events.append, emit_initial=False)

		self.store.compare_and_set({"rides/a/status": "Pending"}, {"rides/a/status": "Active"})

		self.assertEqual(self.events, [])


class UpdateIntentTests(SimpleTestCase):
	def test_collects_and_applies_in_one_write(self):
		store = MemoryEntityStore()
		events = []
		store.subscribe("", events.append, emit_initial=False)

		intent = (
			UpdateIntent()
			.set("rides/a/status", "Completed")
			.increment("drivers/d1/total_rides", 1)
			.delete("drivers/d1/current_ride_id")
		)
		intent.apply(store)

		self.assertEqual(len(intent), 3)
		self.assertIn("rides/a/status", intent)
		self.assertEqual(len(events), 1)
		self.assertEqual(store.read("drivers/d1/total_rides"), 1)

	def test_merge(self):
		intent = UpdateIntent({"a/b": 1}).merge(UpdateIntent({"c/d": 2}))

		self.assertEqual(intent.as_dict(), {"a/b": 1, "c/d": 2})


class ClientStateTests(SimpleTestCase):
	def test_reducer_is_pure(self):
		before = ClientSnapshot()

		after = reduce_state(before, Action(RIDER_CHANGED, {"name": "x", "wallet_balance": 50}, "r1"))

		self.assertIsNone(before.rider)
		self.assertEqual(after.rider, RiderProfile.from_record("r1", {"name": "x", "wallet_balance": 50}))
		self.assertEqual(after.version, 1)

	def test_waitlist_is_ordered_by_join_time(self):
		state = reduce_state(ClientSnapshot(), Action(WAITLIST_CHANGED, {
			"r2": {"timestamp": 20, "ride_details": {"pickup": "A", "destination": "B"}},
			"r1": {"timestamp": 10, "ride_details": {"pickup": "A", "destination": "B"}},
		}))

		self.assertEqual([item.rider_id for item in state.waitlist], ["r1", "r2"])

	def test_unknown_action_is_ignored(self):
		state = ClientSnapshot()

		self.assertIs(reduce_state(state, Action("nonsense")), state)

	def test_listeners_get_each_snapshot(self):
		client = ClientState()
		seen = []
		client.subscribe(seen.append)

		client.dispatch(Action(CONNECTIVITY_CHANGED, False))

		self.assertFalse(seen[0].is_online)

	def test_bound_driver_state_follows_requests_and_current_ride(self):
		store = MemoryEntityStore()
		store.write("drivers/d1", {"name": "driver", "is_online": True})
		client = ClientState().bind(store, "d1", "driver")

		store.write("ride-requests/a", {"id": "a", "rider_id": "r1", "status": "Pending",
		                                "pickup": "A", "destination": "B"})
		store.multi_path_update({
			"rides/a": {"id": "a", "rider_id": "r1", "driver_id": "d1", "status": "Active",
			            "pickup": "A", "destination": "B"},
			"drivers/d1/current_ride_id": "a",
		})

		self.assertEqual([ride.id for ride in client.state.ride_requests], ["a"])
		self.assertEqual(client.state.active_ride.driver_id, "d1")

		client.close()
		self.assertEqual(store.subscriber_count(), 0)


class ConnectivityTests(SimpleTestCase):
	def test_callbacks_fire_on_transitions_only(self):
		monitor = ConnectivityMonitor()
		online, offline = Mock(), Mock()
		monitor.on_online(online)
		monitor.on_offline(offline)

		monitor.set_online(True)
		monitor.set_online(False)
		monitor.set_online(False)
		monitor.set_online(True)

		self.assertEqual(offline.call_count, 1)
		self.assertEqual(online.call_count, 1)

	def test_probe_uses_store_ping(self):
		store = MemoryEntityStore(available=False)
		monitor = ConnectivityMonitor(store)

		self.assertFalse(monitor.probe())
		store.available = True
		self.assertTrue(monitor.probe())

	def test_unregister(self):
		monitor = ConnectivityMonitor(online=False)
		callback = Mock()
		unregister = monitor.on_online(callback)
		unregister()

		monitor.set_online(True)

		callback.assert_not_called()


@patch("realtime.broadcast.send_to_group")
class BroadcastTests(SimpleTestCase):
	def setUp(self):
		self.store = MemoryEntityStore()
		self.unsubscribers = install_store_broadcast(self.store)

	def tearDown(self):
		for unsubscribe in self.unsubscribers:
			unsubscribe()

	def test_ride_change_goes_to_rider_and_driver(self, send):
		self.store.write("rides/a", {"id": "a", "rider_id": "r1", "driver_id": "d1", "status": "Active"})

		groups = [call.args[0] for call in send.call_args_list]
		self.assertEqual(groups, ["rider_r1", "driver_d1"])
		self.assertEqual(send.call_args.args[1]["type"], "ride_updated")

	def test_open_requests_and_waitlist_groups(self, send):
		self.store.multi_path_update({
			"ride-requests/a": {"id": "a", "status": "Pending"},
			"waitlist/r1": {"timestamp": 1},
		})

		payloads = {call.args[0]: call.args[1] for call in send.call_args_list}
		self.assertEqual(payloads["open_requests"]["ride_ids"], ["a"])
		self.assertEqual(payloads["waitlist"]["rider_ids"], ["r1"])

	def test_send_failure_does_not_reach_the_writer(self, send):
		send.side_effect = RuntimeError("layer down")

		self.store.write("riders/r1/name", "x")

		self.assertEqual(self.store.read("riders/r1/name"), "x")


class NotificationTests(SimpleTestCase):
	def test_group_name(self):
		self.assertEqual(group_name("driver", "7"), "driver_7")

	@patch("realtime.notifications.send_to_group")
	def test_notify_user_payload(self, send):
		notify_user("rider", "3", "Added to Waitlist", "Soon", level="success")

		send.assert_called_once_with("rider_3", {
			"type": "notification", "title": "Added to Waitlist", "message": "Soon", "level": "success",
		})


class ConsumerTests(TransactionTestCase):
	def setUp(self):
		self.store = MemoryEntityStore()
		reset_entity_store(self.store)
		reset_connectivity_monitor(ConnectivityMonitor(self.store))
		self.rider = User.objects.create_user(username="rider", password="pass1234", role="rider")
		self.driver = User.objects.create_user(username="driver", password="pass1234", role="driver")

	def tearDown(self):
		reset_entity_store(None)
		reset_connectivity_monitor(None)

	def connect(self, consumer, path, user):
		communicator = WebsocketCommunicator(consumer.as_asgi(), path)
		communicator.scope["user"] = user
		return communicator

	async def receive(self, communicator, message_type=None):
		"""Next message of ``message_type``; by default the next one that is not a state snapshot."""
		while True:
			message = await communicator.receive_json_from()
			if message_type is None and message["type"] != "client_state":
				return message
			if message["type"] == message_type:
				return message

	def test_anonymous_connection_is_closed(self):
		async def scenario():
			communicator = self.connect(RiderConsumer, "/ws/rider/", AnonymousUser())
			connected, _ = await communicator.connect()
			self.assertFalse(connected)

		async_to_sync(scenario)()

	def test_wrong_role_gets_an_error(self):
		async def scenario():
			communicator = self.connect(DriverConsumer, "/ws/driver/", self.rider)
			connected, _ = await communicator.connect()
			self.assertTrue(connected)
			message = await communicator.receive_json_from()
			self.assertEqual(message["type"], "error")
			await communicator.disconnect()

		async_to_sync(scenario)()

	def test_rider_session_books_a_ride(self):
		async def scenario():
			communicator = self.connect(RiderConsumer, "/ws/rider/", self.rider)
			connected, _ = await communicator.connect()
			self.assertTrue(connected)
			self.assertEqual((await self.receive(communicator))["type"], "connection_established")
			current = await self.receive(communicator)
			self.assertEqual(current["type"], "current_ride_result")
			self.assertNotIn("ride", current)

			await communicator.send_json_to({
				"type": "book_ride",
				"details": {"pickup": "MBU Main Gate", "destination": "Tirupati Railway Station"},
			})
			result = await self.receive(communicator)
			self.assertTrue(result["success"])
			self.assertEqual(result["ride"]["status"], "Pending")

			await communicator.send_json_to({"type": "ping"})
			self.assertEqual((await self.receive(communicator))["type"], "pong")
			await communicator.disconnect()

		async_to_sync(scenario)()
		self.assertIsNotNone(self.store.read(f"riders/{self.rider.pk}/active_ride_id"))

	def test_session_streams_client_state_until_disconnect(self):
		subscribers_before = self.store.subscriber_count()

		async def scenario():
			communicator = self.connect(RiderConsumer, "/ws/rider/", self.rider)
			connected, _ = await communicator.connect()
			self.assertTrue(connected)

			snapshot = await self.receive(communicator, "client_state")
			self.assertEqual(snapshot["rider"]["name"], "rider")
			self.assertIsNone(snapshot["active_ride"])
			self.assertTrue(snapshot["is_online"])
			self.assertGreater(self.store.subscriber_count(), subscribers_before)

			await communicator.send_json_to({
				"type": "book_ride",
				"details": {"pickup": "MBU Main Gate", "destination": "Tirupati Railway Station"},
			})
			for _ in range(10):
				snapshot = await self.receive(communicator, "client_state")
				if snapshot["active_ride"]:
					break
			self.assertEqual(snapshot["active_ride"]["status"], "Pending")
			self.assertEqual(snapshot["active_ride"]["destination"], "Tirupati Railway Station")
			await communicator.disconnect()

		async_to_sync(scenario)()
		self.assertEqual(self.store.subscriber_count(), subscribers_before)
