"""
Realtime app: the entity store and its WebSocket fan-out.

This app provides:
- The entity store (path-addressed records with subscriptions, multi-path
  updates and compare-and-set), in-memory and Redis backends
- Fan-out of store changes to Channels groups
- WebSocket consumers for riders and drivers
- Connectivity tracking and the observable client state

Key Components:
    - store/: EntityStore interface and backends
    - broadcast.py: store change -> group_send bridge
    - connectivity.py: online/offline signal with transition callbacks
    - state.py: ClientState reducer container
    - consumers/: WebSocket consumers (rider, driver)
    - notifications.py: group helpers and transient notifications

Usage:
    from realtime.store import get_entity_store
    from realtime.connectivity import get_connectivity_monitor
    from realtime.consumers import DriverConsumer, RiderConsumer
    from realtime.notifications import group_name, notify_user
"""
