"""Connectivity signal: is the entity store reachable right now?"""

import logging
import threading
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

_monitor_instance: Optional["ConnectivityMonitor"] = None


class ConnectivityMonitor:
    """
    Tracks online/offline state and fires callbacks on each transition.

    ``probe()`` pings the store and updates the state; callers that learn
    about connectivity some other way use ``set_online``.
    """

    def __init__(self, store=None, online: bool = True):
        self._store = store
        self._online = online
        self._lock = threading.Lock()
        self._online_callbacks: List[Callable[[], None]] = []
        self._offline_callbacks: List[Callable[[], None]] = []

    def is_online(self) -> bool:
        return self._online

    def on_online(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._register(self._online_callbacks, callback)

    def on_offline(self, callback: Callable[[], None]) -> Callable[[], None]:
        return self._register(self._offline_callbacks, callback)

    def set_online(self, online: bool) -> None:
        with self._lock:
            changed = online != self._online
            self._online = online
            callbacks = list(self._online_callbacks if online else self._offline_callbacks)

        if not changed:
            return

        logger.info("Connectivity changed: %s", "online" if online else "offline")
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("Connectivity callback failed")

    def probe(self) -> bool:
        store = self._store
        if store is None:
            from realtime.store import get_entity_store
            store = get_entity_store()
        self.set_online(bool(store.ping()))
        return self._online

    def _register(self, callbacks: List[Callable[[], None]], callback: Callable[[], None]) -> Callable[[], None]:
        with self._lock:
            callbacks.append(callback)

        def unregister():
            with self._lock:
                if callback in callbacks:
                    callbacks.remove(callback)

        return unregister


def get_connectivity_monitor() -> ConnectivityMonitor:
    global _monitor_instance

    if _monitor_instance is None:
        _monitor_instance = ConnectivityMonitor()
    return _monitor_instance


def reset_connectivity_monitor(monitor: Optional[ConnectivityMonitor] = None) -> None:
    global _monitor_instance
    _monitor_instance = monitor
