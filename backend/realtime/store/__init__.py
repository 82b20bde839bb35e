"""
Entity store access.

The backend is chosen by ``settings.ENTITY_STORE``::

    ENTITY_STORE = {
        "BACKEND": "realtime.store.redis_store.RedisEntityStore",
        "OPTIONS": {"url": "redis://localhost:6379/1"},
        "BROADCAST": True,   # fan store changes out to Channels groups
    }
"""

import logging
import threading
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from .base import (
    SERVER_TIMESTAMP,
    ChangeEvent,
    EntityStore,
    Increment,
    StoreError,
    StoreUnavailableError,
    UpdateIntent,
    increment,
    join_path,
    split_path,
)
from .memory import MemoryEntityStore

logger = logging.getLogger(__name__)

DEFAULT_BACKEND = "realtime.store.memory.MemoryEntityStore"

_store_instance: Optional[EntityStore] = None
_store_lock = threading.Lock()


def get_entity_store() -> EntityStore:
    """Process-wide store built from settings on first use."""
    global _store_instance

    if _store_instance is None:
        with _store_lock:
            if _store_instance is None:
                config = getattr(settings, "ENTITY_STORE", {})
                backend_cls = import_string(config.get("BACKEND", DEFAULT_BACKEND))
                store = backend_cls(**config.get("OPTIONS", {}))
                if config.get("BROADCAST", True):
                    from realtime.broadcast import install_store_broadcast
                    install_store_broadcast(store)
                logger.info("Entity store initialised (%s)", backend_cls.__name__)
                _store_instance = store
    return _store_instance


def reset_entity_store(store: Optional[EntityStore] = None) -> None:
    """Swap the process-wide store (tests, management commands)."""
    global _store_instance
    with _store_lock:
        _store_instance = store


__all__ = [
    "SERVER_TIMESTAMP",
    "ChangeEvent",
    "EntityStore",
    "Increment",
    "MemoryEntityStore",
    "StoreError",
    "StoreUnavailableError",
    "UpdateIntent",
    "increment",
    "join_path",
    "split_path",
    "get_entity_store",
    "reset_entity_store",
]
