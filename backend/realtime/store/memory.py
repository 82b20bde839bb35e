"""In-process entity store used in development and tests."""

from __future__ import annotations

import copy
import logging
import threading
import time
from typing import Any, Dict, Mapping, Optional

from .base import (
    EntityStore,
    StoreUnavailableError,
    apply_updates,
    check_disjoint,
    matches_expected,
    split_path,
    tree_get,
)

logger = logging.getLogger(__name__)


class MemoryEntityStore(EntityStore):
    """
    Keeps the whole tree in a dict guarded by a re-entrant lock.

    ``available`` can be switched off to simulate an unreachable store:
    every operation then raises ``StoreUnavailableError``.
    """

    def __init__(self, initial: Optional[Dict[str, Any]] = None, available: bool = True):
        super().__init__()
        self._root: Dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.RLock()
        self._last_timestamp = 0
        self.available = available

    def _check_available(self):
        if not self.available:
            raise StoreUnavailableError("Entity store is unreachable")

    def read(self, path: str) -> Any:
        self._check_available()
        segments = split_path(path)
        with self._lock:
            return copy.deepcopy(tree_get(self._root, segments))

    def multi_path_update(self, updates: Mapping[str, Any]) -> None:
        self._check_available()
        if not updates:
            return
        check_disjoint(updates)
        with self._lock:
            apply_updates(self._root, updates, self.server_timestamp)
        self._notify(updates)

    def compare_and_set(self, expected: Mapping[str, Any], updates: Mapping[str, Any]) -> bool:
        self._check_available()
        check_disjoint(updates)
        with self._lock:
            if not matches_expected(self._root, expected):
                logger.debug("compare_and_set rejected: %s", list(expected))
                return False
            apply_updates(self._root, updates, self.server_timestamp)
        self._notify(updates)
        return True

    def server_timestamp(self) -> int:
        with self._lock:
            now = int(time.time() * 1000)
            self._last_timestamp = max(now, self._last_timestamp + 1)
            return self._last_timestamp

    def ping(self) -> bool:
        return self.available

    def dump(self) -> Dict[str, Any]:
        """Copy of the whole tree (admin/debug helper)."""
        with self._lock:
            return copy.deepcopy(self._root)
