"""
Path-addressed realtime entity store.

Every persisted record (riders, drivers, rides, open requests, waitlist
entries, transactions) lives in one tree addressed by ``/``-separated paths,
e.g. ``rides/<ride_id>/status``. Backends implement the primitives below;
subscription bookkeeping and the tree helpers are shared.

Write semantics:
    - a ``None`` value deletes the path (and prunes empty parents)
    - ``None`` entries inside a written dict are dropped
    - ``Increment(delta)`` adds to the current numeric value (missing = 0)
    - ``SERVER_TIMESTAMP`` resolves to the store's monotonic clock
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a read or write against the entity store fails."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when the entity store cannot be reached at all."""
    pass


@dataclass(frozen=True)
class Increment:
    """Atomic numeric delta applied at write time."""
    delta: float


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


def increment(delta: float) -> Increment:
    return Increment(delta)


# ---------------------- Path Helpers ----------------------

def split_path(path: str) -> List[str]:
    """Split ``"rides/abc/status"`` into segments. The empty path is the root."""
    if path is None:
        raise ValueError("Path is required")
    segments = [segment for segment in str(path).strip("/").split("/")]
    if segments == [""]:
        return []
    if any(not segment for segment in segments):
        raise ValueError(f"Invalid store path: {path!r}")
    return segments


def join_path(*segments: Any) -> str:
    return "/".join(str(segment).strip("/") for segment in segments if segment not in (None, ""))


def is_related(first: List[str], second: List[str]) -> bool:
    """True when one path is an ancestor of (or equal to) the other."""
    shortest = min(len(first), len(second))
    return first[:shortest] == second[:shortest]


def check_disjoint(paths: Iterable[str]) -> List[Tuple[str, List[str]]]:
    """Reject an update that writes both a path and one of its descendants."""
    parsed = [(path, split_path(path)) for path in paths]
    for (path_a, seg_a), (path_b, seg_b) in itertools.combinations(parsed, 2):
        if is_related(seg_a, seg_b):
            raise ValueError(f"Update paths overlap: {path_a!r} and {path_b!r}")
    return parsed


# ---------------------- Tree Helpers ----------------------

def tree_get(root: Dict[str, Any], segments: List[str]) -> Any:
    node: Any = root
    for segment in segments:
        if not isinstance(node, dict):
            return None
        node = node.get(segment)
        if node is None:
            return None
    return node


def tree_set(root: Dict[str, Any], segments: List[str], value: Any) -> None:
    """Set (or delete, when ``value`` is None) a node, pruning empty parents."""
    if not segments:
        root.clear()
        if isinstance(value, dict):
            root.update(value)
        return

    if value is None:
        trail = []
        node: Any = root
        for segment in segments[:-1]:
            if not isinstance(node, dict) or segment not in node:
                return
            trail.append((node, segment))
            node = node[segment]
        if isinstance(node, dict):
            node.pop(segments[-1], None)
        for parent, segment in reversed(trail):
            child = parent.get(segment)
            if isinstance(child, dict) and not child:
                parent.pop(segment)
            else:
                break
        return

    node = root
    for segment in segments[:-1]:
        child = node.get(segment)
        if not isinstance(child, dict):
            child = {}
            node[segment] = child
        node = child
    node[segments[-1]] = value


def resolve_value(value: Any, current: Any, clock: Callable[[], int]) -> Any:
    """Turn sentinels into concrete values and strip ``None`` entries."""
    if isinstance(value, Increment):
        base = current if isinstance(current, (int, float)) and not isinstance(current, bool) else 0
        return base + value.delta
    if value is SERVER_TIMESTAMP:
        return clock()
    if isinstance(value, Mapping):
        resolved = {}
        for key, child in value.items():
            child_current = current.get(str(key)) if isinstance(current, dict) else None
            child_value = resolve_value(child, child_current, clock)
            if child_value is None or child_value == {}:
                continue
            resolved[str(key)] = child_value
        return resolved
    if isinstance(value, (list, tuple)):
        return [resolve_value(item, None, clock) for item in value]
    return copy.deepcopy(value)


def apply_updates(root: Dict[str, Any], updates: Mapping[str, Any], clock: Callable[[], int]) -> None:
    for path, value in updates.items():
        segments = split_path(path)
        resolved = resolve_value(value, tree_get(root, segments), clock)
        if resolved == {}:
            resolved = None
        tree_set(root, segments, resolved)


def matches_expected(root: Dict[str, Any], expected: Mapping[str, Any]) -> bool:
    for path, value in expected.items():
        if tree_get(root, split_path(path)) != value:
            return False
    return True


# ---------------------- Push IDs ----------------------

_push_counter = itertools.count()
_push_lock = threading.Lock()


def generate_push_id() -> str:
    """Time-ordered unique key, like a realtime-database push id."""
    with _push_lock:
        sequence = next(_push_counter) % 0x10000
    millis = int(time.time() * 1000)
    return f"{millis:012x}{sequence:04x}{uuid.uuid4().hex[:8]}"


# ---------------------- Update Intent ----------------------

class UpdateIntent:
    """
    A multi-path update collected before it is applied in one call.

    Lifecycle code builds an intent, then hands it to
    ``store.multi_path_update`` or ``store.compare_and_set`` so that every
    record touched by one transition is written together.
    """

    def __init__(self, updates: Optional[Mapping[str, Any]] = None):
        self._updates: Dict[str, Any] = dict(updates or {})

    def set(self, path: str, value: Any) -> "UpdateIntent":
        self._updates[path] = value
        return self

    def delete(self, path: str) -> "UpdateIntent":
        self._updates[path] = None
        return self

    def increment(self, path: str, delta: float) -> "UpdateIntent":
        self._updates[path] = Increment(delta)
        return self

    def merge(self, other: "UpdateIntent") -> "UpdateIntent":
        self._updates.update(other.as_dict())
        return self

    def as_dict(self) -> Dict[str, Any]:
        return dict(self._updates)

    def paths(self) -> List[str]:
        return list(self._updates)

    def apply(self, store: "EntityStore") -> None:
        store.multi_path_update(self._updates)

    def __contains__(self, path: str) -> bool:
        return path in self._updates

    def __len__(self) -> int:
        return len(self._updates)

    def __repr__(self):
        return f"UpdateIntent({self._updates!r})"


# ---------------------- Store Interface ----------------------

@dataclass(frozen=True)
class ChangeEvent:
    """Delivered to subscribers: the subscribed path, its new value, and what was written."""
    path: str
    value: Any
    changed_paths: Tuple[str, ...] = ()


ChangeCallback = Callable[[ChangeEvent], None]


class EntityStore:
    """
    Interface of the shared realtime data store.

    Subclasses implement ``read``, ``multi_path_update``,
    ``compare_and_set``, ``server_timestamp`` and ``ping``; the remaining
    primitives are built on top of them.
    """

    def __init__(self):
        self._subscribers: Dict[int, Tuple[str, List[str], ChangeCallback]] = {}
        self._subscriber_ids = itertools.count(1)
        self._subscriber_lock = threading.Lock()

    # --- primitives ---

    def read(self, path: str) -> Any:
        raise NotImplementedError

    def multi_path_update(self, updates: Mapping[str, Any]) -> None:
        raise NotImplementedError

    def compare_and_set(self, expected: Mapping[str, Any], updates: Mapping[str, Any]) -> bool:
        """Apply ``updates`` only if every path in ``expected`` holds the given value."""
        raise NotImplementedError

    def server_timestamp(self) -> int:
        raise NotImplementedError

    def ping(self) -> bool:
        raise NotImplementedError

    # --- derived operations ---

    def write(self, path: str, value: Any) -> None:
        self.multi_path_update({path: value})

    def push(self, path: str) -> str:
        """Reserve a new child key under ``path``. Nothing is written."""
        split_path(path)
        return generate_push_id()

    def atomic_increment(self, path: str, delta: float) -> Any:
        self.multi_path_update({path: Increment(delta)})
        return self.read(path)

    # --- subscriptions ---

    def subscribe(self, path: str, on_change: ChangeCallback, emit_initial: bool = True) -> Callable[[], None]:
        """
        Call ``on_change`` whenever ``path``, an ancestor or a descendant is written.

        Returns an unsubscribe function.
        """
        segments = split_path(path)
        with self._subscriber_lock:
            subscription_id = next(self._subscriber_ids)
            self._subscribers[subscription_id] = (path, segments, on_change)

        if emit_initial:
            self._deliver(path, on_change, ())

        def unsubscribe():
            with self._subscriber_lock:
                self._subscribers.pop(subscription_id, None)

        return unsubscribe

    def subscriber_count(self) -> int:
        with self._subscriber_lock:
            return len(self._subscribers)

    def _notify(self, changed_paths: Iterable[str]) -> None:
        changed = [(path, split_path(path)) for path in changed_paths]
        if not changed:
            return

        with self._subscriber_lock:
            subscribers = list(self._subscribers.values())

        for path, segments, on_change in subscribers:
            relevant = tuple(changed_path for changed_path, changed_segments in changed
                             if is_related(segments, changed_segments))
            if relevant:
                self._deliver(path, on_change, relevant)

    def _deliver(self, path: str, on_change: ChangeCallback, changed_paths: Tuple[str, ...]) -> None:
        try:
            on_change(ChangeEvent(path=path, value=self.read(path), changed_paths=changed_paths))
        except Exception:
            logger.exception("Store subscriber for %s failed", path)
