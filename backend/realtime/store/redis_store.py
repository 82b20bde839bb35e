"""
Redis-backed entity store.

Each record (the first two path segments, e.g. ``rides/<ride_id>``) is one
JSON document under its own key; a SET per collection indexes the record ids.
Multi-path updates and compare-and-set run as optimistic ``WATCH``/``MULTI``
transactions over every record they touch, so a transition either lands
completely or not at all.

Subscriptions are in-process: callbacks fire for writes made through this
store instance. Cross-process fan-out goes through the Channels groups
(see ``realtime.broadcast``).
"""

from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

import redis
from django.conf import settings

from .base import (
    EntityStore,
    StoreError,
    StoreUnavailableError,
    apply_updates,
    check_disjoint,
    matches_expected,
    split_path,
    tree_get,
)

logger = logging.getLogger(__name__)


# Monotonic millisecond clock shared by every process talking to this Redis.
_CLOCK_LUA = """
local t = redis.call('TIME')
local now = tonumber(t[1]) * 1000 + math.floor(tonumber(t[2]) / 1000)
local last = tonumber(redis.call('GET', KEYS[1]) or '0')
if now <= last then now = last + 1 end
redis.call('SET', KEYS[1], now)
return now
"""


class RedisEntityStore(EntityStore):

    def __init__(
        self,
        url: Optional[str] = None,
        prefix: str = "campus:",
        max_retries: int = 10,
        redis_client: Optional[redis.Redis] = None,
    ):
        super().__init__()
        if redis_client is None:
            url = url or getattr(settings, "ENTITY_STORE_REDIS_URL", settings.CELERY_BROKER_URL)
            redis_client = redis.Redis.from_url(url, decode_responses=True)
        self._redis = redis_client
        self._prefix = prefix
        self._max_retries = max_retries
        self._clock = self._redis.register_script(_CLOCK_LUA)

    # ---------------------- Key Helpers ----------------------

    def _record_key(self, collection: str, record_id: str) -> str:
        return f"{self._prefix}{collection}/{record_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}{collection}:index"

    @property
    def _collections_key(self) -> str:
        return f"{self._prefix}__collections__"

    @contextmanager
    def _translate_errors(self):
        try:
            yield
        except (redis.exceptions.ConnectionError, redis.exceptions.TimeoutError) as exc:
            raise StoreUnavailableError(str(exc)) from exc
        except redis.exceptions.RedisError as exc:
            raise StoreError(str(exc)) from exc

    # ---------------------- Reads ----------------------

    def read(self, path: str) -> Any:
        segments = split_path(path)
        with self._translate_errors():
            if not segments:
                tree = {}
                for collection in sorted(self._redis.smembers(self._collections_key)):
                    value = self._read_collection(self._redis, collection)
                    if value:
                        tree[collection] = value
                return tree or None
            if len(segments) == 1:
                return self._read_collection(self._redis, segments[0])
            raw = self._redis.get(self._record_key(segments[0], segments[1]))
            if raw is None:
                return None
            return tree_get(json.loads(raw), segments[2:]) if len(segments) > 2 else json.loads(raw)

    def _read_collection(self, client, collection: str) -> Optional[Dict[str, Any]]:
        ids = sorted(client.smembers(self._index_key(collection)))
        if not ids:
            return None
        raws = client.mget([self._record_key(collection, record_id) for record_id in ids])
        records = {
            record_id: json.loads(raw)
            for record_id, raw in zip(ids, raws)
            if raw is not None
        }
        return records or None

    # ---------------------- Writes ----------------------

    def multi_path_update(self, updates: Mapping[str, Any]) -> None:
        if not updates:
            return
        self._transact({}, updates)
        self._notify(updates)

    def compare_and_set(self, expected: Mapping[str, Any], updates: Mapping[str, Any]) -> bool:
        applied = self._transact(expected, updates)
        if applied:
            self._notify(updates)
        return applied

    def _transact(self, expected: Mapping[str, Any], updates: Mapping[str, Any]) -> bool:
        check_disjoint(updates)
        scopes = self._scopes(list(expected) + list(updates))

        with self._translate_errors():
            with self._redis.pipeline() as pipe:
                for attempt in range(1, self._max_retries + 1):
                    try:
                        records = self._load_records(pipe, scopes, updates)
                        if not matches_expected(records, expected):
                            pipe.reset()
                            return False

                        before = set(records_keys(records))
                        apply_updates(records, updates, self.server_timestamp)

                        pipe.multi()
                        for collection, record_id in before | set(records_keys(records)):
                            doc = tree_get(records, [collection, record_id])
                            if doc is None:
                                pipe.delete(self._record_key(collection, record_id))
                                pipe.srem(self._index_key(collection), record_id)
                            else:
                                pipe.set(self._record_key(collection, record_id), json.dumps(doc))
                                pipe.sadd(self._index_key(collection), record_id)
                                pipe.sadd(self._collections_key, collection)
                        pipe.execute()
                        return True
                    except redis.exceptions.WatchError:
                        logger.debug("Store transaction conflict (attempt %s) on %s", attempt, sorted(scopes))
                        continue
        raise StoreError(f"Gave up after {self._max_retries} conflicting writes")

    def _scopes(self, paths: Iterable[str]) -> Set[Tuple[str, ...]]:
        scopes = set()
        for path in paths:
            segments = split_path(path)
            if not segments:
                raise ValueError("The Redis store does not support writes at the root path")
            scopes.add(tuple(segments[:2]))
        return scopes

    def _load_records(self, pipe, scopes: Set[Tuple[str, ...]], updates: Mapping[str, Any]) -> Dict[str, Any]:
        """WATCH and load every record the transaction may touch into a local tree."""
        whole_collections = sorted(scope[0] for scope in scopes if len(scope) == 1)
        if whole_collections:
            pipe.watch(*[self._index_key(collection) for collection in whole_collections])

        targets: Set[Tuple[str, str]] = {scope for scope in scopes if len(scope) == 2}
        for collection in whole_collections:
            for record_id in pipe.smembers(self._index_key(collection)):
                targets.add((collection, record_id))
            new_value = updates.get(collection)
            if isinstance(new_value, Mapping):
                targets.update((collection, str(record_id)) for record_id in new_value)

        ordered = sorted(targets)
        keys = [self._record_key(collection, record_id) for collection, record_id in ordered]
        if keys:
            pipe.watch(*keys)

        records: Dict[str, Any] = {}
        raws = pipe.mget(keys) if keys else []
        for (collection, record_id), raw in zip(ordered, raws):
            if raw is not None:
                records.setdefault(collection, {})[record_id] = json.loads(raw)
        return records

    # ---------------------- Clock / Health ----------------------

    def server_timestamp(self) -> int:
        with self._translate_errors():
            return int(self._clock(keys=[f"{self._prefix}__clock__"]))

    def ping(self) -> bool:
        try:
            return bool(self._redis.ping())
        except redis.exceptions.RedisError:
            logger.warning("Entity store ping failed")
            return False


def records_keys(records: Dict[str, Any]) -> List[Tuple[str, str]]:
    return [
        (collection, record_id)
        for collection, docs in records.items()
        if isinstance(docs, dict)
        for record_id in docs
    ]
