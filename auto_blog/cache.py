"""
Key/TTL memoization over a key-value cache store.

The cache is a pure optimization: a broken store, an unserializable value or
an oversize payload only costs a repeat API call, never a failed run.
"""

import json
import logging
import os
import time
from typing import Any, Callable, Dict, Optional

from .config import CACHE_SIZE_LIMIT

logger = logging.getLogger(__name__)

ENTITY_FIELDS = ('id', 'name', 'slug')


class MemoryCacheStore:
    """In-process cache store with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._entries: Dict[str, tuple] = {}

    def get(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            return None
        return value

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._entries = {k: entry for k, entry in self._entries.items() if entry[1] > now}
        self._entries[key] = (value, now + ttl_seconds)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


class JsonFileCacheStore:
    """
    Cache store persisted to a JSON file, so cached SERP data and CMS term
    lookups survive between runs.
    """

    def __init__(self, path: str, clock: Callable[[], float] = time.time):
        self.path = path
        self._clock = clock
        self._entries: Optional[Dict[str, dict]] = None

    def _load(self) -> Dict[str, dict]:
        if self._entries is not None:
            return self._entries
        if not os.path.exists(self.path):
            self._entries = {}
            return self._entries
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
            self._entries = data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.warning(f"Cache file {self.path} unreadable, starting empty: {e}")
            self._entries = {}
        return self._entries

    def _save(self) -> None:
        now = self._clock()
        live = {k: v for k, v in self._load().items() if v.get('expires_at', 0) > now}
        self._entries = live
        with open(self.path, 'w', encoding='utf-8') as f:
            json.dump(live, f, ensure_ascii=False)

    def get(self, key: str) -> Optional[str]:
        entry = self._load().get(key)
        if not entry:
            return None
        if self._clock() >= entry.get('expires_at', 0):
            return None
        return entry.get('value')

    def put(self, key: str, value: str, ttl_seconds: int) -> None:
        self._load()[key] = {'value': value, 'expires_at': self._clock() + ttl_seconds}
        self._save()


def compact_entity(value: Any) -> Any:
    """
    Keep only id/name/slug of a remote entity, or of each entity in a list.

    Used for CMS term lookups, whose full payloads carry dozens of fields
    the pipeline never reads.
    """
    if isinstance(value, dict):
        return {k: value[k] for k in ENTITY_FIELDS if k in value}
    if isinstance(value, (list, tuple)):
        return [compact_entity(v) for v in value]
    return value


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, tuple, bool, int, float)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def _deserialize(raw: str) -> Any:
    try:
        return json.loads(raw)
    except ValueError:
        return raw


def with_cache(store, key: str, ttl_seconds: int, producer: Callable[[], Any],
               compact: Optional[Callable[[Any], Any]] = None) -> Any:
    """
    Return the cached value for key, or call producer() and cache its result.

    None results are never cached. compact, when given, maps the result to
    the projection that is actually stored. Values whose serialized form is
    CACHE_SIZE_LIMIT bytes or more are returned but not stored.
    """
    try:
        cached = store.get(key)
    except Exception as e:
        logger.warning(f"Cache read failed for '{key}': {e}")
        cached = None

    if cached is not None:
        logger.info(f"CACHE HIT: '{key}'")
        return _deserialize(cached)

    logger.info(f"CACHE MISS: '{key}' (ttl {ttl_seconds}s)")
    result = producer()

    if result is None:
        return result

    try:
        to_store = compact(result) if compact is not None else result
        serialized = _serialize(to_store)
    except (TypeError, ValueError) as e:
        logger.warning(f"Could not serialize value for '{key}', not caching: {e}")
        return result

    size = len(serialized.encode('utf-8'))
    if size >= CACHE_SIZE_LIMIT:
        logger.warning(f"Value for '{key}' is {size} bytes (limit {CACHE_SIZE_LIMIT}), not caching")
        return result

    try:
        store.put(key, serialized, ttl_seconds)
    except Exception as e:
        logger.warning(f"Cache write failed for '{key}': {e}")

    return result
