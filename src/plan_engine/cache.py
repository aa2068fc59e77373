"""Short-lived memoization of expensive generated artifacts."""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    value: Any
    stored_at: float


class ResultCache:
    """TTL cache keyed by opaque strings.

    Entries expire only when read after ``ttl_seconds``; nothing is evicted
    in the background, so memory grows with the number of distinct keys.
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._key_locks: dict[str, threading.Lock] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _fresh(self, key: str) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.stored_at >= self.ttl_seconds:
            return None
        return entry

    def _key_lock(self, key: str) -> threading.Lock:
        with self._lock:
            return self._key_locks.setdefault(key, threading.Lock())

    def get(self, key: str) -> Any | None:
        with self._lock:
            entry = self._fresh(key)
        return entry.value if entry else None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(value=value, stored_at=self._clock())

    def get_or_set(self, key: str, producer: Callable[[], Any]) -> Any:
        """Return the cached value, or call ``producer`` once and cache its result.

        Concurrent misses on the same key wait for a single producer call.
        A failing producer stores nothing.
        """
        with self._key_lock(key):
            with self._lock:
                entry = self._fresh(key)
            if entry is not None:
                logger.debug("Cache hit: %s", key)
                return entry.value

            logger.debug("Cache miss: %s", key)
            value = producer()
            self.set(key, value)
            return value

    def get_or_set_batch(
        self,
        keys: Iterable[str],
        batch_producer: Callable[[list[str]], dict[str, Any]],
    ) -> dict[str, Any]:
        """Resolve many keys, calling ``batch_producer`` only for missing/stale ones."""
        keys = list(dict.fromkeys(keys))
        result: dict[str, Any] = {}
        missing: list[str] = []
        with self._lock:
            for key in keys:
                entry = self._fresh(key)
                if entry is None:
                    missing.append(key)
                else:
                    result[key] = entry.value

        if missing:
            logger.debug("Batch cache miss for %d of %d keys", len(missing), len(keys))
            produced = batch_producer(missing)
            for key in missing:
                if key in produced:
                    self.set(key, produced[key])
                    result[key] = produced[key]
                else:
                    logger.debug("Batch producer returned nothing for %s", key)

        return {k: result[k] for k in keys if k in result}

    def clear(self) -> None:
        """Drop every entry. Per-key locks stay so in-flight producers still dedupe."""
        with self._lock:
            self._entries.clear()
