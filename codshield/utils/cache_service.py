"""
In-Memory TTL/LRU cache.

Holds per-store risk configuration between warm Lambda invocations so the
checkout path does not pay a database round trip per request.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from threading import Lock
from typing import Any, Callable, Optional

from codshield.utils.clock import utc_now


class LRUCache:
    """Thread-safe LRU cache with TTL support."""

    def __init__(
        self,
        max_size: int = 100,
        ttl_seconds: int = 300,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, tuple[Any, datetime]]" = OrderedDict()
        self._lock = Lock()
        self._hits = 0
        self._misses = 0

    def _fresh(self, stored_at: datetime) -> bool:
        return self._clock() - stored_at <= timedelta(seconds=self.ttl_seconds)

    def get(self, key: str) -> Optional[Any]:
        """Return the cached value, or None when missing or stale."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            value, stored_at = entry
            if not self._fresh(stored_at):
                del self._entries[key]
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (value, self._clock())
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)

    def get_or_load(self, key: str, loader: Callable[[], Any]) -> Any:
        """
        Return the cached value or call ``loader`` and cache its result.

        The loader runs outside the lock; two concurrent misses may both load,
        which is harmless for idempotent reads.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = loader()
        if value is not None:
            self.set(key, value)
        return value

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> dict:
        """Return cache statistics."""
        with self._lock:
            return {
                "size": len(self._entries),
                "max_size": self.max_size,
                "ttl_seconds": self.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
            }
