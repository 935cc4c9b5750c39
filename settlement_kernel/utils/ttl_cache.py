"""
Explicit time-bounded cache.

Read-only lookups (property billing policies, rates) are fronted by a
``TTLCache`` instance owned by whoever needs it, never by a module-level
dict.  Entries expire after ``ttl_seconds`` measured on the injected clock,
and ``invalidate()`` drops one key or everything.
"""

from collections.abc import Callable, Hashable
from dataclasses import dataclass
from datetime import datetime, timedelta
from threading import RLock
from typing import Generic, TypeVar

from settlement_kernel.domain.clock import Clock, SystemClock
from settlement_kernel.logging_config import get_logger

logger = get_logger("utils.ttl_cache")

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass(frozen=True)
class _Entry(Generic[V]):
    value: V
    expires_at: datetime


class TTLCache(Generic[K, V]):
    """Thread-safe key/value cache with per-entry expiry."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Clock | None = None,
        name: str = "cache",
    ):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()
        self._name = name
        self._entries: dict[K, _Entry[V]] = {}
        self._lock = RLock()

    def get(self, key: K) -> V | None:
        """Return the cached value, or None when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock.now() >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: K, value: V) -> None:
        with self._lock:
            self._entries[key] = _Entry(value, self._clock.now() + self._ttl)

    def get_or_load(self, key: K, loader: Callable[[K], V]) -> V:
        """Return the cached value, calling ``loader(key)`` on a miss."""
        with self._lock:
            value = self.get(key)
            if value is not None:
                return value
            value = loader(key)
            self.put(key, value)
            logger.debug("cache_loaded", extra={"cache": self._name, "key": str(key)})
            return value

    def invalidate(self, key: K | None = None) -> None:
        """Drop ``key``, or every entry when no key is given."""
        with self._lock:
            if key is None:
                count = len(self._entries)
                self._entries.clear()
            else:
                count = 1 if self._entries.pop(key, None) is not None else 0
        logger.info(
            "cache_invalidated",
            extra={"cache": self._name, "key": None if key is None else str(key), "dropped": count},
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
