"""Time-bounded in-memory cache with an injectable clock."""

from __future__ import annotations

from collections.abc import Callable, Hashable
from dataclasses import dataclass
import logging
import threading
import time
from typing import Generic, Optional, TypeVar

_V = TypeVar("_V")

DEFAULT_TTL_SECONDS = 300.0

Clock = Callable[[], float]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry(Generic[_V]):
    value: _V
    expires_at: float


@dataclass(frozen=True)
class CacheResult(Generic[_V]):
    value: _V
    reused: bool


class TTLCache(Generic[_V]):
    """Map ``key -> (value, expiry)``; entries expire ``ttl`` seconds after insert.

    All access goes through a single lock. Concurrent writers for the same key
    are resolved last-writer-wins.
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL_SECONDS,
        *,
        clock: Clock = time.monotonic,
        max_entries: Optional[int] = None,
    ) -> None:
        if ttl <= 0:
            raise ValueError("ttl must be positive.")
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive or None.")
        self.ttl = float(ttl)
        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[Hashable, CacheEntry[_V]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: Hashable) -> Optional[_V]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if now >= entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def put(self, key: Hashable, value: _V) -> None:
        now = self._clock()
        with self._lock:
            self._entries[key] = CacheEntry(value=value, expires_at=now + self.ttl)
            if self._max_entries is not None and len(self._entries) > self._max_entries:
                self._evict_locked(now)

    def get_or_compute(self, key: Hashable, factory: Callable[[], _V]) -> CacheResult[_V]:
        """Return the cached value for ``key`` or compute and store it.

        ``factory`` runs outside the lock, so two threads may compute the same
        key concurrently; the later insert wins.
        """
        cached = self.get(key)
        if cached is not None:
            return CacheResult(value=cached, reused=True)
        value = factory()
        self.put(key, value)
        return CacheResult(value=value, reused=False)

    def purge_expired(self) -> int:
        now = self._clock()
        with self._lock:
            return self._purge_locked(now)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _purge_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _evict_locked(self, now: float) -> None:
        self._purge_locked(now)
        while self._max_entries is not None and len(self._entries) > self._max_entries:
            oldest = min(self._entries, key=lambda key: self._entries[key].expires_at)
            del self._entries[oldest]
            logger.debug("Evicted cache entry %s", oldest)


__all__ = [
    "DEFAULT_TTL_SECONDS",
    "CacheEntry",
    "CacheResult",
    "TTLCache",
]
