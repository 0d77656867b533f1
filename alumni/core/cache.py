"""
In-memory TTL cache

Holds timelines, recommendations, statistics, A/B assignments and per-session
homepage state. Entries expire lazily on read.
"""
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any, Awaitable, Callable, Dict, Optional


@dataclass
class CacheEntry:
    value: Any
    expires_at: Optional[float] = None

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= time.monotonic()


class TTLCache:
    """
    Thread-safe key/value cache with per-key TTL

    Keys are namespaced with ":" so a whole family can be dropped with
    forget_prefix(), e.g. forget_prefix("timeline:user:42").
    """

    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._cache.get(key)
            if entry is None:
                return default
            if entry.expired:
                del self._cache[key]
                return default
            return entry.value

    def has(self, key: str) -> bool:
        sentinel = object()
        return self.get(key, sentinel) is not sentinel

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl else None
        with self._lock:
            self._cache[key] = CacheEntry(value=value, expires_at=expires_at)

    def remember(self, key: str, ttl: Optional[int], factory: Callable[[], Any]) -> Any:
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            value = factory()
            self.set(key, value, ttl)
        return value

    async def aremember(
        self, key: str, ttl: Optional[int], factory: Callable[[], Awaitable[Any]]
    ) -> Any:
        sentinel = object()
        value = self.get(key, sentinel)
        if value is sentinel:
            value = await factory()
            self.set(key, value, ttl)
        return value

    def increment(self, key: str, amount: int = 1, ttl: Optional[int] = None) -> int:
        """Increment a counter; the TTL is set when the counter is created"""
        with self._lock:
            entry = self._cache.get(key)
            if entry is None or entry.expired:
                expires_at = time.monotonic() + ttl if ttl else None
                entry = CacheEntry(value=0, expires_at=expires_at)
                self._cache[key] = entry
            entry.value += amount
            return entry.value

    def forget(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def forget_prefix(self, prefix: str) -> int:
        with self._lock:
            keys = [k for k in self._cache if k.startswith(prefix)]
            for k in keys:
                del self._cache[k]
            return len(keys)

    def flush(self) -> None:
        with self._lock:
            self._cache.clear()


# Global instance
cache = TTLCache()
