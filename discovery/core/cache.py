"""
Small TTL cache for values that are expensive to read but tolerate staleness,
such as the global engagement average used for relative popularity.
"""
import time
from threading import Lock
from typing import Awaitable, Callable, Dict, Generic, Optional, Tuple, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """
    Thread-safe in-memory cache with per-entry expiry.

    Usage:
        cache: TTLCache[float] = TTLCache(default_ttl_seconds=300)
        avg = await cache.get_or_load("global_engagement", store.get_global_engagement_average)
    """

    def __init__(
        self,
        default_ttl_seconds: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._store: Dict[str, Tuple[T, Optional[float]]] = {}
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._lock = Lock()

    def get(self, key: str) -> Optional[T]:
        """Get value by key, returns None if not found or expired."""
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at is not None and self._clock() > expires_at:
                del self._store[key]
                return None
            return value

    def set(self, key: str, value: T, ttl_seconds: Optional[float] = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._default_ttl
        expires_at = self._clock() + ttl if ttl else None
        with self._lock:
            self._store[key] = (value, expires_at)

    def invalidate(self, key: str) -> bool:
        """Drop a key, returns True if it existed."""
        with self._lock:
            return self._store.pop(key, None) is not None

    async def get_or_load(
        self,
        key: str,
        loader: Callable[[], Awaitable[T]],
        ttl_seconds: Optional[float] = None,
    ) -> T:
        """Return the cached value or await ``loader`` and cache its result."""
        value = self.get(key)
        if value is not None:
            return value

        # Load outside the lock; concurrent misses may both load
        loaded = await loader()
        self.set(key, loaded, ttl_seconds)
        return loaded
