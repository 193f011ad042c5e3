from collections import OrderedDict
from threading import RLock
from typing import List, Optional, Tuple
import time

from .cache import CacheBackend
from .keys import pattern_prefix


class LocalFallbackBackend(CacheBackend):
    """
    Thread-safe in-process LRU store with per-entry TTL.
    Expired entries are evicted lazily on read and by purge_expired(),
    which the ExpirySweeper calls on a fixed interval.
    """

    name = "fallback"

    def __init__(self, capacity: int = 10_000):
        self.capacity = max(1, capacity)
        self._data: "OrderedDict[str, tuple[float, str]]" = OrderedDict()
        self._lock = RLock()

    async def get(self, key: str) -> Optional[str]:
        now = time.time()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return None
            expires_at, value = item
            if expires_at <= now:
                # Expired: evict and miss
                self._data.pop(key, None)
                return None
            self._data.move_to_end(key)
            return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        expires_at = time.time() + ttl_seconds
        with self._lock:
            if key in self._data:
                self._data.pop(key)
            elif len(self._data) >= self.capacity:
                self._data.popitem(last=False)  # Evict LRU
            self._data[key] = (expires_at, value)

    async def delete_exact(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    async def delete_by_prefix_pattern(self, pattern: str) -> int:
        prefix = pattern_prefix(pattern)
        with self._lock:
            victims = [k for k in self._data if k.startswith(prefix)]
            for k in victims:
                del self._data[k]
        return len(victims)

    async def size_and_enumerate(self) -> Tuple[int, List[str]]:
        self.purge_expired()
        with self._lock:
            keys = list(self._data)
        return len(keys), keys

    async def keys_by_prefix_pattern(self, pattern: str) -> List[str]:
        prefix = pattern_prefix(pattern)
        now = time.time()
        with self._lock:
            return [k for k, (expires_at, _) in self._data.items() if k.startswith(prefix) and expires_at > now]

    async def count(self) -> int:
        # May include entries that expired since the last sweep
        with self._lock:
            return len(self._data)

    def purge_expired(self) -> int:
        """Drop every expired entry; returns the number removed."""
        now = time.time()
        with self._lock:
            expired = [k for k, (expires_at, _) in self._data.items() if expires_at <= now]
            for k in expired:
                del self._data[k]
        return len(expired)
