import logging
from enum import Enum
from threading import Lock
from typing import List, Optional, Tuple

from tenant_cache.config import CACHE_CAPACITY, CACHE_SWEEP_INTERVAL_SECONDS, REDIS_URL
from tenant_cache.sweeper import ExpirySweeper
from .cache import CacheBackend, CacheBackendError
from .local_backend import LocalFallbackBackend
from .redis_backend import RedisBackend

logger = logging.getLogger(__name__)

_cache_singleton: Optional["BackendSelector"] = None


class BackendHealth(str, Enum):
    REMOTE_ACTIVE = "remote"
    LOCAL_FALLBACK = "fallback"


class BackendSelector:
    """
    Process-wide handle to the active cache backend.

    Starts out REMOTE_ACTIVE when a Redis backend is configured and moves to
    LOCAL_FALLBACK on the first connect or operational error. The move is
    one-way: there is no setter, and nothing switches back until restart, so a
    flapping Redis cannot bounce traffic between stores.

    Callers always go through this object, so a demotion applies to every
    subsequent call without anyone re-resolving a backend. Backend errors are
    absorbed here: reads become misses, writes and deletes become no-ops.
    """

    def __init__(
        self,
        local: LocalFallbackBackend,
        remote: Optional[RedisBackend] = None,
        sweep_interval_seconds: Optional[float] = None,
    ):
        self._local = local
        self._remote = remote
        self._state = BackendHealth.REMOTE_ACTIVE if remote is not None else BackendHealth.LOCAL_FALLBACK
        self._lock = Lock()
        self._sweeper = ExpirySweeper(local, sweep_interval_seconds or CACHE_SWEEP_INTERVAL_SECONDS)

    @property
    def state(self) -> BackendHealth:
        return self._state

    def health(self) -> str:
        return self._state.value

    def current(self) -> CacheBackend:
        if self._state is BackendHealth.REMOTE_ACTIVE and self._remote is not None:
            return self._remote
        return self._local

    def demote_to_fallback(self, reason: str) -> bool:
        """Switch to the local fallback for the rest of the process lifetime. Returns True only for the caller that flipped it."""
        with self._lock:
            if self._state is BackendHealth.LOCAL_FALLBACK:
                return False
            self._state = BackendHealth.LOCAL_FALLBACK
        logger.warning("cache: Redis unavailable (%s); falling back to in-memory cache until restart", reason)
        return True

    async def start(self) -> None:
        """Connect to Redis (or demote) and start the local expiry sweep."""
        if self._remote is None:
            logger.info("cache: Redis not configured, using in-memory cache fallback")
        elif self._state is BackendHealth.REMOTE_ACTIVE:
            try:
                await self._remote.connect()
                logger.info("cache: Redis cache initialized")
            except CacheBackendError as ex:
                self.demote_to_fallback(str(ex))
        await self._sweeper.start()

    async def stop(self) -> None:
        await self._sweeper.stop()
        if self._remote is not None:
            await self._remote.close()

    def _absorb(self, backend: CacheBackend, op: str, ex: CacheBackendError) -> None:
        if backend is self._remote:
            self.demote_to_fallback(f"{op}: {ex}")
        else:
            logger.exception("cache: %s failed on %s backend", op, backend.name)

    async def get(self, key: str) -> Optional[str]:
        backend = self.current()
        try:
            return await backend.get(key)
        except CacheBackendError as ex:
            self._absorb(backend, "get", ex)
            return None

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        backend = self.current()
        try:
            await backend.set(key, value, ttl_seconds)
        except CacheBackendError as ex:
            self._absorb(backend, "set", ex)

    async def delete_exact(self, key: str) -> None:
        backend = self.current()
        try:
            await backend.delete_exact(key)
        except CacheBackendError as ex:
            self._absorb(backend, "delete", ex)

    async def delete_by_prefix_pattern(self, pattern: str) -> int:
        backend = self.current()
        try:
            return await backend.delete_by_prefix_pattern(pattern)
        except CacheBackendError as ex:
            self._absorb(backend, "invalidate", ex)
            return 0

    async def size_and_enumerate(self) -> Tuple[int, List[str]]:
        backend = self.current()
        try:
            return await backend.size_and_enumerate()
        except CacheBackendError as ex:
            self._absorb(backend, "enumerate", ex)
            return 0, []

    async def keys_by_prefix_pattern(self, pattern: str) -> List[str]:
        backend = self.current()
        try:
            return await backend.keys_by_prefix_pattern(pattern)
        except CacheBackendError as ex:
            self._absorb(backend, "enumerate", ex)
            return []

    async def count(self) -> int:
        backend = self.current()
        try:
            return await backend.count()
        except CacheBackendError as ex:
            self._absorb(backend, "count", ex)
            return 0


def get_cache() -> BackendSelector:
    """
    Returns the process-wide cache selector based on configuration:
      - REDIS_URL set   -> Redis first, in-process fallback on failure
      - REDIS_URL empty -> in-process fallback only
    """
    global _cache_singleton
    if _cache_singleton is not None:
        return _cache_singleton

    local = LocalFallbackBackend(capacity=CACHE_CAPACITY)
    remote = RedisBackend(REDIS_URL) if REDIS_URL else None
    _cache_singleton = BackendSelector(local, remote)
    return _cache_singleton
