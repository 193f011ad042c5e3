# tenant_cache/services/redis_backend.py
import asyncio
import logging
from typing import Any, List, Optional, Tuple

from redis import asyncio as aioredis
from redis.exceptions import RedisError

from tenant_cache.config import (
    CACHE_KEY_PREFIX,
    REDIS_CONNECT_BACKOFF_STEP_MS,
    REDIS_CONNECT_MAX_ATTEMPTS,
    REDIS_CONNECT_MAX_BACKOFF_MS,
    REDIS_CONNECT_MAX_TOTAL_SECONDS,
    REDIS_SOCKET_TIMEOUT_SECONDS,
    REDIS_URL,
)
from .cache import CacheBackend, CacheBackendError
from .keys import pattern_prefix

logger = logging.getLogger(__name__)

_UNLINK_CHUNK = 500
_GLOB_SPECIALS = "\\*?[]"


def _match_pattern(pattern: str) -> str:
    """Turn a `prefix*` cache pattern into a SCAN MATCH glob, escaping glob characters inside the prefix."""
    prefix = pattern_prefix(pattern)
    escaped = "".join(f"\\{c}" if c in _GLOB_SPECIALS else c for c in prefix)
    return f"{escaped}*"


class RedisBackend(CacheBackend):
    """
    Thin adapter over redis.asyncio. TTL is enforced by Redis (SETEX).
    Every Redis/socket failure surfaces as CacheBackendError so the selector can demote.
    """

    name = "remote"

    def __init__(
        self,
        url: str = REDIS_URL,
        client: Any = None,
        max_attempts: int = REDIS_CONNECT_MAX_ATTEMPTS,
        backoff_step_ms: int = REDIS_CONNECT_BACKOFF_STEP_MS,
        max_backoff_ms: int = REDIS_CONNECT_MAX_BACKOFF_MS,
        max_total_seconds: float = REDIS_CONNECT_MAX_TOTAL_SECONDS,
    ):
        self._url = url
        self._client = client
        self._connected = False
        self.max_attempts = max(1, max_attempts)
        self.backoff_step_ms = backoff_step_ms
        self.max_backoff_ms = max_backoff_ms
        self.max_total_seconds = max_total_seconds

    def _backoff(self, attempt: int) -> float:
        return min(attempt * self.backoff_step_ms, self.max_backoff_ms) / 1000.0

    async def connect(self) -> None:
        """
        PING until Redis answers, with linear capped backoff.
        Raises CacheBackendError once the attempt cap or the total retry duration is exceeded.
        """
        if self._client is None:
            self._client = aioredis.Redis.from_url(
                self._url,
                decode_responses=True,
                socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
                socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            )
        loop = asyncio.get_running_loop()
        started = loop.time()
        attempt = 0
        while True:
            attempt += 1
            try:
                await self._client.ping()
                self._connected = True
                logger.info("redis_backend: connected after %s attempt(s)", attempt)
                return
            except (RedisError, OSError) as ex:
                last_error = ex

            if attempt >= self.max_attempts:
                raise CacheBackendError(f"Redis max retries reached ({attempt}): {last_error}")
            delay = self._backoff(attempt)
            if loop.time() - started + delay > self.max_total_seconds:
                raise CacheBackendError(f"Redis retry time exhausted after {attempt} attempt(s): {last_error}")
            logger.info("redis_backend: connect attempt %s failed (%s); retrying in %.2fs", attempt, last_error, delay)
            await asyncio.sleep(delay)

    async def close(self) -> None:
        if self._client is None:
            return
        try:
            await self._client.aclose()
        except (RedisError, OSError) as ex:
            logger.warning("redis_backend: error while closing connection: %s", ex)
        finally:
            self._connected = False

    def _require(self):
        if not self._connected or self._client is None:
            raise CacheBackendError("Redis backend is not connected")
        return self._client

    async def get(self, key: str) -> Optional[str]:
        client = self._require()
        try:
            return await client.get(key)
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis GET failed for {key}: {ex}") from ex

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        client = self._require()
        try:
            await client.setex(key, ttl_seconds, value)
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis SETEX failed for {key}: {ex}") from ex

    async def delete_exact(self, key: str) -> None:
        client = self._require()
        try:
            await client.delete(key)
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis DEL failed for {key}: {ex}") from ex

    async def delete_by_prefix_pattern(self, pattern: str) -> int:
        """
        SCAN for matching keys, then UNLINK them in chunks.
        Not atomic: a key written between the scan and the unlink survives until its TTL.
        """
        client = self._require()
        match = _match_pattern(pattern)
        deleted = 0
        try:
            chunk: List[str] = []
            async for key in client.scan_iter(match=match):
                chunk.append(key)
                if len(chunk) >= _UNLINK_CHUNK:
                    deleted += int(await client.unlink(*chunk) or 0)
                    chunk = []
            if chunk:
                deleted += int(await client.unlink(*chunk) or 0)
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis invalidation failed for {pattern}: {ex}") from ex
        return deleted

    async def size_and_enumerate(self) -> Tuple[int, List[str]]:
        client = self._require()
        try:
            keys = [k async for k in client.scan_iter(match=f"{CACHE_KEY_PREFIX}:*")]
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis SCAN failed: {ex}") from ex
        return len(keys), keys

    async def keys_by_prefix_pattern(self, pattern: str) -> List[str]:
        client = self._require()
        try:
            return [k async for k in client.scan_iter(match=_match_pattern(pattern))]
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis SCAN failed for {pattern}: {ex}") from ex

    async def count(self) -> int:
        """DBSIZE: every key in the selected database, cache or not."""
        client = self._require()
        try:
            return int(await client.dbsize())
        except (RedisError, OSError) as ex:
            raise CacheBackendError(f"Redis DBSIZE failed: {ex}") from ex
