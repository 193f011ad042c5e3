from abc import ABC, abstractmethod
from typing import List, Optional, Tuple


class CacheBackendError(Exception):
    """Operational failure of a cache backend (connect, get, set, delete)."""


class CacheBackend(ABC):
    """
    Storage contract shared by the Redis backend and the in-process fallback.
    Values are opaque strings; serialization belongs to the caller.
    """

    name: str = "backend"

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        ...

    @abstractmethod
    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    async def delete_exact(self, key: str) -> None:
        ...

    @abstractmethod
    async def delete_by_prefix_pattern(self, pattern: str) -> int:
        """Remove every key matching `prefix*` and return how many were removed."""
        ...

    @abstractmethod
    async def size_and_enumerate(self) -> Tuple[int, List[str]]:
        ...

    @abstractmethod
    async def keys_by_prefix_pattern(self, pattern: str) -> List[str]:
        """Keys matching `prefix*`, without visiting the rest of the keyspace where the store allows."""
        ...

    @abstractmethod
    async def count(self) -> int:
        """Number of stored keys, without listing them."""
        ...
