# tests/conftest.py
import fnmatch
import os
import tempfile
import time

import pytest
from fastapi.testclient import TestClient
from redis.exceptions import ConnectionError as RedisConnectionError

# Tests run against SQLite and the in-process cache unless a test wires a fake Redis explicitly.
_DB_PATH = os.path.join(tempfile.gettempdir(), "tenant_cache_tests.db")
if os.path.exists(_DB_PATH):
    os.remove(_DB_PATH)
os.environ["DATABASE_URL"] = f"sqlite:///{_DB_PATH}"
os.environ["REDIS_URL"] = ""

from sqlalchemy import text  # noqa: E402
from tenant_cache.main import app  # noqa: E402  import after env is set
from tenant_cache.database import Base, engine  # noqa: E402
from tenant_cache.services import cache_factory  # noqa: E402
from tenant_cache.services.cache_factory import BackendSelector  # noqa: E402
from tenant_cache.services.local_backend import LocalFallbackBackend  # noqa: E402

Base.metadata.create_all(bind=engine)


# ---------- In-memory stand-ins for redis.asyncio.Redis ----------

class FakeRedis:
    """Just enough of the redis.asyncio client API for RedisBackend, with server-side TTL."""

    def __init__(self, fail_pings: int = 0):
        self.fail_pings = fail_pings
        self.scanned: list = []
        self.ping_calls = 0
        self.closed = False
        self.ttls: dict[str, int] = {}
        self._data: dict[str, tuple[str, float]] = {}

    async def ping(self):
        self.ping_calls += 1
        if self.ping_calls <= self.fail_pings:
            raise RedisConnectionError("Connection refused")
        return True

    async def get(self, key):
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at <= time.time():
            del self._data[key]
            return None
        return value

    async def setex(self, key, ttl, value):
        self.ttls[key] = ttl
        self._data[key] = (value, time.time() + ttl)

    async def delete(self, *keys):
        return sum(1 for k in keys if self._data.pop(k, None) is not None)

    async def unlink(self, *keys):
        return await self.delete(*keys)

    async def scan_iter(self, match=None):
        self.scanned.append(match)
        for key in list(self._data):
            if match is None or fnmatch.fnmatchcase(key, match):
                yield key

    async def dbsize(self):
        return len(self._data)

    async def aclose(self):
        self.closed = True

    def keys(self):
        return list(self._data)


class BrokenRedis(FakeRedis):
    """Answers PING, then fails every data call as if the connection dropped."""

    async def get(self, key):
        raise RedisConnectionError("Connection reset by peer")

    async def setex(self, key, ttl, value):
        raise RedisConnectionError("Connection reset by peer")

    async def delete(self, *keys):
        raise RedisConnectionError("Connection reset by peer")

    async def dbsize(self):
        raise RedisConnectionError("Connection reset by peer")

    async def scan_iter(self, match=None):
        raise RedisConnectionError("Connection reset by peer")
        yield  # pragma: no cover


class FakeClock:
    """Replacement for the `time` module inside local_backend."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def time(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# ---------- Fixtures ----------

@pytest.fixture(autouse=True)
def fresh_cache(monkeypatch):
    """Every test gets its own process-wide cache selector (local fallback only)."""
    selector = BackendSelector(LocalFallbackBackend(capacity=1000))
    monkeypatch.setattr(cache_factory, "_cache_singleton", selector)
    return selector


@pytest.fixture
def client():
    """A FastAPI TestClient with lifespan (tables, cache start/stop)."""
    with TestClient(app) as c:
        yield c


@pytest.fixture
def clean_db():
    """Wipe the budgets table after the test."""
    yield
    with engine.begin() as conn:
        conn.execute(text("DELETE FROM budgets"))


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def clock(monkeypatch):
    fake = FakeClock()
    monkeypatch.setattr("tenant_cache.services.local_backend.time", fake)
    return fake
