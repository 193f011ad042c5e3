# tests/test_cache_gate.py
import asyncio
from typing import List, Optional

import pytest
from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.testclient import TestClient
from pydantic import BaseModel

from conftest import BrokenRedis
from tenant_cache.identity import attach_tenant
from tenant_cache.services.cache_factory import BackendSelector
from tenant_cache.services.cache_gate import cached
from tenant_cache.services.invalidation import invalidate
from tenant_cache.services.local_backend import LocalFallbackBackend
from tenant_cache.services.redis_backend import RedisBackend

calls = {
    "items": 0, "thing": 0, "echo": 0, "missing": 0, "teapot": 0, "text": 0,
    "tags": 0, "account": 0, "accepted": 0,
}

gate_app = FastAPI()


@gate_app.get("/items")
@cached(endpoint="items", ttl_seconds=60)
async def items(request: Request, tenant_id=Depends(attach_tenant)):
    calls["items"] += 1
    return {"tenant": tenant_id, "run": calls["items"], "query": dict(request.query_params)}


@gate_app.get("/things/{thing_id}")
@cached(endpoint="thing", ttl_seconds=60)
async def thing(request: Request, thing_id: int, tenant_id=Depends(attach_tenant)):
    calls["thing"] += 1
    return {"id": thing_id, "run": calls["thing"]}


@gate_app.api_route("/echo", methods=["GET", "POST"])
@cached(endpoint="echo", ttl_seconds=60)
async def echo(request: Request, tenant_id=Depends(attach_tenant)):
    calls["echo"] += 1
    return {"run": calls["echo"]}


@gate_app.get("/missing")
@cached(endpoint="missing", ttl_seconds=60)
async def missing(request: Request, tenant_id=Depends(attach_tenant)):
    calls["missing"] += 1
    raise HTTPException(status_code=404, detail="nope")


@gate_app.get("/teapot")
@cached(endpoint="teapot", ttl_seconds=60)
async def teapot(request: Request, tenant_id=Depends(attach_tenant)):
    calls["teapot"] += 1
    return JSONResponse(status_code=418, content={"run": calls["teapot"]})


@gate_app.get("/text")
@cached(endpoint="text", ttl_seconds=60)
async def text(request: Request, tenant_id=Depends(attach_tenant)):
    calls["text"] += 1
    return PlainTextResponse(f"run {calls['text']}")


@gate_app.get("/tags")
@cached(endpoint="tags", ttl_seconds=60)
async def tags(request: Request, tag: Optional[List[str]] = Query(None), tenant_id=Depends(attach_tenant)):
    calls["tags"] += 1
    return {"tags": tag}


class PublicAccount(BaseModel):
    name: str
    nickname: Optional[str] = None


def _account_row() -> dict:
    calls["account"] += 1
    return {"name": "alice", "password_hash": "secret", "nickname": None}


@gate_app.get("/account", response_model=PublicAccount, response_model_exclude_none=True)
@cached(endpoint="account", ttl_seconds=60)
async def account(request: Request, tenant_id=Depends(attach_tenant)):
    return _account_row()


@gate_app.get("/account-uncached", response_model=PublicAccount, response_model_exclude_none=True)
async def account_uncached(request: Request, tenant_id=Depends(attach_tenant)):
    return _account_row()


@gate_app.get("/accepted", status_code=202)
@cached(endpoint="accepted", ttl_seconds=60)
async def accepted(request: Request, response: Response, tenant_id=Depends(attach_tenant)):
    calls["accepted"] += 1
    response.headers["X-Run"] = str(calls["accepted"])
    return {"run": calls["accepted"]}


@pytest.fixture(autouse=True)
def _reset_calls():
    for name in calls:
        calls[name] = 0


@pytest.fixture
def gate_client():
    return TestClient(gate_app)


def _as(user: str) -> dict:
    return {"X-User-Id": user}


def test_second_get_is_served_from_cache(gate_client, fresh_cache):
    first = gate_client.get("/items", headers=_as("1"))
    second = gate_client.get("/items", headers=_as("1"))

    assert first.status_code == second.status_code == 200
    assert calls["items"] == 1
    assert second.content == first.content
    assert second.headers["content-type"] == first.headers["content-type"]
    assert asyncio.run(fresh_cache.size_and_enumerate()) == (1, ["user:1:items"])


def test_tenants_never_share_entries(gate_client):
    r1 = gate_client.get("/items", headers=_as("1"))
    r2 = gate_client.get("/items", headers=_as("2"))

    assert calls["items"] == 2
    assert r1.json()["tenant"] == "1"
    assert r2.json()["tenant"] == "2"
    assert gate_client.get("/items", headers=_as("2")).json()["tenant"] == "2"
    assert calls["items"] == 2


def test_anonymous_requests_bypass_cache(gate_client, fresh_cache):
    gate_client.get("/items")
    gate_client.get("/items")

    assert calls["items"] == 2
    assert asyncio.run(fresh_cache.size_and_enumerate()) == (0, [])


def test_query_parameters_are_part_of_the_key(gate_client):
    gate_client.get("/items?limit=10", headers=_as("1"))
    gate_client.get("/items?limit=20", headers=_as("1"))
    assert calls["items"] == 2

    gate_client.get("/items?a=1&b=2", headers=_as("1"))
    gate_client.get("/items?b=2&a=1", headers=_as("1"))
    assert calls["items"] == 3


def test_path_parameters_are_part_of_the_key(gate_client, fresh_cache):
    gate_client.get("/things/3", headers=_as("7"))
    gate_client.get("/things/3", headers=_as("7"))
    gate_client.get("/things/4", headers=_as("7"))

    assert calls["thing"] == 2
    _, keys = asyncio.run(fresh_cache.size_and_enumerate())
    assert sorted(keys) == ["user:7:thing:thing_id=3", "user:7:thing:thing_id=4"]


def test_non_get_requests_pass_through(gate_client, fresh_cache):
    gate_client.post("/echo", headers=_as("1"))
    gate_client.post("/echo", headers=_as("1"))

    assert calls["echo"] == 2
    assert asyncio.run(fresh_cache.size_and_enumerate()) == (0, [])


def test_errors_are_never_cached(gate_client, fresh_cache):
    assert gate_client.get("/missing", headers=_as("1")).status_code == 404
    assert gate_client.get("/missing", headers=_as("1")).status_code == 404
    assert calls["missing"] == 2

    assert gate_client.get("/teapot", headers=_as("1")).status_code == 418
    assert gate_client.get("/teapot", headers=_as("1")).status_code == 418
    assert calls["teapot"] == 2

    assert asyncio.run(fresh_cache.size_and_enumerate()) == (0, [])


def test_non_json_responses_are_replayed_as_is(gate_client):
    first = gate_client.get("/text", headers=_as("1"))
    second = gate_client.get("/text", headers=_as("1"))

    assert calls["text"] == 1
    assert second.text == first.text == "run 1"
    assert second.headers["content-type"].startswith("text/plain")


def test_invalidate_forces_handler_to_run_again(gate_client):
    gate_client.get("/items", headers=_as("1"))
    gate_client.get("/items", headers=_as("1"))
    assert calls["items"] == 1

    asyncio.run(invalidate("1", "items"))

    assert gate_client.get("/items", headers=_as("1")).json()["run"] == 2
    assert calls["items"] == 2


def test_lookup_failure_is_treated_as_miss(gate_client, fresh_cache, monkeypatch):
    async def exploding_get(key):
        raise RuntimeError("backend exploded")

    monkeypatch.setattr(fresh_cache, "get", exploding_get)

    assert gate_client.get("/items", headers=_as("1")).status_code == 200
    assert gate_client.get("/items", headers=_as("1")).status_code == 200
    assert calls["items"] == 2


def test_unusable_tenant_id_is_treated_as_miss(gate_client, fresh_cache):
    # ':' would make prefix invalidation ambiguous, so no key is derived and nothing is stored
    assert gate_client.get("/items", headers=_as("1:2")).status_code == 200
    assert gate_client.get("/items", headers=_as("1:2")).status_code == 200
    assert calls["items"] == 2
    assert asyncio.run(fresh_cache.size_and_enumerate()) == (0, [])


def test_failing_redis_never_fails_requests(gate_client, monkeypatch):
    remote = RedisBackend(client=BrokenRedis(), backoff_step_ms=0)
    asyncio.run(remote.connect())
    selector = BackendSelector(LocalFallbackBackend(), remote)
    monkeypatch.setattr("tenant_cache.services.cache_factory._cache_singleton", selector)

    assert gate_client.get("/items", headers=_as("1")).status_code == 200
    assert selector.health() == "fallback"
    assert gate_client.get("/items", headers=_as("1")).status_code == 200
    assert gate_client.get("/items", headers=_as("1")).status_code == 200
    # The first lookup demoted to the fallback, which then stored the first response
    assert calls["items"] == 1


def test_decorator_rejects_bad_configuration():
    with pytest.raises(ValueError):
        cached(endpoint="", ttl_seconds=60)
    with pytest.raises(ValueError):
        cached(endpoint="items", ttl_seconds=0)


def test_repeated_query_values_are_all_part_of_the_key(gate_client, fresh_cache):
    first = gate_client.get("/tags?tag=a&tag=b", headers=_as("1"))
    second = gate_client.get("/tags?tag=b", headers=_as("1"))

    assert first.json() == {"tags": ["a", "b"]}
    assert second.json() == {"tags": ["b"]}
    assert calls["tags"] == 2

    # Value order is kept and a literal comma is not a second value
    assert gate_client.get("/tags?tag=b&tag=a", headers=_as("1")).json() == {"tags": ["b", "a"]}
    assert gate_client.get("/tags?tag=a,b", headers=_as("1")).json() == {"tags": ["a,b"]}
    assert calls["tags"] == 4

    assert gate_client.get("/tags?tag=a&tag=b", headers=_as("1")).json() == {"tags": ["a", "b"]}
    assert calls["tags"] == 4
    _, keys = asyncio.run(fresh_cache.size_and_enumerate())
    assert sorted(keys) == [
        "user:1:tags:tag=a%2Cb",
        "user:1:tags:tag=a,b",
        "user:1:tags:tag=b",
        "user:1:tags:tag=b,a",
    ]


def test_response_model_is_applied_on_miss_and_hit(gate_client):
    plain = gate_client.get("/account-uncached", headers=_as("1"))
    miss = gate_client.get("/account", headers=_as("1"))
    hit = gate_client.get("/account", headers=_as("1"))

    assert plain.json() == {"name": "alice"}
    assert miss.status_code == hit.status_code == plain.status_code == 200
    assert miss.content == hit.content == plain.content
    assert hit.headers["content-type"] == plain.headers["content-type"]
    # one run for the uncached route, one for the cached miss
    assert calls["account"] == 2


def test_declared_status_code_and_response_headers_are_kept(gate_client):
    miss = gate_client.get("/accepted", headers=_as("1"))
    hit = gate_client.get("/accepted", headers=_as("1"))

    assert miss.status_code == hit.status_code == 202
    assert miss.headers["X-Run"] == "1"
    assert hit.json() == miss.json() == {"run": 1}
    assert calls["accepted"] == 1
