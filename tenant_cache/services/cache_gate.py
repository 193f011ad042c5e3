# tenant_cache/services/cache_gate.py
"""
Response caching for route handlers.

    @router.get("/budgets")
    @cached(endpoint="budgets", ttl_seconds=300)
    async def list_budgets(request: Request, ...): ...

Only GET requests carrying a tenant identity (request.state.tenant_id, set by
the auth dependency) are cached. A hit returns the stored response without
running the handler. A miss runs the handler and, for 2xx outcomes only,
stores the response in a background task that runs after it has been sent,
so a request cancelled before sending never writes anything. A plain return
value is rendered the way FastAPI would (response_model, status_code,
response_class) before it is stored, so cached and uncached routes answer alike.

Any failure inside the cache layer degrades to a miss; it never fails the request.
"""
import inspect
import json
import logging
from functools import wraps
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import quote

from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import ResponseValidationError
from fastapi.routing import APIRoute
from fastapi.utils import is_body_allowed_for_status_code
from pydantic import TypeAdapter, ValidationError
from starlette.background import BackgroundTask, BackgroundTasks
from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import Response

from tenant_cache.config import CACHE_DEFAULT_TTL_SECONDS
from tenant_cache.identity import get_tenant_id
from .cache_factory import BackendSelector, get_cache
from .keys import derive_key

logger = logging.getLogger(__name__)


def _find_request(args: tuple, kwargs: Dict[str, Any]) -> Optional[Request]:
    for value in (*args, *kwargs.values()):
        if isinstance(value, Request):
            return value
    return None


def _param_text(value: Any) -> str:
    # Percent-encoded so "a,b", "x&y=z" or "k=v" inside a value cannot mimic other params
    return quote(str(value), safe="")


def _request_params(request: Request) -> Dict[str, Any]:
    """
    Every request parameter that can change the response, ready for derive_key().
    A repeated query name keeps all of its values in request order, joined with ','.
    Path params win over query params of the same name.
    """
    grouped: Dict[str, List[str]] = {}
    for name, value in request.query_params.multi_items():
        grouped.setdefault(_param_text(name), []).append(_param_text(value))
    params: Dict[str, Any] = {name: ",".join(values) for name, values in grouped.items()}
    for name, value in request.path_params.items():
        params[_param_text(name)] = _param_text(value)
    return params


def _encode(response: Response) -> Optional[str]:
    try:
        body = bytes(response.body).decode("utf-8")
    except (AttributeError, UnicodeDecodeError):
        return None
    return json.dumps(
        {"statusCode": response.status_code, "mediaType": response.media_type, "body": body},
        separators=(",", ":"),
        ensure_ascii=False,
    )


def _decode(payload: str) -> Response:
    data = json.loads(payload)
    return Response(
        content=data["body"].encode("utf-8"),
        status_code=data["statusCode"],
        media_type=data.get("mediaType"),
    )


async def _store(cache: BackendSelector, key: str, payload: str, ttl_seconds: int) -> None:
    try:
        await cache.set(key, payload, ttl_seconds)
        logger.debug("cache_gate: stored %s (ttl=%ss)", key, ttl_seconds)
    except Exception:
        logger.exception("cache_gate: failed to store %s", key)


def _schedule(response: Response, kwargs: Dict[str, Any], task: BackgroundTask) -> None:
    """Run `task` after the response is sent, keeping any background work the handler already scheduled."""
    handler_tasks = next((v for v in kwargs.values() if isinstance(v, BackgroundTasks)), None)
    if response.background is None and handler_tasks is not None:
        handler_tasks.add_task(task.func, *task.args, **task.kwargs)
    elif response.background is None:
        response.background = task
    else:
        response.background = BackgroundTasks(tasks=[response.background, task])


def _sub_response(kwargs: Dict[str, Any]) -> Optional[Response]:
    # The `response: Response` parameter FastAPI injects for handlers that set headers or status
    return next((v for v in kwargs.values() if isinstance(v, Response)), None)


def _render(request: Request, result: Any, kwargs: Dict[str, Any]) -> Optional[Response]:
    """
    Build the response FastAPI would have sent for a handler's return value:
    validated and filtered through the route's response_model, with its
    status_code and response_class. None when the route is not an APIRoute.
    """
    route = request.scope.get("route")
    if not isinstance(route, APIRoute):
        return None

    if route.response_model is not None:
        adapter = TypeAdapter(route.response_model)
        try:
            value = adapter.validate_python(result, from_attributes=True)
        except ValidationError as e:
            raise ResponseValidationError(errors=e.errors(), body=result)
        content = adapter.dump_python(
            value,
            mode="json",
            include=route.response_model_include,
            exclude=route.response_model_exclude,
            by_alias=route.response_model_by_alias,
            exclude_unset=route.response_model_exclude_unset,
            exclude_defaults=route.response_model_exclude_defaults,
            exclude_none=route.response_model_exclude_none,
        )
    else:
        content = jsonable_encoder(result)

    response_class = getattr(route.response_class, "value", route.response_class)
    sub = _sub_response(kwargs)
    status_code = sub.status_code if sub is not None and sub.status_code else route.status_code
    response = response_class(content, status_code=status_code) if status_code else response_class(content)
    if not is_body_allowed_for_status_code(response.status_code):
        response.body = b""
    if sub is not None:
        response.headers.raw.extend(sub.headers.raw)
    return response


async def _call(func: Callable[..., Any], args: tuple, kwargs: Dict[str, Any]) -> Any:
    if inspect.iscoroutinefunction(func):
        return await func(*args, **kwargs)
    return await run_in_threadpool(func, *args, **kwargs)


def cached(endpoint: str, ttl_seconds: int = CACHE_DEFAULT_TTL_SECONDS) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Cache a route handler's successful GET responses per tenant.

    Args:
        endpoint: Logical endpoint name used in the cache key and by invalidate().
        ttl_seconds: Lifetime of a stored response.

    The handler must accept the `Request` (e.g. `request: Request`) so the gate
    can read the method, parameters and tenant identity.
    """
    if not endpoint:
        raise ValueError("cached() requires an endpoint name")
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

    def decorator(func: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            request = _find_request(args, kwargs)
            if request is None:
                logger.warning("cache_gate: %s has no Request parameter; caching disabled", func.__name__)
                return await _call(func, args, kwargs)
            if request.method != "GET":
                return await _call(func, args, kwargs)
            tenant_id = get_tenant_id(request)
            if tenant_id is None:
                return await _call(func, args, kwargs)

            cache = get_cache()
            key: Optional[str] = None
            try:
                key = derive_key(tenant_id, endpoint, _request_params(request))
                stored = await cache.get(key)
                if stored is not None:
                    logger.debug("cache_gate: hit for tenant %s on %s", tenant_id, endpoint)
                    return _decode(stored)
            except Exception:
                logger.exception("cache_gate: lookup failed on %s; treating as miss", endpoint)

            result = await _call(func, args, kwargs)
            if key is None:
                return result

            response = result if isinstance(result, Response) else _render(request, result, kwargs)
            if response is None:
                return result
            if 200 <= response.status_code < 300:
                payload = _encode(response)
                if payload is not None:
                    _schedule(response, kwargs, BackgroundTask(_store, cache, key, payload, ttl_seconds))
            return response

        return wrapper

    return decorator
