# tenant_cache/services/keys.py
"""
Cache key derivation. Single place for the key format.

    user:<tenantId>:<endpoint>[:<name>=<value>&<name>=<value>...]

Parameters are sorted by name so insertion order never changes the key.
Values are stringified as-is; None renders as "undefined" so that an omitted
parameter and an explicitly empty one never share a key.
"""
from typing import Any, Mapping, Optional

from tenant_cache.config import CACHE_KEY_PREFIX

KEY_SEP = ":"
WILDCARD = "*"
_FORBIDDEN = ("..", "//", KEY_SEP, WILDCARD)


def _segment(value: Any, name: str) -> str:
    """Stringify a tenant/endpoint segment and reject anything that would make prefix patterns ambiguous."""
    if value is None:
        raise ValueError(f"Cache key component {name!r} is required")
    text = str(value)
    if not text:
        raise ValueError(f"Cache key component {name!r} must not be empty")
    for bad in _FORBIDDEN:
        if bad in text:
            raise ValueError(f"Cache key component {name!r} must not contain {bad!r}")
    return text


def _param_value(value: Any) -> str:
    if value is None:
        return "undefined"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def derive_key(tenant_id: Any, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> str:
    """
    Build the cache key for one tenant's view of one endpoint.

    Raises ValueError when tenant_id is missing; callers must skip caching
    instead of inventing an identity.
    """
    tenant = _segment(tenant_id, "tenant_id")
    name = _segment(endpoint, "endpoint")
    base = f"{CACHE_KEY_PREFIX}{KEY_SEP}{tenant}{KEY_SEP}{name}"

    if not params:
        return base
    query = "&".join(f"{k}={_param_value(params[k])}" for k in sorted(params, key=str))
    return f"{base}{KEY_SEP}{query}"


def derive_pattern(tenant_id: Any, endpoint: Optional[str] = None) -> str:
    """Invalidation pattern covering every parameter variant of an endpoint, or all of a tenant's entries."""
    tenant = _segment(tenant_id, "tenant_id")
    if endpoint is None:
        return f"{CACHE_KEY_PREFIX}{KEY_SEP}{tenant}{KEY_SEP}{WILDCARD}"
    return f"{CACHE_KEY_PREFIX}{KEY_SEP}{tenant}{KEY_SEP}{_segment(endpoint, 'endpoint')}{WILDCARD}"


def pattern_prefix(pattern: str) -> str:
    """Strip the single trailing wildcard; mid-string wildcards are not supported."""
    prefix = pattern[:-1] if pattern.endswith(WILDCARD) else pattern
    if WILDCARD in prefix:
        raise ValueError(f"Only a trailing {WILDCARD!r} is supported in cache patterns: {pattern!r}")
    return prefix
