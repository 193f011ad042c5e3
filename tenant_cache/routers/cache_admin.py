# tenant_cache/routers/cache_admin.py
from fastapi import APIRouter, Depends

from tenant_cache.identity import require_tenant
from tenant_cache.services.cache_factory import get_cache
from tenant_cache.services.invalidation import invalidate
from tenant_cache.services.keys import derive_pattern

router = APIRouter(prefix="/cache", tags=["cache"])


@router.get("/stats")
async def cache_stats(tenant_id: str = Depends(require_tenant)):
    """
    Diagnostic view of the cache: active backend, total key count, and the
    caller's own keys. Only the caller's key range is scanned; other users'
    keys are counted but never listed.
    """
    cache = get_cache()
    own = await cache.keys_by_prefix_pattern(derive_pattern(tenant_id))
    return {
        "backend": cache.health(),
        "keys": await cache.count(),
        "ownKeys": sorted(own),
    }


@router.delete("")
async def clear_own_cache(tenant_id: str = Depends(require_tenant)):
    """DELETE /cache: drop every cached response of the caller."""
    removed = await invalidate(tenant_id)
    return {"removed": removed}
