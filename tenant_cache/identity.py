# tenant_cache/identity.py
"""
Tenant identity as seen by the cache.

Authentication itself lives outside this service; the gateway in front of it
forwards the authenticated user's id in the X-User-Id header. The dependencies
below attach that id to request.state, which is the only signal the cache gate
reads. No id, no caching.
"""
from typing import Optional

from fastapi import Header, HTTPException, Request

TENANT_STATE_ATTR = "tenant_id"


def get_tenant_id(request: Request) -> Optional[str]:
    tenant_id = getattr(request.state, TENANT_STATE_ATTR, None)
    if tenant_id is None or tenant_id == "":
        return None
    return str(tenant_id)


def attach_tenant(request: Request, x_user_id: Optional[str] = Header(None)) -> Optional[str]:
    """Attach the caller's identity when present; anonymous requests pass through."""
    if x_user_id:
        setattr(request.state, TENANT_STATE_ATTR, x_user_id.strip())
    return get_tenant_id(request)


def require_tenant(request: Request, x_user_id: Optional[str] = Header(None)) -> str:
    """Same as attach_tenant, but rejects anonymous requests with 401."""
    tenant_id = attach_tenant(request, x_user_id)
    if tenant_id is None:
        raise HTTPException(status_code=401, detail="Access token required")
    return tenant_id
