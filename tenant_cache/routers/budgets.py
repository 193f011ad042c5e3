# tenant_cache/routers/budgets.py

from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from sqlalchemy.orm import Session

from tenant_cache.database import get_db
from tenant_cache.identity import require_tenant
from tenant_cache.schemas.budget import BudgetWrite
from tenant_cache.services.budgets_service import (
    create_budget as svc_create_budget,
    delete_budget as svc_delete_budget,
    get_budget as svc_get_budget,
    list_budgets as svc_list_budgets,
    update_budget as svc_update_budget,
)
from tenant_cache.services.cache_gate import cached
from tenant_cache.services.invalidation import invalidate

# Cache endpoint names: the listing and the single-resource view are invalidated together
LIST_ENDPOINT = "budgets"
DETAIL_ENDPOINT = "budget"

router = APIRouter(prefix="/budgets", tags=["budgets"])


async def _invalidate_budget_views(tenant_id: str) -> None:
    await invalidate(tenant_id, LIST_ENDPOINT)
    await invalidate(tenant_id, DETAIL_ENDPOINT)


@router.get("")
@cached(endpoint=LIST_ENDPOINT, ttl_seconds=300)
async def list_budgets(
    request: Request,
    limit: Optional[int] = Query(None, ge=1, le=500),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db),
    tenant_id: str = Depends(require_tenant),
):
    """
    GET /budgets
    Returns the caller's budgets, oldest first. Cached per user and per limit/offset for 5 minutes.
    """
    return svc_list_budgets(db, tenant_id, limit=limit, offset=offset)


@router.get("/{budget_id}")
@cached(endpoint=DETAIL_ENDPOINT, ttl_seconds=300)
async def get_budget(
    request: Request,
    budget_id: int,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(require_tenant),
):
    """
    GET /budgets/{budget_id}
    Status codes:
      - 200: Found (cached)
      - 404: Not found or owned by another user (never cached)
    """
    budget = svc_get_budget(db, tenant_id, budget_id)
    if budget is None:
        raise HTTPException(status_code=404, detail="Budget not found")
    return budget


@router.post("", status_code=201)
async def create_budget(
    payload: BudgetWrite,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(require_tenant),
):
    """
    POST /budgets
    Persists the budget, then drops the caller's cached budget views.
    """
    budget = svc_create_budget(db, tenant_id, payload)
    await _invalidate_budget_views(tenant_id)
    return budget


@router.put("/{budget_id}")
async def update_budget(
    budget_id: int,
    payload: BudgetWrite,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(require_tenant),
):
    budget = svc_update_budget(db, tenant_id, budget_id, payload)
    if budget is None:
        # Nothing was written, so nothing to invalidate
        raise HTTPException(status_code=404, detail="Budget not found")
    await _invalidate_budget_views(tenant_id)
    return budget


@router.delete("/{budget_id}", status_code=204)
async def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    tenant_id: str = Depends(require_tenant),
):
    if not svc_delete_budget(db, tenant_id, budget_id):
        raise HTTPException(status_code=404, detail="Budget not found")
    await _invalidate_budget_views(tenant_id)
    return Response(status_code=204)
