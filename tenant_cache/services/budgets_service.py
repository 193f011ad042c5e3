# tenant_cache/services/budgets_service.py

from typing import Optional, Dict, Any, List
from sqlalchemy import select
from sqlalchemy.orm import Session
from tenant_cache.models.budget import Budget
from tenant_cache.schemas.budget import BudgetRead, BudgetWrite


def _to_json(budget: Budget) -> Dict[str, Any]:
    return BudgetRead.model_validate(budget).model_dump(mode="json")


def _owned(db: Session, user_id: str, budget_id: int) -> Optional[Budget]:
    return db.execute(
        select(Budget).where(Budget.id == budget_id, Budget.user_id == user_id)
    ).scalar_one_or_none()


def list_budgets(db: Session, user_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Dict[str, Any]]:
    """All budgets of one user, oldest first."""
    stmt = select(Budget).where(Budget.user_id == user_id).order_by(Budget.id).offset(offset)
    if limit is not None:
        stmt = stmt.limit(limit)
    return [_to_json(b) for b in db.execute(stmt).scalars()]


def get_budget(db: Session, user_id: str, budget_id: int) -> Optional[Dict[str, Any]]:
    budget = _owned(db, user_id, budget_id)
    return _to_json(budget) if budget is not None else None


def create_budget(db: Session, user_id: str, data: BudgetWrite) -> Dict[str, Any]:
    budget = Budget(
        user_id=user_id,
        name=data.name,
        amount=data.amount,
        period=data.period,
        start_date=data.startDate,
        end_date=data.endDate,
    )
    db.add(budget)
    db.commit()
    db.refresh(budget)
    return _to_json(budget)


def update_budget(db: Session, user_id: str, budget_id: int, data: BudgetWrite) -> Optional[Dict[str, Any]]:
    """Returns None when the budget does not exist or belongs to someone else."""
    budget = _owned(db, user_id, budget_id)
    if budget is None:
        return None
    budget.name = data.name
    budget.amount = data.amount
    budget.period = data.period
    budget.start_date = data.startDate
    budget.end_date = data.endDate
    db.commit()
    db.refresh(budget)
    return _to_json(budget)


def delete_budget(db: Session, user_id: str, budget_id: int) -> bool:
    budget = _owned(db, user_id, budget_id)
    if budget is None:
        return False
    db.delete(budget)
    db.commit()
    return True
