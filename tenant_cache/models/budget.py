# models/budget.py

from sqlalchemy import Column, Integer, String, Date, DateTime, Numeric, Enum
from datetime import datetime, timezone
from tenant_cache.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Budget(Base):
    __tablename__ = "budgets"

    id = Column(Integer, primary_key=True, autoincrement=True)

    # Owner of the budget; every query is scoped by it
    user_id = Column(String(64), nullable=False, index=True)

    name = Column(String(120), nullable=False)

    amount = Column(Numeric(12, 2), nullable=False)

    # Budget period (weekly, monthly, yearly)
    period = Column(Enum("weekly", "monthly", "yearly", name="budget_period_enum"), nullable=False)

    start_date = Column(Date, nullable=False)

    # Optional end of the budget; open-ended when null
    end_date = Column(Date, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow, nullable=False)
