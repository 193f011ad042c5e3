# tenant_cache/schemas/budget.py

from pydantic import BaseModel, Field, ConfigDict, field_serializer, model_validator
from typing import Optional, Literal
from decimal import Decimal
from datetime import date, datetime, timezone


class BudgetWrite(BaseModel):
    """Payload for POST /budgets and PUT /budgets/{id}."""
    name: str = Field(..., min_length=1, max_length=120, description="Display name of the budget")
    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Budgeted amount")
    period: Literal["weekly", "monthly", "yearly"] = Field(..., description="Budget period")
    startDate: date = Field(..., description="First day the budget applies")
    endDate: Optional[date] = Field(None, description="Last day the budget applies (open-ended if omitted)")

    @model_validator(mode="after")
    def _check_dates(self):
        if self.endDate is not None and self.endDate < self.startDate:
            raise ValueError("endDate must not be before startDate")
        return self


class BudgetRead(BaseModel):
    """
    DTO for reading a budget from the API.
    Built straight from the ORM row; timestamps are emitted in UTC with 'Z'.
    """
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    amount: Decimal
    period: str
    startDate: date = Field(validation_alias="start_date")
    endDate: Optional[date] = Field(None, validation_alias="end_date")
    updatedAt: datetime = Field(validation_alias="updated_at")

    @field_serializer("amount")
    def _ser_amount(self, v: Decimal) -> str:
        return f"{v:.2f}"

    @field_serializer("updatedAt")
    def _ser_updated_at(self, v: datetime) -> str:
        if v.tzinfo is None:
            v = v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")
