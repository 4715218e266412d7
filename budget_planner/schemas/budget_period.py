"""Budget period schemas."""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel


class BudgetPeriodCategoryResponse(BaseModel):
    """Schema for one category line of a period."""
    id: UUID
    budget_category_id: UUID
    category_id: Optional[UUID]
    budgeted_amount: Decimal
    rollover_in: Decimal
    actual_amount: Decimal
    effective_budget: Decimal
    rollover_out: Decimal

    model_config = {"from_attributes": True}


class BudgetPeriodResponse(BaseModel):
    """Schema for budget period response."""
    id: UUID
    budget_id: UUID
    period_start: date_type
    period_end: date_type
    actual_income: Decimal
    actual_expenses: Decimal
    total_budgeted: Decimal
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BudgetPeriodDetailResponse(BudgetPeriodResponse):
    """Budget period with its category lines."""
    period_categories: List[BudgetPeriodCategoryResponse] = []
