"""Budget schemas for request/response validation."""

from datetime import date as date_type, datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator, model_validator

from budget_planner.models.budget import BudgetStrategy, BudgetType, CategoryGroup, RolloverType


class BudgetCategoryCreate(BaseModel):
    """Schema for adding a category line to a budget."""
    category_id: Optional[UUID] = Field(None, description="Spending or income category")
    transfer_account_id: Optional[UUID] = Field(None, description="Destination account")
    is_transfer: bool = Field(False, description="Line tracks transfers into an account")
    category_group: Optional[CategoryGroup] = None
    amount: Decimal = Field(..., ge=0, description="Budgeted amount (percent of income when income-linked)")
    is_income: bool = False
    rollover_type: RolloverType = RolloverType.NONE
    rollover_cap: Optional[Decimal] = Field(None, ge=0)
    flex_group: Optional[str] = Field(None, max_length=100)
    alert_warn_percent: int = Field(80, ge=1, le=100)
    alert_critical_percent: int = Field(95, ge=1, le=100)
    notes: Optional[str] = None
    sort_order: int = 0

    @model_validator(mode="after")
    def validate_target(self) -> "BudgetCategoryCreate":
        """A line targets either a category or a transfer account."""
        if self.is_transfer and self.transfer_account_id is None:
            raise ValueError("transfer_account_id is required for transfer lines")
        if not self.is_transfer and self.category_id is None:
            raise ValueError("category_id is required")
        return self


class BudgetCategoryUpdate(BaseModel):
    """Schema for updating a budget category line."""
    category_group: Optional[CategoryGroup] = None
    amount: Optional[Decimal] = Field(None, ge=0)
    is_income: Optional[bool] = None
    rollover_type: Optional[RolloverType] = None
    rollover_cap: Optional[Decimal] = Field(None, ge=0)
    flex_group: Optional[str] = Field(None, max_length=100)
    alert_warn_percent: Optional[int] = Field(None, ge=1, le=100)
    alert_critical_percent: Optional[int] = Field(None, ge=1, le=100)
    notes: Optional[str] = None
    sort_order: Optional[int] = None


class BulkCategoryAmount(BaseModel):
    """New amount for one budget category line."""
    id: UUID
    amount: Decimal = Field(..., ge=0)


class BulkCategoryAmountUpdate(BaseModel):
    """Schema for updating several line amounts at once."""
    categories: List[BulkCategoryAmount] = Field(..., min_length=1)


class BudgetCreate(BaseModel):
    """Schema for creating a new budget."""
    name: str = Field(..., min_length=1, max_length=255, description="Budget name")
    description: Optional[str] = None
    budget_type: BudgetType = BudgetType.MONTHLY
    period_start: date_type = Field(..., description="Budget start date")
    period_end: Optional[date_type] = Field(None, description="Budget end date")
    base_income: Optional[Decimal] = Field(None, ge=0)
    income_linked: bool = False
    strategy: BudgetStrategy = BudgetStrategy.FIXED
    currency_code: str = Field("USD", min_length=3, max_length=3)
    config: Dict[str, Any] = Field(default_factory=dict)
    categories: List[BudgetCategoryCreate] = Field(default_factory=list)

    @field_validator("period_end")
    @classmethod
    def validate_period(cls, v: Optional[date_type], info) -> Optional[date_type]:
        """Validate period_end is after period_start."""
        if v is not None and "period_start" in info.data and v < info.data["period_start"]:
            raise ValueError("period_end must be after period_start")
        return v


class BudgetUpdate(BaseModel):
    """Schema for updating a budget."""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    budget_type: Optional[BudgetType] = None
    period_start: Optional[date_type] = None
    period_end: Optional[date_type] = None
    base_income: Optional[Decimal] = Field(None, ge=0)
    income_linked: Optional[bool] = None
    strategy: Optional[BudgetStrategy] = None
    is_active: Optional[bool] = None
    config: Optional[Dict[str, Any]] = None


class BudgetCategoryResponse(BaseModel):
    """Schema for budget category line response."""
    id: UUID
    budget_id: UUID
    category_id: Optional[UUID]
    transfer_account_id: Optional[UUID]
    is_transfer: bool
    display_name: str
    category_group: Optional[str]
    amount: Decimal
    is_income: bool
    rollover_type: str
    rollover_cap: Optional[Decimal]
    flex_group: Optional[str]
    alert_warn_percent: int
    alert_critical_percent: int
    notes: Optional[str]
    sort_order: int

    model_config = {"from_attributes": True}


class BudgetResponse(BaseModel):
    """Schema for budget response."""
    id: UUID
    user_id: UUID
    name: str
    description: Optional[str]
    budget_type: str
    period_start: date_type
    period_end: Optional[date_type]
    base_income: Optional[Decimal]
    income_linked: bool
    strategy: str
    is_active: bool
    currency_code: str
    config: Dict[str, Any]
    categories: List[BudgetCategoryResponse] = []
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class CategoryBreakdownResponse(BaseModel):
    """Budgeted vs. spent for one line in the current period."""
    budget_category_id: UUID
    category_id: Optional[UUID]
    category_name: str
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float
    is_income: bool
    percentage: Optional[Decimal] = None

    model_config = {"from_attributes": True}


class BudgetSummaryResponse(BaseModel):
    """Schema for the current-period budget summary."""
    budget_id: UUID
    budget_name: str
    period_start: date_type
    period_end: date_type
    total_budgeted: Decimal
    total_spent: Decimal
    total_income: Decimal
    remaining: Decimal
    percent_used: float
    income_linked: bool
    actual_income: Optional[Decimal]
    category_breakdown: List[CategoryBreakdownResponse]

    model_config = {"from_attributes": True}


class BudgetVelocityResponse(BaseModel):
    """Schema for spending pace of the current period."""
    daily_burn_rate: Decimal
    projected_total: Decimal
    budget_total: Decimal
    projected_variance: Decimal
    safe_daily_spend: Decimal
    days_elapsed: int
    days_remaining: int
    total_days: int
    current_spent: Decimal
    pace_status: str

    model_config = {"from_attributes": True}


class DashboardCategoryResponse(BaseModel):
    """Top category entry of the dashboard summary."""
    category_name: str
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float

    model_config = {"from_attributes": True}


class DashboardSummaryResponse(BaseModel):
    """Schema for the dashboard budget widget."""
    budget_id: UUID
    budget_name: str
    total_budgeted: Decimal
    total_spent: Decimal
    remaining: Decimal
    percent_used: float
    safe_daily_spend: Decimal
    days_remaining: int
    top_categories: List[DashboardCategoryResponse]

    model_config = {"from_attributes": True}


class CategoryBudgetStatusResponse(BaseModel):
    """Budget status of one category."""
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float

    model_config = {"from_attributes": True}
