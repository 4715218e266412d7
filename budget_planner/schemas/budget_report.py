"""Budget report and generator schemas."""

from datetime import date as date_type
from decimal import Decimal
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field


class BudgetProfile(str, Enum):
    """How tight the suggested amounts of a generated budget are."""

    COMFORTABLE = "COMFORTABLE"
    ON_TRACK = "ON_TRACK"
    AGGRESSIVE = "AGGRESSIVE"


class TrendPointResponse(BaseModel):
    """Budgeted vs. actual expenses for one month."""
    month: str
    budgeted: Decimal
    actual: Decimal
    variance: Decimal
    percent_used: float

    model_config = {"from_attributes": True}


class CategoryTrendResponse(BaseModel):
    """Monthly trend of one category."""
    category_id: UUID
    category_name: str
    data: List[TrendPointResponse]

    model_config = {"from_attributes": True}


class HealthScoreBreakdownResponse(BaseModel):
    base_score: int
    over_budget_deductions: float
    under_budget_bonus: float
    trend_bonus: float
    essential_weight_penalty: float

    model_config = {"from_attributes": True}


class CategoryHealthResponse(BaseModel):
    category_id: Optional[UUID]
    category_name: str
    percent_used: float
    impact: float
    category_group: Optional[str]

    model_config = {"from_attributes": True}


class HealthScoreResponse(BaseModel):
    """Schema for the budget health score."""
    score: int = Field(..., ge=0, le=100)
    label: str
    breakdown: HealthScoreBreakdownResponse
    category_scores: List[CategoryHealthResponse]

    model_config = {"from_attributes": True}


class MonthlyAverageResponse(BaseModel):
    month: int
    month_name: str
    average: Decimal

    model_config = {"from_attributes": True}


class SeasonalPatternResponse(BaseModel):
    """Spend by calendar month for one category."""
    category_id: UUID
    category_name: str
    monthly_averages: List[MonthlyAverageResponse]
    high_months: List[int]
    typical_monthly_spend: Decimal

    model_config = {"from_attributes": True}


class FlexGroupCategoryResponse(BaseModel):
    category_id: Optional[UUID]
    category_name: str
    budgeted: Decimal
    spent: Decimal
    percent_used: float

    model_config = {"from_attributes": True}


class FlexGroupStatusResponse(BaseModel):
    """Combined status of the lines in one flex group."""
    group_name: str
    total_budgeted: Decimal
    total_spent: Decimal
    remaining: Decimal
    percent_used: float
    categories: List[FlexGroupCategoryResponse]

    model_config = {"from_attributes": True}


class DailySpendingResponse(BaseModel):
    date: date_type
    amount: Decimal

    model_config = {"from_attributes": True}


class GenerateBudgetRequest(BaseModel):
    """Schema for requesting a generated budget."""
    analysis_months: int = Field(6, ge=1, le=24, description="Complete months to analyse")
    profile: BudgetProfile = BudgetProfile.ON_TRACK


class CategoryAnalysisResponse(BaseModel):
    """Monthly statistics and suggestion for one category."""
    category_id: UUID
    category_name: str
    is_income: bool
    average: Decimal
    median: Decimal
    p25: Decimal
    p75: Decimal
    min: Decimal
    max: Decimal
    std_dev: Decimal
    monthly_amounts: List[Decimal]
    monthly_occurrences: int
    is_fixed: bool
    seasonal_months: List[int]
    suggested: Decimal

    model_config = {"from_attributes": True}


class GeneratedBudgetResponse(BaseModel):
    """Schema for a generated budget suggestion."""
    profile: BudgetProfile
    categories: List[CategoryAnalysisResponse]
    estimated_monthly_income: Decimal
    total_budgeted: Decimal
    projected_monthly_savings: Decimal
    analysis_start: date_type
    analysis_end: date_type
    analysis_months: int

    model_config = {"from_attributes": True}
