"""Budget generator: suggests category amounts from past spending."""

from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional
from uuid import UUID

import numpy as np
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.models.budget import Budget
from budget_planner.models.category import Category
from budget_planner.schemas.budget import BudgetCreate
from budget_planner.schemas.budget_report import BudgetProfile
from budget_planner.services.budget_dates import trailing_months
from budget_planner.services.budget_service import BudgetService
from budget_planner.services.spending import MonthKey, ZERO
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")
FIXED_EXPENSE_MAX_CV = 0.1
SEASONAL_PEAK_SIGMA = 1.5

PROFILE_PERCENTILES = {
    BudgetProfile.COMFORTABLE: 75,
    BudgetProfile.ON_TRACK: 50,
    BudgetProfile.AGGRESSIVE: 25,
}


@dataclass
class CategoryAnalysis:
    """Monthly statistics and the suggested amount for one category."""

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


@dataclass
class GeneratedBudget:
    """Suggested budget with the totals it implies."""

    profile: BudgetProfile
    categories: List[CategoryAnalysis]
    estimated_monthly_income: Decimal
    total_budgeted: Decimal
    projected_monthly_savings: Decimal
    analysis_start: date_type
    analysis_end: date_type
    analysis_months: int


def _money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(CENTS, rounding=ROUND_HALF_UP)


def is_fixed_expense(amounts: Iterable[float]) -> bool:
    """True when the months with spending vary by less than 10% of their mean."""
    non_zero = np.array([a for a in amounts if a > 0])
    if non_zero.size < 2:
        return False
    mean = float(non_zero.mean())
    if mean == 0:
        return False
    return float(non_zero.std()) / mean < FIXED_EXPENSE_MAX_CV


def detect_seasonal_peaks(amounts: List[float], month_numbers: List[int]) -> List[int]:
    """Month numbers whose amount exceeds mean + 1.5 * stddev of the whole window."""
    if len(amounts) < 3:
        return []
    values = np.array(amounts)
    mean = float(values.mean())
    std = float(values.std())
    if mean == 0 or std == 0:
        return []
    threshold = mean + SEASONAL_PEAK_SIGMA * std
    return [month_numbers[int(i)] for i in np.flatnonzero(values > threshold)]


def analyse_category(
    category: Category,
    is_income: bool,
    amounts: List[float],
    month_numbers: List[int],
    profile: BudgetProfile,
) -> CategoryAnalysis:
    """Statistics of one category's monthly amounts, zero months included.

    Percentiles interpolate linearly between the sorted months.
    """
    values = np.array(amounts, dtype=float)
    p25, median, p75 = (float(np.percentile(values, p)) for p in (25, 50, 75))
    suggested = float(np.percentile(values, PROFILE_PERCENTILES[profile]))

    return CategoryAnalysis(
        category_id=category.id,
        category_name=category.display_name,
        is_income=is_income,
        average=_money(float(values.mean())),
        median=_money(median),
        p25=_money(p25),
        p75=_money(p75),
        min=_money(float(values.min())),
        max=_money(float(values.max())),
        std_dev=_money(float(values.std())),
        monthly_amounts=[_money(a) for a in amounts],
        monthly_occurrences=int((values > 0).sum()),
        is_fixed=is_fixed_expense(amounts),
        seasonal_months=detect_seasonal_peaks(amounts, month_numbers),
        suggested=_money(suggested),
    )


class BudgetGeneratorService:
    """Builds budget suggestions from the user's transaction history."""

    def __init__(self, db: AsyncSession, budget_service: Optional[BudgetService] = None):
        """Initialize budget generator.

        Args:
            db: Database session
            budget_service: Budget service used to save applied budgets
        """
        self.db = db
        self.budget_service = budget_service or BudgetService(db)
        self.spending = self.budget_service.spending

    async def _load_categories(
        self, user_id: UUID, category_ids: Iterable[UUID]
    ) -> Dict[UUID, Category]:
        category_ids = list(category_ids)
        if not category_ids:
            return {}
        stmt = select(Category).where(
            and_(Category.user_id == user_id, Category.id.in_(category_ids))
        )
        result = await self.db.execute(stmt)
        return {category.id: category for category in result.scalars().all()}

    async def generate(
        self,
        user_id: UUID,
        analysis_months: int = 6,
        profile: BudgetProfile = BudgetProfile.ON_TRACK,
        today: Optional[date_type] = None,
    ) -> GeneratedBudget:
        """Suggest a monthly amount per category from the last complete months.

        Expense categories are analysed from outflows and income categories
        from inflows. The profile picks the percentile used as suggestion:
        p75 for COMFORTABLE, the median for ON_TRACK and p25 for AGGRESSIVE.

        Args:
            user_id: User ID
            analysis_months: Number of complete months before the current one
            profile: Budget profile
            today: Reference date (defaults to today, UTC)

        Returns:
            Income categories then expense categories, each by median descending

        Raises:
            ValueError: If ``analysis_months`` is not positive
        """
        if analysis_months < 1:
            raise ValueError("analysis_months must be at least 1")

        months = trailing_months(analysis_months + 1, today)[:-1]
        start, end = months[0].period_start, months[-1].period_end
        keys: List[MonthKey] = [(m.period_start.year, m.period_start.month) for m in months]
        month_numbers = [month for _, month in keys]

        outflows = await self.spending.monthly_spending_by_category(user_id, start, end, sign=-1)
        inflows = await self.spending.monthly_spending_by_category(user_id, start, end, sign=1)
        categories = await self._load_categories(user_id, set(outflows) | set(inflows))

        def analyse(totals, is_income: bool) -> List[CategoryAnalysis]:
            analyses = []
            for category_id, by_month in totals.items():
                category = categories.get(category_id)
                if category is None or category.is_income != is_income:
                    continue
                amounts = [float(by_month.get(key, ZERO)) for key in keys]
                analyses.append(
                    analyse_category(category, is_income, amounts, month_numbers, profile)
                )
            analyses.sort(key=lambda a: a.median, reverse=True)
            return analyses

        income = analyse(inflows, True)
        expenses = analyse(outflows, False)

        estimated_income = sum((a.median for a in income), ZERO)
        total_budgeted = sum((a.suggested for a in expenses), ZERO)

        logger.info(
            "Budget generated",
            user_id=str(user_id),
            profile=profile.value,
            analysis_months=analysis_months,
            income_categories=len(income),
            expense_categories=len(expenses),
        )

        return GeneratedBudget(
            profile=profile,
            categories=income + expenses,
            estimated_monthly_income=estimated_income,
            total_budgeted=total_budgeted,
            projected_monthly_savings=estimated_income - total_budgeted,
            analysis_start=start,
            analysis_end=end,
            analysis_months=analysis_months,
        )

    async def apply(self, user_id: UUID, data: BudgetCreate) -> Budget:
        """Save a (possibly edited) generated budget.

        Raises:
            ValueError: If a category line is invalid
        """
        budget = await self.budget_service.create_budget(user_id, data)
        logger.info(
            "Generated budget applied",
            budget_id=str(budget.id),
            user_id=str(user_id),
            categories=len(data.categories),
        )
        return budget
