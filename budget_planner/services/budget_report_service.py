"""Budget reports: trends, health score, seasonality, flex groups and daily spend."""

from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional
from uuid import UUID

import numpy as np
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.config import Settings, settings as default_settings
from budget_planner.models.budget import Budget, CategoryGroup
from budget_planner.models.budget_period import BudgetPeriod, PeriodStatus
from budget_planner.services.budget_alert_service import percent_of
from budget_planner.services.budget_dates import (
    add_months,
    get_current_month_period_dates,
    month_label,
    month_name,
    trailing_months,
)
from budget_planner.services.budget_period_service import BudgetPeriodService
from budget_planner.services.budget_service import BudgetService, CategoryBreakdown
from budget_planner.services.spending import ZERO
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")

BASE_SCORE = 100
OVER_BUDGET_RATE = 0.3
OVER_BUDGET_MAX = 15.0
ESSENTIAL_WEIGHT = 1.5
ESSENTIAL_PENALTY_RATE = 0.1
ESSENTIAL_PENALTY_MAX = 5.0
UNDER_BUDGET_PERCENT = 80.0
UNDER_BUDGET_RATE = 0.05
UNDER_BUDGET_MAX = 3.0
TREND_RATE = 0.2
TREND_MAX = 5.0


def cents(value) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass
class TrendPoint:
    """Budgeted vs. actual expenses for one month."""

    month: str
    budgeted: Decimal
    actual: Decimal
    variance: Decimal
    percent_used: float


@dataclass
class CategoryTrendSeries:
    """Monthly trend of one category."""

    category_id: UUID
    category_name: str
    data: List[TrendPoint]


@dataclass
class HealthScoreBreakdown:
    """Components that add up to the health score."""

    base_score: int
    over_budget_deductions: float
    under_budget_bonus: float
    trend_bonus: float
    essential_weight_penalty: float


@dataclass
class CategoryHealth:
    """Effect of one expense line on the health score."""

    category_id: Optional[UUID]
    category_name: str
    percent_used: float
    impact: float
    category_group: Optional[str]


@dataclass
class HealthScore:
    """0-100 score of how well the current month follows the budget."""

    score: int
    label: str
    breakdown: HealthScoreBreakdown
    category_scores: List[CategoryHealth]


@dataclass
class MonthlyAverage:
    month: int
    month_name: str
    average: Decimal


@dataclass
class SeasonalPattern:
    """Average spend per calendar month and the months well above normal."""

    category_id: UUID
    category_name: str
    monthly_averages: List[MonthlyAverage]
    high_months: List[int]
    typical_monthly_spend: Decimal


@dataclass
class FlexGroupCategory:
    category_id: Optional[UUID]
    category_name: str
    budgeted: Decimal
    spent: Decimal
    percent_used: float


@dataclass
class FlexGroupStatus:
    """Combined budget of the lines sharing a flex group."""

    group_name: str
    total_budgeted: Decimal
    total_spent: Decimal
    remaining: Decimal
    percent_used: float
    categories: List[FlexGroupCategory]


@dataclass
class DailySpending:
    date: date_type
    amount: Decimal


def trend_point(period_start: date_type, budgeted: Decimal, actual: Decimal) -> TrendPoint:
    """Trend entry for the month starting at ``period_start``."""
    return TrendPoint(
        month=month_label(period_start),
        budgeted=cents(budgeted),
        actual=cents(actual),
        variance=cents(actual - budgeted),
        percent_used=percent_of(actual, budgeted),
    )


def period_expense_budget(period: BudgetPeriod) -> Decimal:
    """Budgeted amount of a period's non-income lines."""
    return sum(
        (
            Decimal(pc.budgeted_amount)
            for pc in period.period_categories
            if not (pc.budget_category is not None and pc.budget_category.is_income)
        ),
        ZERO,
    )


def health_label(score: int) -> str:
    if score >= 90:
        return "Excellent"
    if score >= 70:
        return "Good"
    if score >= 50:
        return "Needs Attention"
    return "Off Track"


def trend_bonus(latest: BudgetPeriod, previous: BudgetPeriod) -> float:
    """Bonus for using less of the budget in the latest closed period than the one before."""
    latest_percent = percent_of(Decimal(latest.actual_expenses), period_expense_budget(latest))
    previous_percent = percent_of(
        Decimal(previous.actual_expenses), period_expense_budget(previous)
    )
    if latest_percent < previous_percent:
        return min((previous_percent - latest_percent) * TREND_RATE, TREND_MAX)
    return 0.0


def score_categories(
    breakdown: Iterable[CategoryBreakdown],
    groups: Dict[UUID, Optional[str]],
    bonus: float = 0.0,
) -> HealthScore:
    """Health score of a month from its expense line breakdown.

    Starts from 100. Lines over budget deduct in proportion to the overage,
    weighted up for NEED lines which also carry an extra penalty. Lines at
    or below 80% used add a small bonus.

    Args:
        breakdown: Budgeted vs. spent per line
        groups: Category group per budget category ID
        bonus: Trend bonus from recent closed periods

    Returns:
        Score clamped to 0-100 with its components
    """
    over_budget = 0.0
    under_budget = 0.0
    essential_penalty = 0.0
    category_scores = []

    for line in breakdown:
        if line.is_income or line.budgeted <= 0:
            continue

        group = groups.get(line.budget_category_id)
        is_essential = group == CategoryGroup.NEED.value
        weight = ESSENTIAL_WEIGHT if is_essential else 1.0
        impact = 0.0

        if line.percent_used > 100:
            overage = line.percent_used - 100
            deduction = min(overage * OVER_BUDGET_RATE * weight, OVER_BUDGET_MAX)
            over_budget += deduction
            impact = -deduction
            if is_essential:
                essential_penalty += min(overage * ESSENTIAL_PENALTY_RATE, ESSENTIAL_PENALTY_MAX)
        elif line.percent_used <= UNDER_BUDGET_PERCENT:
            impact = min((100 - line.percent_used) * UNDER_BUDGET_RATE, UNDER_BUDGET_MAX)
            under_budget += impact

        category_scores.append(
            CategoryHealth(
                category_id=line.category_id,
                category_name=line.category_name,
                percent_used=line.percent_used,
                impact=round(impact, 2),
                category_group=group,
            )
        )

    raw = BASE_SCORE - over_budget - essential_penalty + under_budget + bonus
    score = min(100, max(0, int(round(raw))))

    return HealthScore(
        score=score,
        label=health_label(score),
        breakdown=HealthScoreBreakdown(
            base_score=BASE_SCORE,
            over_budget_deductions=round(over_budget, 2),
            under_budget_bonus=round(under_budget, 2),
            trend_bonus=round(bonus, 2),
            essential_weight_penalty=round(essential_penalty, 2),
        ),
        category_scores=category_scores,
    )


def seasonal_pattern(
    category_id: UUID,
    category_name: str,
    monthly: Dict[int, Decimal],
    month_counts: Dict[int, int],
    sigma: float,
) -> SeasonalPattern:
    """Average spend per calendar month and months above mean + sigma * stddev.

    ``monthly`` holds totals folded by month number; ``month_counts`` says how
    many times each month number occurs in the analysed window.
    """
    averages = np.array(
        [float(monthly.get(m, 0)) / max(month_counts.get(m, 1), 1) for m in range(1, 13)]
    )
    non_zero = averages[averages > 0]
    mean = float(non_zero.mean()) if non_zero.size else 0.0
    threshold = mean + sigma * (float(non_zero.std()) if non_zero.size else 0.0)

    return SeasonalPattern(
        category_id=category_id,
        category_name=category_name,
        monthly_averages=[
            MonthlyAverage(month=m, month_name=month_name(m), average=cents(str(averages[m - 1])))
            for m in range(1, 13)
        ],
        high_months=[int(i) + 1 for i in np.flatnonzero(averages > threshold)],
        typical_monthly_spend=cents(str(mean)),
    )


class BudgetReportService:
    """Read-only reports over a budget, its periods and its transactions."""

    def __init__(
        self,
        db: AsyncSession,
        budget_service: Optional[BudgetService] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize budget report service.

        Args:
            db: Database session
            budget_service: Budget service (defaults to one bound to ``db``)
            config: Settings (defaults to the application settings)
        """
        self.db = db
        self.budget_service = budget_service or BudgetService(db)
        self.period_service = BudgetPeriodService(db)
        self.spending = self.budget_service.spending
        self.config = config or default_settings

    async def _recent_periods(
        self, budget_id: UUID, limit: int, status: Optional[PeriodStatus] = None
    ) -> List[BudgetPeriod]:
        """The ``limit`` most recent periods, oldest first."""
        conditions = [BudgetPeriod.budget_id == budget_id]
        if status is not None:
            conditions.append(BudgetPeriod.status == status.value)
        stmt = (
            select(BudgetPeriod)
            .where(and_(*conditions))
            .order_by(BudgetPeriod.period_start.desc())
            .limit(limit)
        )
        result = await self.db.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def _current_breakdown(
        self, user_id: UUID, budget: Budget, today: Optional[date_type]
    ) -> List[CategoryBreakdown]:
        period = get_current_month_period_dates(today)
        return await self.budget_service.compute_breakdown(
            user_id, budget, period.period_start, period.period_end
        )

    # Trends

    async def get_trend(
        self,
        user_id: UUID,
        budget_id: UUID,
        months: int = 6,
        today: Optional[date_type] = None,
    ) -> Optional[List[TrendPoint]]:
        """Budgeted vs. actual expenses per month.

        Uses the most recent ``months`` closed periods followed by the open
        one with live actuals. A budget without closed periods gets a live
        trend over the trailing ``months`` calendar months instead.

        Returns:
            Trend points oldest first, or None if the budget is not found
        """
        budget = await self.budget_service.get_budget(budget_id, user_id)
        if not budget:
            return None

        periods = await self._recent_periods(budget.id, months, PeriodStatus.CLOSED)
        if not periods:
            return await self._live_trend(user_id, budget, months, today)

        points = [
            trend_point(p.period_start, period_expense_budget(p), Decimal(p.actual_expenses))
            for p in periods
        ]

        open_period = await self.period_service.get_open_period(budget.id)
        if open_period:
            actuals = await self.spending.compute_budget_category_actuals(
                user_id, budget, open_period.period_start, open_period.period_end
            )
            expense_ids = {bc.id for bc in (budget.categories or []) if not bc.is_income}
            actual = sum((a for bc_id, a in actuals.items() if bc_id in expense_ids), ZERO)
            points.append(
                trend_point(open_period.period_start, period_expense_budget(open_period), actual)
            )

        return points

    async def _live_trend(
        self, user_id: UUID, budget: Budget, months: int, today: Optional[date_type]
    ) -> List[TrendPoint]:
        lines = [bc for bc in (budget.categories or []) if not bc.is_income]
        if not lines:
            return []

        window = trailing_months(months, today)
        spending = await self.spending.compute_budget_spending_by_month(
            user_id, budget, window[0].period_start, window[-1].period_end
        )
        budgeted = sum((Decimal(bc.amount) for bc in lines), ZERO)

        return [
            trend_point(
                month.period_start,
                budgeted,
                spending.get((month.period_start.year, month.period_start.month), ZERO),
            )
            for month in window
        ]

    async def get_category_trend(
        self,
        user_id: UUID,
        budget_id: UUID,
        months: int = 6,
        category_ids: Optional[List[UUID]] = None,
        today: Optional[date_type] = None,
    ) -> Optional[List[CategoryTrendSeries]]:
        """Monthly budgeted vs. actual per expense category.

        Closed periods report their stored actuals; the open period is
        computed from transactions. Income and transfer lines are left out.

        Returns:
            One series per category, or None if the budget is not found
        """
        budget = await self.budget_service.get_budget(budget_id, user_id)
        if not budget:
            return None

        wanted = set(category_ids or [])
        periods = await self._recent_periods(budget.id, months)
        if not periods:
            return await self._live_category_trend(user_id, budget, months, wanted, today)

        series: Dict[UUID, CategoryTrendSeries] = {}
        for period in periods:
            lines = [
                pc
                for pc in period.period_categories
                if pc.category_id is not None
                and (not wanted or pc.category_id in wanted)
                and not (pc.budget_category is not None and pc.budget_category.is_income)
            ]

            live: Dict[UUID, Decimal] = {}
            if period.status == PeriodStatus.OPEN.value and lines:
                live = await self.spending.spending_by_category(
                    user_id,
                    [pc.category_id for pc in lines],
                    period.period_start,
                    period.period_end,
                )

            for pc in lines:
                if period.status == PeriodStatus.OPEN.value:
                    actual = live.get(pc.category_id, ZERO)
                else:
                    actual = Decimal(pc.actual_amount)
                name = pc.budget_category.display_name if pc.budget_category else "Uncategorized"
                entry = series.setdefault(
                    pc.category_id, CategoryTrendSeries(pc.category_id, name, [])
                )
                entry.data.append(
                    trend_point(period.period_start, Decimal(pc.budgeted_amount), actual)
                )

        return list(series.values())

    async def _live_category_trend(
        self,
        user_id: UUID,
        budget: Budget,
        months: int,
        wanted: set,
        today: Optional[date_type],
    ) -> List[CategoryTrendSeries]:
        lines = [
            bc
            for bc in (budget.categories or [])
            if not bc.is_income
            and not bc.is_transfer
            and bc.category_id is not None
            and (not wanted or bc.category_id in wanted)
        ]
        if not lines:
            return []

        window = trailing_months(months, today)
        monthly = await self.spending.monthly_spending_by_category(
            user_id,
            window[0].period_start,
            window[-1].period_end,
            [bc.category_id for bc in lines],
        )

        result = []
        for bc in lines:
            by_month = monthly.get(bc.category_id, {})
            result.append(
                CategoryTrendSeries(
                    category_id=bc.category_id,
                    category_name=bc.display_name,
                    data=[
                        trend_point(
                            month.period_start,
                            Decimal(bc.amount),
                            by_month.get(
                                (month.period_start.year, month.period_start.month), ZERO
                            ),
                        )
                        for month in window
                    ],
                )
            )
        return result

    # Current month

    async def get_health_score(
        self, user_id: UUID, budget_id: UUID, today: Optional[date_type] = None
    ) -> Optional[HealthScore]:
        """Health score of the current month, with a bonus for an improving trend.

        Returns:
            Score, or None if the budget is not found
        """
        budget = await self.budget_service.get_budget(budget_id, user_id)
        if not budget:
            return None

        breakdown = await self._current_breakdown(user_id, budget, today)
        groups = {bc.id: bc.category_group for bc in (budget.categories or [])}

        bonus = 0.0
        closed = await self._recent_periods(budget.id, 2, PeriodStatus.CLOSED)
        if len(closed) == 2:
            previous, latest = closed
            bonus = trend_bonus(latest, previous)

        health = score_categories(breakdown, groups, bonus)

        logger.debug(
            "Budget health score computed",
            budget_id=str(budget.id),
            score=health.score,
            label=health.label,
        )

        return health

    async def get_flex_group_status(
        self, user_id: UUID, budget_id: UUID, today: Optional[date_type] = None
    ) -> Optional[List[FlexGroupStatus]]:
        """Current-month totals per flex group, most used first.

        Returns:
            Group statuses, or None if the budget is not found
        """
        budget = await self.budget_service.get_budget(budget_id, user_id)
        if not budget:
            return None

        breakdown = await self._current_breakdown(user_id, budget, today)
        flex_groups = {bc.id: bc.flex_group for bc in (budget.categories or []) if bc.flex_group}

        grouped: Dict[str, List[CategoryBreakdown]] = {}
        for line in breakdown:
            group = flex_groups.get(line.budget_category_id)
            if group and not line.is_income:
                grouped.setdefault(group, []).append(line)

        statuses = []
        for group, lines in grouped.items():
            total_budgeted = sum((line.budgeted for line in lines), ZERO)
            total_spent = sum((line.spent for line in lines), ZERO)
            statuses.append(
                FlexGroupStatus(
                    group_name=group,
                    total_budgeted=cents(total_budgeted),
                    total_spent=cents(total_spent),
                    remaining=cents(total_budgeted - total_spent),
                    percent_used=percent_of(total_spent, total_budgeted),
                    categories=[
                        FlexGroupCategory(
                            category_id=line.category_id,
                            category_name=line.category_name,
                            budgeted=line.budgeted,
                            spent=line.spent,
                            percent_used=line.percent_used,
                        )
                        for line in lines
                    ],
                )
            )

        statuses.sort(key=lambda s: s.percent_used, reverse=True)
        return statuses

    async def get_daily_spending(
        self, user_id: UUID, budget_id: UUID
    ) -> Optional[List[DailySpending]]:
        """Expense spending per day of the open period.

        Without an open period, the month in which the budget starts is used.

        Returns:
            Days with spending in date order, or None if the budget is not found
        """
        budget = await self.budget_service.get_budget(budget_id, user_id)
        if not budget:
            return None

        open_period = await self.period_service.get_open_period(budget.id)
        if open_period:
            start, end = open_period.period_start, open_period.period_end
        else:
            month = get_current_month_period_dates(budget.period_start)
            start, end = month.period_start, month.period_end

        daily = await self.spending.compute_budget_spending_by_day(user_id, budget, start, end)
        return [DailySpending(date=day, amount=cents(daily[day])) for day in sorted(daily)]

    # History

    async def get_seasonal_patterns(
        self, user_id: UUID, budget_id: UUID, today: Optional[date_type] = None
    ) -> Optional[List[SeasonalPattern]]:
        """Per-category spend by calendar month over the last year.

        Reads the twelve months before the current one plus the current month.
        Only categories with spending in that window are reported.

        Returns:
            Patterns, or None if the budget is not found
        """
        budget = await self.budget_service.get_budget(budget_id, user_id)
        if not budget:
            return None

        lines = [
            bc
            for bc in (budget.categories or [])
            if not bc.is_income and not bc.is_transfer and bc.category_id is not None
        ]
        if not lines:
            return []

        current = get_current_month_period_dates(today)
        window_start = add_months(current.period_start, -12)
        monthly = await self.spending.compute_monthly_spending(
            user_id, [bc.category_id for bc in lines], window_start, current.period_end
        )
        month_counts = _month_counts(
            month.period_start for month in trailing_months(13, today)
        )

        patterns = []
        for bc in lines:
            by_month = monthly.get(bc.category_id)
            if not by_month:
                continue
            patterns.append(
                seasonal_pattern(
                    bc.category_id,
                    bc.display_name,
                    by_month,
                    month_counts,
                    self.config.seasonal_sigma,
                )
            )
        return patterns


def _month_counts(days: Iterable[date_type]) -> Dict[int, int]:
    counts: Dict[int, int] = {}
    for day in days:
        counts[day.month] = counts.get(day.month, 0) + 1
    return counts
