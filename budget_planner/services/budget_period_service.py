"""Budget period service: period creation, rollover and period close."""

from datetime import date as date_type
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.models.budget import Budget, BudgetCategory, RolloverType
from budget_planner.models.budget_period import BudgetPeriod, BudgetPeriodCategory, PeriodStatus
from budget_planner.services.budget_dates import (
    PeriodDateRange,
    get_current_month_period_dates,
    get_next_month_period_dates,
)
from budget_planner.services.spending import SpendingCalculator
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")
MONEY_PLACES = Decimal("0.0001")


def round_money(value: Decimal) -> Decimal:
    """Round to the 4 decimal places stored in money columns."""
    return Decimal(value).quantize(MONEY_PLACES, rounding=ROUND_HALF_UP)


def compute_rollover(
    period_category: BudgetPeriodCategory,
    budget_category: Optional[BudgetCategory],
    actual: Decimal,
) -> Decimal:
    """Amount of a closing period's budget that carries into the next period.

    Args:
        period_category: Period line being closed
        budget_category: Budget line it was created from (may be gone)
        actual: Actual amount for the period

    Returns:
        Non-negative rollover amount, capped by ``rollover_cap`` when set
    """
    if budget_category is None or budget_category.rollover_type == RolloverType.NONE.value:
        return ZERO

    unspent = Decimal(period_category.effective_budget) - Decimal(actual)
    if unspent <= 0:
        return ZERO

    if budget_category.rollover_cap is not None:
        unspent = min(unspent, Decimal(budget_category.rollover_cap))

    return round_money(unspent)


def next_period_dates(
    closed_period_end: date_type, today: Optional[date_type] = None
) -> PeriodDateRange:
    """Dates of the period that follows a closed one.

    Normally the month after ``closed_period_end``. When the close runs late
    and that month has already ended, the current month is opened instead so
    the budget does not fall further behind.
    """
    following = get_next_month_period_dates(closed_period_end)
    current = get_current_month_period_dates(today)
    if following.period_start < current.period_start:
        return current
    return following


class BudgetPeriodService:
    """Service for the budget period lifecycle."""

    def __init__(self, db: AsyncSession):
        """Initialize budget period service.

        Args:
            db: Database session
        """
        self.db = db
        self.spending = SpendingCalculator(db)

    async def _get_budget(self, user_id: UUID, budget_id: UUID) -> Optional[Budget]:
        stmt = select(Budget).where(and_(Budget.id == budget_id, Budget.user_id == user_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_open_period(self, budget_id: UUID) -> Optional[BudgetPeriod]:
        """Most recent OPEN period of a budget, if any."""
        stmt = (
            select(BudgetPeriod)
            .where(
                and_(
                    BudgetPeriod.budget_id == budget_id,
                    BudgetPeriod.status == PeriodStatus.OPEN.value,
                )
            )
            .order_by(BudgetPeriod.period_start.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _get_period_starting(
        self, budget_id: UUID, period_start: date_type
    ) -> Optional[BudgetPeriod]:
        stmt = select(BudgetPeriod).where(
            and_(BudgetPeriod.budget_id == budget_id, BudgetPeriod.period_start == period_start)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def create_period_for_budget(
        self,
        budget: Budget,
        rollover_map: Optional[Dict[UUID, Decimal]] = None,
        period_dates: Optional[PeriodDateRange] = None,
    ) -> BudgetPeriod:
        """Create an OPEN period with one line per budget category.

        Args:
            budget: Budget with categories loaded
            rollover_map: Rollover per budget category ID carried in from the
                previous period
            period_dates: Period dates (defaults to the current month)

        Returns:
            Created budget period
        """
        rollover_map = rollover_map or {}
        period_dates = period_dates or get_current_month_period_dates()
        budget_categories = list(budget.categories or [])

        total_budgeted = sum((Decimal(bc.amount) for bc in budget_categories), ZERO)

        period = BudgetPeriod(
            budget_id=budget.id,
            period_start=period_dates.period_start,
            period_end=period_dates.period_end,
            actual_income=ZERO,
            actual_expenses=ZERO,
            total_budgeted=total_budgeted,
            status=PeriodStatus.OPEN.value,
        )
        self.db.add(period)
        await self.db.flush()

        for bc in budget_categories:
            rollover_in = Decimal(rollover_map.get(bc.id, ZERO))
            amount = Decimal(bc.amount)
            self.db.add(
                BudgetPeriodCategory(
                    budget_period_id=period.id,
                    budget_category_id=bc.id,
                    category_id=bc.category_id,
                    budgeted_amount=amount,
                    rollover_in=rollover_in,
                    actual_amount=ZERO,
                    effective_budget=amount + rollover_in,
                    rollover_out=ZERO,
                )
            )

        await self.db.flush()
        await self.db.refresh(period)

        logger.info(
            "Budget period created",
            budget_id=str(budget.id),
            period_id=str(period.id),
            period_start=str(period.period_start),
            period_end=str(period.period_end),
            total_budgeted=str(total_budgeted),
            rollover_lines=len(rollover_map),
        )

        return period

    async def close_period(
        self, user_id: UUID, budget_id: UUID, today: Optional[date_type] = None
    ) -> Optional[BudgetPeriod]:
        """Close a budget's open period and open the following one.

        Actuals and rollovers are written, the period is marked CLOSED and the
        next period is created inside a single savepoint, so either all of it
        is persisted or none of it is.

        Args:
            user_id: Budget owner
            budget_id: Budget ID
            today: Reference date for the next period (defaults to today, UTC)

        Returns:
            The closed period, or None if the budget does not exist for the user

        Raises:
            ValueError: If the budget has no open period
        """
        budget = await self._get_budget(user_id, budget_id)
        if not budget:
            return None

        period = await self.get_open_period(budget.id)
        if not period:
            raise ValueError("No open period to close")

        actuals = await self.spending.compute_budget_category_actuals(
            user_id, budget, period.period_start, period.period_end
        )
        budget_categories = {bc.id: bc for bc in (budget.categories or [])}

        async with self.db.begin_nested():
            rollover_map: Dict[UUID, Decimal] = {}
            actual_income = ZERO
            actual_expenses = ZERO

            for period_category in period.period_categories:
                budget_category = budget_categories.get(period_category.budget_category_id)
                actual = actuals.get(period_category.budget_category_id, ZERO)
                rollover_out = compute_rollover(period_category, budget_category, actual)

                period_category.actual_amount = actual
                period_category.rollover_out = rollover_out

                if budget_category is not None and budget_category.is_income:
                    actual_income += actual
                else:
                    actual_expenses += actual

                if rollover_out > 0:
                    rollover_map[period_category.budget_category_id] = rollover_out

            period.actual_income = actual_income
            period.actual_expenses = actual_expenses
            period.status = PeriodStatus.CLOSED.value
            await self.db.flush()

            next_period = await self.create_period_for_budget(
                budget,
                rollover_map=rollover_map,
                period_dates=next_period_dates(period.period_end, today),
            )

        logger.info(
            "Budget period closed",
            budget_id=str(budget.id),
            user_id=str(user_id),
            period_id=str(period.id),
            next_period_id=str(next_period.id),
            actual_income=str(actual_income),
            actual_expenses=str(actual_expenses),
            rollover_total=str(sum(rollover_map.values(), ZERO)),
        )

        return period

    async def list_periods(self, user_id: UUID, budget_id: UUID) -> Optional[List[BudgetPeriod]]:
        """List a budget's periods, newest first.

        Returns:
            List of periods, or None if the budget does not exist for the user
        """
        budget = await self._get_budget(user_id, budget_id)
        if not budget:
            return None

        stmt = (
            select(BudgetPeriod)
            .where(BudgetPeriod.budget_id == budget.id)
            .order_by(BudgetPeriod.period_start.desc())
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def get_period(
        self, user_id: UUID, budget_id: UUID, period_id: UUID
    ) -> Optional[BudgetPeriod]:
        """Get one period (with its category lines) of a user's budget."""
        stmt = (
            select(BudgetPeriod)
            .join(Budget, BudgetPeriod.budget_id == Budget.id)
            .where(
                and_(
                    BudgetPeriod.id == period_id,
                    BudgetPeriod.budget_id == budget_id,
                    Budget.user_id == user_id,
                )
            )
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_or_create_current_period(
        self, user_id: UUID, budget_id: UUID, today: Optional[date_type] = None
    ) -> Optional[BudgetPeriod]:
        """The budget's OPEN period, or the current month's period created on first access.

        A budget has at most one OPEN period; an earlier month still waiting
        for the close job is returned as is.

        Returns:
            Current period, or None if the budget does not exist for the user
        """
        budget = await self._get_budget(user_id, budget_id)
        if not budget:
            return None

        open_period = await self.get_open_period(budget.id)
        if open_period:
            return open_period

        period_dates = get_current_month_period_dates(today)
        period = await self._get_period_starting(budget.id, period_dates.period_start)
        if period:
            return period

        return await self.create_period_for_budget(budget, period_dates=period_dates)
