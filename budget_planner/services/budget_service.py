"""Budget service for managing budgets and tracking spending."""

from dataclasses import dataclass
from datetime import date as date_type
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.config import settings
from budget_planner.models.budget import Budget, BudgetCategory, RolloverType
from budget_planner.models.budget_alert import BudgetAlert
from budget_planner.models.category import Account, Category
from budget_planner.schemas.budget import (
    BudgetCategoryCreate,
    BudgetCategoryUpdate,
    BudgetCreate,
    BudgetUpdate,
    BulkCategoryAmount,
)
from budget_planner.services.budget_dates import get_current_month_period_dates, period_progress
from budget_planner.services.spending import SpendingCalculator, ZERO
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)

CENTS = Decimal("0.01")


def _cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def _percent(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        return 0.0
    return round(float(part / whole * 100), 2)


@dataclass
class CategoryBreakdown:
    """Budgeted vs. spent for a budget line."""

    budget_category_id: UUID
    category_id: Optional[UUID]
    category_name: str
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float
    is_income: bool
    percentage: Optional[Decimal] = None  # set for expense lines of income-linked budgets


@dataclass
class BudgetSummary:
    """Current-period totals for a budget."""

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
    category_breakdown: List[CategoryBreakdown]


@dataclass
class BudgetVelocity:
    """Spending pace for the current period."""

    daily_burn_rate: Decimal
    projected_total: Decimal
    budget_total: Decimal
    projected_variance: Decimal
    safe_daily_spend: Decimal
    days_elapsed: int
    days_remaining: int
    total_days: int
    current_spent: Decimal
    pace_status: str  # under, on_track, over


@dataclass
class DashboardCategory:
    """Category entry on the dashboard."""

    category_name: str
    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float


@dataclass
class DashboardSummary:
    """Dashboard view of the user's newest active budget."""

    budget_id: UUID
    budget_name: str
    total_budgeted: Decimal
    total_spent: Decimal
    remaining: Decimal
    percent_used: float
    safe_daily_spend: Decimal
    days_remaining: int
    top_categories: List[DashboardCategory]


@dataclass
class CategoryBudgetStatus:
    """Budget status of a single category."""

    budgeted: Decimal
    spent: Decimal
    remaining: Decimal
    percent_used: float


def pace_status(projected_total: Decimal, budget_total: Decimal) -> str:
    """Classify projected spend against the budget."""
    if budget_total <= 0:
        return "under"
    ratio = projected_total / budget_total
    if ratio <= Decimal("0.95"):
        return "under"
    if ratio <= Decimal("1.05"):
        return "on_track"
    return "over"


def validate_rollover(rollover_type: str, rollover_cap: Optional[Decimal]) -> None:
    """Reject caps that are negative or set on lines that never roll over.

    Raises:
        ValueError: If the combination is invalid
    """
    if rollover_cap is None:
        return
    if rollover_cap < 0:
        raise ValueError("Rollover cap must not be negative")
    if rollover_type == RolloverType.NONE.value:
        raise ValueError("Rollover cap requires a rollover type other than NONE")


class BudgetService:
    """Service for managing budgets and tracking spending."""

    def __init__(self, db: AsyncSession):
        """Initialize budget service.

        Args:
            db: Database session
        """
        self.db = db
        self.spending = SpendingCalculator(db)

    # Budgets

    async def create_budget(self, user_id: UUID, data: BudgetCreate) -> Budget:
        """Create a new budget with its category lines.

        Args:
            user_id: User ID
            data: Budget data

        Returns:
            Created budget

        Raises:
            ValueError: If a category line is invalid
        """
        budget = Budget(
            user_id=user_id,
            name=data.name,
            description=data.description,
            budget_type=data.budget_type.value,
            period_start=data.period_start,
            period_end=data.period_end,
            base_income=data.base_income,
            income_linked=data.income_linked,
            strategy=data.strategy.value,
            currency_code=data.currency_code,
            config=data.config,
            is_active=True,
        )

        seen = set()
        for line in data.categories:
            key = line.transfer_account_id if line.is_transfer else line.category_id
            if key in seen:
                raise ValueError("This category is already in the budget")
            seen.add(key)
            await self._check_line_target(user_id, line)
            budget.categories.append(self._new_budget_category(line))

        self.db.add(budget)
        await self.db.flush()
        await self.db.refresh(budget)

        logger.info(
            "Budget created",
            budget_id=str(budget.id),
            user_id=str(user_id),
            name=data.name,
            categories=len(data.categories),
        )

        return budget

    async def get_budget(self, budget_id: UUID, user_id: UUID) -> Optional[Budget]:
        """Get a budget by ID.

        Args:
            budget_id: Budget ID
            user_id: User ID (for authorization)

        Returns:
            Budget if found and belongs to user, None otherwise
        """
        stmt = select(Budget).where(and_(Budget.id == budget_id, Budget.user_id == user_id))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def list_budgets(self, user_id: UUID, active_only: bool = False) -> List[Budget]:
        """List a user's budgets, newest first.

        Args:
            user_id: User ID
            active_only: If True, only return active budgets

        Returns:
            List of budgets
        """
        stmt = select(Budget).where(Budget.user_id == user_id)
        if active_only:
            stmt = stmt.where(Budget.is_active.is_(True))
        stmt = stmt.order_by(Budget.created_at.desc())

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_budget(
        self, budget_id: UUID, user_id: UUID, data: BudgetUpdate
    ) -> Optional[Budget]:
        """Update the fields present in ``data``.

        Returns:
            Updated budget if found, None otherwise
        """
        budget = await self.get_budget(budget_id, user_id)
        if not budget:
            return None

        for field_name, value in data.model_dump(exclude_unset=True).items():
            if isinstance(value, Enum):
                value = value.value
            setattr(budget, field_name, value)

        if budget.period_end is not None and budget.period_end < budget.period_start:
            raise ValueError("Budget period end must be after start")

        await self.db.flush()
        await self.db.refresh(budget)

        logger.info("Budget updated", budget_id=str(budget_id), user_id=str(user_id))

        return budget

    async def delete_budget(self, budget_id: UUID, user_id: UUID) -> bool:
        """Delete a budget with its lines, periods and alerts.

        Returns:
            True if deleted, False if not found
        """
        budget = await self.get_budget(budget_id, user_id)
        if not budget:
            return False

        await self.db.delete(budget)
        await self.db.flush()

        logger.info("Budget deleted", budget_id=str(budget_id), user_id=str(user_id))

        return True

    # Category lines

    def _new_budget_category(self, line: BudgetCategoryCreate) -> BudgetCategory:
        validate_rollover(line.rollover_type.value, line.rollover_cap)
        return BudgetCategory(
            category_id=None if line.is_transfer else line.category_id,
            transfer_account_id=line.transfer_account_id if line.is_transfer else None,
            is_transfer=line.is_transfer,
            category_group=line.category_group.value if line.category_group else None,
            amount=line.amount,
            is_income=line.is_income,
            rollover_type=line.rollover_type.value,
            rollover_cap=line.rollover_cap,
            flex_group=line.flex_group,
            alert_warn_percent=line.alert_warn_percent,
            alert_critical_percent=line.alert_critical_percent,
            notes=line.notes,
            sort_order=line.sort_order,
        )

    async def _check_line_target(self, user_id: UUID, line: BudgetCategoryCreate) -> None:
        if line.is_transfer:
            stmt = select(Account).where(
                and_(Account.id == line.transfer_account_id, Account.user_id == user_id)
            )
            if (await self.db.execute(stmt)).scalar_one_or_none() is None:
                raise ValueError(f"Account {line.transfer_account_id} not found")
        else:
            stmt = select(Category).where(
                and_(Category.id == line.category_id, Category.user_id == user_id)
            )
            if (await self.db.execute(stmt)).scalar_one_or_none() is None:
                raise ValueError(f"Category {line.category_id} not found")

    async def _get_budget_category(
        self, budget_id: UUID, budget_category_id: UUID
    ) -> Optional[BudgetCategory]:
        stmt = select(BudgetCategory).where(
            and_(BudgetCategory.id == budget_category_id, BudgetCategory.budget_id == budget_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def add_category(
        self, budget_id: UUID, user_id: UUID, data: BudgetCategoryCreate
    ) -> Optional[BudgetCategory]:
        """Add a category line to a budget.

        Returns:
            Created line, or None if the budget is not found

        Raises:
            ValueError: If the category is unknown or already in the budget
        """
        budget = await self.get_budget(budget_id, user_id)
        if not budget:
            return None

        await self._check_line_target(user_id, data)

        if data.is_transfer:
            duplicate = BudgetCategory.transfer_account_id == data.transfer_account_id
        else:
            duplicate = BudgetCategory.category_id == data.category_id
        stmt = select(BudgetCategory).where(and_(BudgetCategory.budget_id == budget.id, duplicate))
        if (await self.db.execute(stmt)).scalar_one_or_none() is not None:
            raise ValueError("This category is already in the budget")

        budget_category = self._new_budget_category(data)
        budget_category.budget_id = budget.id

        self.db.add(budget_category)
        await self.db.flush()
        await self.db.refresh(budget_category)

        logger.info(
            "Budget category added",
            budget_id=str(budget.id),
            budget_category_id=str(budget_category.id),
            amount=str(budget_category.amount),
        )

        return budget_category

    async def update_category(
        self,
        budget_id: UUID,
        user_id: UUID,
        budget_category_id: UUID,
        data: BudgetCategoryUpdate,
    ) -> Optional[BudgetCategory]:
        """Update a budget line.

        Returns:
            Updated line, or None if the budget or line is not found

        Raises:
            ValueError: If the resulting rollover settings are invalid
        """
        if not await self.get_budget(budget_id, user_id):
            return None

        budget_category = await self._get_budget_category(budget_id, budget_category_id)
        if not budget_category:
            return None

        for field_name, value in data.model_dump(exclude_unset=True).items():
            if isinstance(value, Enum):
                value = value.value
            setattr(budget_category, field_name, value)

        validate_rollover(budget_category.rollover_type, budget_category.rollover_cap)

        await self.db.flush()
        await self.db.refresh(budget_category)

        logger.info(
            "Budget category updated",
            budget_id=str(budget_id),
            budget_category_id=str(budget_category_id),
        )

        return budget_category

    async def remove_category(
        self, budget_id: UUID, user_id: UUID, budget_category_id: UUID
    ) -> bool:
        """Remove a line from a budget.

        Returns:
            True if removed, False if the budget or line is not found
        """
        if not await self.get_budget(budget_id, user_id):
            return False

        budget_category = await self._get_budget_category(budget_id, budget_category_id)
        if not budget_category:
            return False

        await self.db.delete(budget_category)
        await self.db.flush()

        logger.info(
            "Budget category removed",
            budget_id=str(budget_id),
            budget_category_id=str(budget_category_id),
        )

        return True

    async def bulk_update_category_amounts(
        self, budget_id: UUID, user_id: UUID, items: List[BulkCategoryAmount]
    ) -> Optional[List[BudgetCategory]]:
        """Set the amount of several lines at once.

        Every line is checked before anything is changed.

        Returns:
            Updated lines, or None if the budget is not found

        Raises:
            ValueError: If a line does not belong to the budget
        """
        budget = await self.get_budget(budget_id, user_id)
        if not budget:
            return None

        lines = {bc.id: bc for bc in budget.categories}
        missing = [str(item.id) for item in items if item.id not in lines]
        if missing:
            raise ValueError(f"Budget category not found: {', '.join(missing)}")

        updated = []
        for item in items:
            lines[item.id].amount = item.amount
            updated.append(lines[item.id])

        await self.db.flush()

        logger.info("Budget category amounts updated", budget_id=str(budget_id), count=len(items))

        return updated

    # Reporting

    async def compute_breakdown(
        self,
        user_id: UUID,
        budget: Budget,
        period_start: date_type,
        period_end: date_type,
    ) -> List[CategoryBreakdown]:
        """Budgeted vs. spent for every line of a budget.

        For income-linked budgets, expense line amounts are percentages of
        the income actually received in the period.
        """
        budget_categories = list(budget.categories or [])
        if not budget_categories:
            return []

        actual_income = ZERO
        if budget.income_linked:
            actual_income = await self.spending.compute_actual_income(
                user_id, budget, period_start, period_end
            )

        actuals = await self.spending.compute_budget_category_actuals(
            user_id, budget, period_start, period_end
        )

        breakdown = []
        for bc in budget_categories:
            amount = Decimal(bc.amount)
            percentage = None
            if budget.income_linked and not bc.is_income:
                percentage = amount
                budgeted = _cents(actual_income * amount / 100)
            else:
                budgeted = amount

            spent = actuals.get(bc.id, ZERO)
            breakdown.append(
                CategoryBreakdown(
                    budget_category_id=bc.id,
                    category_id=bc.category_id,
                    category_name=bc.display_name,
                    budgeted=budgeted,
                    spent=spent,
                    remaining=budgeted - spent,
                    percent_used=_percent(spent, budgeted),
                    is_income=bc.is_income,
                    percentage=percentage,
                )
            )

        return breakdown

    async def get_summary(
        self, budget_id: UUID, user_id: UUID, today: Optional[date_type] = None
    ) -> Optional[BudgetSummary]:
        """Current-month summary of a budget.

        Returns:
            Summary, or None if the budget is not found
        """
        budget = await self.get_budget(budget_id, user_id)
        if not budget:
            return None

        period = get_current_month_period_dates(today)
        breakdown = await self.compute_breakdown(
            user_id, budget, period.period_start, period.period_end
        )

        expenses = [c for c in breakdown if not c.is_income]
        total_budgeted = sum((c.budgeted for c in expenses), ZERO)
        total_spent = sum((c.spent for c in expenses), ZERO)
        total_income = sum((c.spent for c in breakdown if c.is_income), ZERO)

        return BudgetSummary(
            budget_id=budget.id,
            budget_name=budget.name,
            period_start=period.period_start,
            period_end=period.period_end,
            total_budgeted=total_budgeted,
            total_spent=total_spent,
            total_income=total_income,
            remaining=total_budgeted - total_spent,
            percent_used=_percent(total_spent, total_budgeted),
            income_linked=budget.income_linked,
            actual_income=total_income if budget.income_linked else None,
            category_breakdown=breakdown,
        )

    async def get_velocity(
        self, budget_id: UUID, user_id: UUID, today: Optional[date_type] = None
    ) -> Optional[BudgetVelocity]:
        """Burn rate and projection for the current month.

        Returns:
            Velocity, or None if the budget is not found
        """
        budget = await self.get_budget(budget_id, user_id)
        if not budget:
            return None

        period = get_current_month_period_dates(today)
        progress = period_progress(period.period_start, period.period_end, today)
        breakdown = await self.compute_breakdown(
            user_id, budget, period.period_start, period.period_end
        )

        expenses = [c for c in breakdown if not c.is_income]
        current_spent = sum((c.spent for c in expenses), ZERO)
        budget_total = sum((c.budgeted for c in expenses), ZERO)

        daily_burn_rate = current_spent / progress.days_elapsed
        projected_total = daily_burn_rate * progress.total_days
        remaining = budget_total - current_spent
        safe_daily_spend = (
            max(ZERO, remaining / progress.days_remaining) if progress.days_remaining > 0 else ZERO
        )

        return BudgetVelocity(
            daily_burn_rate=_cents(daily_burn_rate),
            projected_total=_cents(projected_total),
            budget_total=budget_total,
            projected_variance=_cents(projected_total - budget_total),
            safe_daily_spend=_cents(safe_daily_spend),
            days_elapsed=progress.days_elapsed,
            days_remaining=progress.days_remaining,
            total_days=progress.total_days,
            current_spent=current_spent,
            pace_status=pace_status(projected_total, budget_total),
        )

    async def _newest_active_budget(self, user_id: UUID) -> Optional[Budget]:
        stmt = (
            select(Budget)
            .where(and_(Budget.user_id == user_id, Budget.is_active.is_(True)))
            .order_by(Budget.created_at.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_dashboard_summary(
        self, user_id: UUID, today: Optional[date_type] = None
    ) -> Optional[DashboardSummary]:
        """Totals and the three most-used categories of the newest active budget.

        Returns:
            Dashboard summary, or None if the user has no active budget
        """
        budget = await self._newest_active_budget(user_id)
        if not budget:
            return None

        period = get_current_month_period_dates(today)
        progress = period_progress(period.period_start, period.period_end, today)
        breakdown = await self.compute_breakdown(
            user_id, budget, period.period_start, period.period_end
        )

        expenses = [c for c in breakdown if not c.is_income]
        total_budgeted = sum((c.budgeted for c in expenses), ZERO)
        total_spent = sum((c.spent for c in expenses), ZERO)
        remaining = total_budgeted - total_spent
        safe_daily_spend = (
            max(ZERO, remaining / progress.days_remaining) if progress.days_remaining > 0 else ZERO
        )

        top = sorted(expenses, key=lambda c: c.percent_used, reverse=True)[:3]

        return DashboardSummary(
            budget_id=budget.id,
            budget_name=budget.name,
            total_budgeted=total_budgeted,
            total_spent=total_spent,
            remaining=remaining,
            percent_used=_percent(total_spent, total_budgeted),
            safe_daily_spend=_cents(safe_daily_spend),
            days_remaining=progress.days_remaining,
            top_categories=[
                DashboardCategory(
                    category_name=c.category_name,
                    budgeted=c.budgeted,
                    spent=c.spent,
                    remaining=c.remaining,
                    percent_used=c.percent_used,
                )
                for c in top
            ],
        )

    async def get_category_budget_status(
        self, user_id: UUID, category_ids: List[UUID], today: Optional[date_type] = None
    ) -> Dict[UUID, CategoryBudgetStatus]:
        """Budget status of the given expense categories in the newest active budget."""
        if not category_ids:
            return {}

        budget = await self._newest_active_budget(user_id)
        if not budget:
            return {}

        period = get_current_month_period_dates(today)
        breakdown = await self.compute_breakdown(
            user_id, budget, period.period_start, period.period_end
        )

        wanted = set(category_ids)
        return {
            c.category_id: CategoryBudgetStatus(
                budgeted=c.budgeted,
                spent=c.spent,
                remaining=c.remaining,
                percent_used=c.percent_used,
            )
            for c in breakdown
            if c.category_id in wanted and not c.is_income
        }

    # Alerts

    async def get_alerts(self, user_id: UUID, unread_only: bool = False) -> List[BudgetAlert]:
        """A user's alerts, newest first."""
        stmt = select(BudgetAlert).where(BudgetAlert.user_id == user_id)
        if unread_only:
            stmt = stmt.where(BudgetAlert.is_read.is_(False))
        stmt = stmt.order_by(BudgetAlert.created_at.desc()).limit(settings.alert_list_limit)

        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _get_alert(self, alert_id: UUID, user_id: UUID) -> Optional[BudgetAlert]:
        stmt = select(BudgetAlert).where(
            and_(BudgetAlert.id == alert_id, BudgetAlert.user_id == user_id)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def mark_alert_read(self, alert_id: UUID, user_id: UUID) -> Optional[BudgetAlert]:
        """Mark one alert as read.

        Returns:
            Updated alert, or None if not found
        """
        alert = await self._get_alert(alert_id, user_id)
        if not alert:
            return None

        alert.is_read = True
        await self.db.flush()
        return alert

    async def mark_all_alerts_read(self, user_id: UUID) -> int:
        """Mark every unread alert of a user as read.

        Returns:
            Number of alerts updated
        """
        stmt = (
            update(BudgetAlert)
            .where(and_(BudgetAlert.user_id == user_id, BudgetAlert.is_read.is_(False)))
            .values(is_read=True)
        )
        result = await self.db.execute(stmt)
        updated = result.rowcount or 0

        logger.info("Budget alerts marked read", user_id=str(user_id), updated=updated)

        return updated

    async def delete_alert(self, alert_id: UUID, user_id: UUID) -> bool:
        """Delete one alert.

        Returns:
            True if deleted, False if not found
        """
        alert = await self._get_alert(alert_id, user_id)
        if not alert:
            return False

        await self.db.delete(alert)
        await self.db.flush()
        return True
