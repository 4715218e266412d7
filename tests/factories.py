"""Builders for unsaved model objects and query result doubles."""

from datetime import date
from decimal import Decimal
from typing import Optional
from unittest.mock import MagicMock
from uuid import uuid4

from budget_planner.models import (
    Account,
    Budget,
    BudgetCategory,
    BudgetPeriod,
    BudgetPeriodCategory,
    Category,
    PeriodStatus,
    RolloverType,
)


def scalar_result(value) -> MagicMock:
    """Result double for ``scalar_one_or_none`` queries."""
    result = MagicMock()
    result.scalar_one_or_none.return_value = value
    return result


def scalars_result(values) -> MagicMock:
    """Result double for ``scalars().all()`` queries."""
    result = MagicMock()
    result.scalars.return_value.all.return_value = list(values)
    return result


def make_line(
    amount: str = "100",
    name: str = "Groceries",
    parent: Optional[str] = None,
    is_income: bool = False,
    rollover_type: RolloverType = RolloverType.NONE,
    rollover_cap: Optional[str] = None,
    flex_group: Optional[str] = None,
    warn: int = 80,
    critical: int = 95,
    transfer_account: Optional[Account] = None,
) -> BudgetCategory:
    """Build an unsaved budget category line."""
    if transfer_account is not None:
        return BudgetCategory(
            id=uuid4(),
            category_id=None,
            transfer_account_id=transfer_account.id,
            transfer_account=transfer_account,
            is_transfer=True,
            amount=Decimal(amount),
            is_income=False,
            rollover_type=rollover_type.value,
            rollover_cap=Decimal(rollover_cap) if rollover_cap is not None else None,
            flex_group=flex_group,
            alert_warn_percent=warn,
            alert_critical_percent=critical,
            sort_order=0,
        )

    parent_category = Category(id=uuid4(), name=parent) if parent else None
    category = Category(id=uuid4(), name=name, parent=parent_category, is_income=is_income)
    return BudgetCategory(
        id=uuid4(),
        category_id=category.id,
        category=category,
        transfer_account_id=None,
        is_transfer=False,
        amount=Decimal(amount),
        is_income=is_income,
        rollover_type=rollover_type.value,
        rollover_cap=Decimal(rollover_cap) if rollover_cap is not None else None,
        flex_group=flex_group,
        alert_warn_percent=warn,
        alert_critical_percent=critical,
        sort_order=0,
    )


def make_budget(
    lines=(),
    income_linked: bool = False,
    base_income: Optional[str] = None,
    name: str = "Household",
) -> Budget:
    """Build an unsaved active monthly budget."""
    return Budget(
        id=uuid4(),
        user_id=uuid4(),
        name=name,
        budget_type="MONTHLY",
        strategy="FIXED",
        period_start=date(2026, 1, 1),
        income_linked=income_linked,
        base_income=Decimal(base_income) if base_income is not None else None,
        is_active=True,
        currency_code="USD",
        config={},
        categories=list(lines),
    )


def make_open_period(budget: Budget, start: date, end: date, rollover_in=None) -> BudgetPeriod:
    """Build an OPEN period mirroring the budget's lines."""
    rollover_in = rollover_in or {}
    period = BudgetPeriod(
        id=uuid4(),
        budget_id=budget.id,
        period_start=start,
        period_end=end,
        actual_income=Decimal("0"),
        actual_expenses=Decimal("0"),
        total_budgeted=sum((bc.amount for bc in budget.categories), Decimal("0")),
        status=PeriodStatus.OPEN.value,
    )
    for bc in budget.categories:
        carried = Decimal(rollover_in.get(bc.id, "0"))
        period.period_categories.append(
            BudgetPeriodCategory(
                id=uuid4(),
                budget_category_id=bc.id,
                category_id=bc.category_id,
                budgeted_amount=bc.amount,
                rollover_in=carried,
                actual_amount=Decimal("0"),
                effective_budget=bc.amount + carried,
                rollover_out=Decimal("0"),
            )
        )
    return period

