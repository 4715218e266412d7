"""Tests for the budget period lifecycle."""

from datetime import date
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from budget_planner.models import BudgetPeriod, BudgetPeriodCategory, PeriodStatus, RolloverType
from budget_planner.services.budget_dates import PeriodDateRange
from budget_planner.services.budget_period_service import (
    BudgetPeriodService,
    compute_rollover,
    next_period_dates,
    round_money,
)
from tests.factories import make_budget, make_line, make_open_period, scalar_result


def period_line(effective: str) -> BudgetPeriodCategory:
    return BudgetPeriodCategory(
        budget_category_id=uuid4(),
        budgeted_amount=Decimal(effective),
        rollover_in=Decimal("0"),
        effective_budget=Decimal(effective),
    )


class TestComputeRollover:
    """Test rollover of unspent budget."""

    def test_no_rollover_type(self):
        """Test lines without rollover carry nothing."""
        line = make_line("100", rollover_type=RolloverType.NONE)

        assert compute_rollover(period_line("100"), line, Decimal("40")) == Decimal("0")

    def test_missing_budget_category(self):
        """Test lines whose budget category was removed carry nothing."""
        assert compute_rollover(period_line("100"), None, Decimal("40")) == Decimal("0")

    def test_unspent_carries(self):
        """Test the unspent amount carries over."""
        line = make_line("100", rollover_type=RolloverType.MONTHLY)

        assert compute_rollover(period_line("100"), line, Decimal("40")) == Decimal("60.0000")

    def test_overspent_carries_nothing(self):
        """Test overspending never produces a negative rollover."""
        line = make_line("100", rollover_type=RolloverType.MONTHLY)

        assert compute_rollover(period_line("100"), line, Decimal("130")) == Decimal("0")
        assert compute_rollover(period_line("100"), line, Decimal("100")) == Decimal("0")

    def test_cap_limits_rollover(self):
        """Test the cap bounds the carried amount."""
        line = make_line("100", rollover_type=RolloverType.MONTHLY, rollover_cap="25")

        assert compute_rollover(period_line("100"), line, Decimal("40")) == Decimal("25")

    def test_cap_above_unspent(self):
        """Test a cap larger than the unspent amount has no effect."""
        line = make_line("100", rollover_type=RolloverType.MONTHLY, rollover_cap="500")

        assert compute_rollover(period_line("100"), line, Decimal("90")) == Decimal("10")

    def test_rounding(self):
        """Test rollover is rounded to four decimal places."""
        line = make_line("100", rollover_type=RolloverType.MONTHLY)

        result = compute_rollover(period_line("100"), line, Decimal("33.33335"))

        assert result == Decimal("66.6667")
        assert round_money(Decimal("1.00005")) == Decimal("1.0001")


class TestNextPeriodDates:
    """Test choosing the dates of the period after a close."""

    def test_close_on_time(self):
        """Test a close on the 1st opens the month after the closed one."""
        dates = next_period_dates(date(2026, 1, 31), today=date(2026, 2, 1))

        assert dates == PeriodDateRange(date(2026, 2, 1), date(2026, 2, 28))

    def test_close_before_period_end(self):
        """Test a manual close inside the month still opens the following month."""
        dates = next_period_dates(date(2026, 3, 31), today=date(2026, 3, 20))

        assert dates == PeriodDateRange(date(2026, 4, 1), date(2026, 4, 30))

    def test_late_close_opens_current_month(self):
        """Test a close several months late skips to the current month."""
        dates = next_period_dates(date(2026, 7, 31), today=date(2026, 10, 5))

        assert dates == PeriodDateRange(date(2026, 10, 1), date(2026, 10, 31))


class TestCreatePeriodForBudget:
    """Test opening a new period."""

    async def test_creates_one_line_per_budget_category(self, mock_db):
        """Test period lines mirror the budget's lines with rollover applied."""
        groceries = make_line("400", name="Groceries", rollover_type=RolloverType.MONTHLY)
        rent = make_line("1200", name="Rent")
        salary = make_line("3000", name="Salary", is_income=True)
        budget = make_budget([groceries, rent, salary])
        service = BudgetPeriodService(mock_db)

        period = await service.create_period_for_budget(
            budget,
            rollover_map={groceries.id: Decimal("35.5")},
            period_dates=PeriodDateRange(date(2026, 2, 1), date(2026, 2, 28)),
        )

        added = [call.args[0] for call in mock_db.add.call_args_list]
        lines = {obj.budget_category_id: obj for obj in added if isinstance(obj, BudgetPeriodCategory)}

        assert isinstance(period, BudgetPeriod)
        assert period.status == PeriodStatus.OPEN.value
        assert period.period_start == date(2026, 2, 1)
        assert period.period_end == date(2026, 2, 28)
        assert period.total_budgeted == Decimal("4600")
        assert len(lines) == 3
        assert lines[groceries.id].rollover_in == Decimal("35.5")
        assert lines[groceries.id].effective_budget == Decimal("435.5")
        assert lines[rent.id].rollover_in == Decimal("0")
        assert lines[rent.id].effective_budget == Decimal("1200")
        assert lines[salary.id].category_id == salary.category_id
        mock_db.refresh.assert_awaited_once_with(period)

    async def test_empty_budget(self, mock_db):
        """Test a budget with no lines opens an empty period."""
        service = BudgetPeriodService(mock_db)

        period = await service.create_period_for_budget(
            make_budget([]), period_dates=PeriodDateRange(date(2026, 2, 1), date(2026, 2, 28))
        )

        assert period.total_budgeted == Decimal("0")
        assert mock_db.add.call_count == 1


class TestClosePeriod:
    """Test closing a period."""

    def _service(self, mock_db, budget, period, actuals):
        service = BudgetPeriodService(mock_db)
        service._get_budget = AsyncMock(return_value=budget)
        service.get_open_period = AsyncMock(return_value=period)
        service.spending.compute_budget_category_actuals = AsyncMock(return_value=actuals)
        return service

    async def test_close_writes_actuals_and_rolls_over(self, mock_db):
        """Test closing writes actuals, marks CLOSED and carries rollover."""
        groceries = make_line("400", name="Groceries", rollover_type=RolloverType.MONTHLY)
        dining = make_line(
            "200", name="Dining", rollover_type=RolloverType.MONTHLY, rollover_cap="50"
        )
        rent = make_line("1200", name="Rent")
        salary = make_line("3000", name="Salary", is_income=True)
        budget = make_budget([groceries, dining, rent, salary])
        period = make_open_period(budget, date(2026, 1, 1), date(2026, 1, 31))
        actuals = {
            groceries.id: Decimal("350"),
            dining.id: Decimal("20"),
            rent.id: Decimal("1200"),
            salary.id: Decimal("3100"),
        }
        service = self._service(mock_db, budget, period, actuals)
        service.create_period_for_budget = AsyncMock(return_value=BudgetPeriod(id=uuid4()))

        closed = await service.close_period(budget.user_id, budget.id, today=date(2026, 2, 1))

        assert closed is period
        assert period.status == PeriodStatus.CLOSED.value
        assert period.actual_income == Decimal("3100")
        assert period.actual_expenses == Decimal("1570")

        lines = {pc.budget_category_id: pc for pc in period.period_categories}
        assert lines[groceries.id].actual_amount == Decimal("350")
        assert lines[groceries.id].rollover_out == Decimal("50")
        assert lines[dining.id].rollover_out == Decimal("50")
        assert lines[rent.id].rollover_out == Decimal("0")

        kwargs = service.create_period_for_budget.await_args.kwargs
        assert kwargs["rollover_map"] == {groceries.id: Decimal("50"), dining.id: Decimal("50")}
        assert kwargs["period_dates"] == PeriodDateRange(date(2026, 2, 1), date(2026, 2, 28))
        mock_db.begin_nested.assert_called_once()

    async def test_lines_without_transactions_have_zero_actual(self, mock_db):
        """Test lines with no spending close with zero actual and full rollover."""
        groceries = make_line("400", name="Groceries", rollover_type=RolloverType.MONTHLY)
        budget = make_budget([groceries])
        period = make_open_period(
            budget, date(2026, 1, 1), date(2026, 1, 31), rollover_in={groceries.id: "25"}
        )
        service = self._service(mock_db, budget, period, {})
        service.create_period_for_budget = AsyncMock(return_value=BudgetPeriod(id=uuid4()))

        await service.close_period(budget.user_id, budget.id)

        line = period.period_categories[0]
        assert line.actual_amount == Decimal("0")
        assert line.rollover_out == Decimal("425")

    async def test_next_period_created_with_rollover(self, mock_db):
        """Test the next period's lines start from the carried amounts."""
        groceries = make_line("400", name="Groceries", rollover_type=RolloverType.MONTHLY)
        budget = make_budget([groceries])
        period = make_open_period(budget, date(2026, 12, 1), date(2026, 12, 31))
        service = self._service(mock_db, budget, period, {groceries.id: Decimal("300")})

        await service.close_period(budget.user_id, budget.id, today=date(2027, 1, 1))

        added = [call.args[0] for call in mock_db.add.call_args_list]
        next_period = next(obj for obj in added if isinstance(obj, BudgetPeriod))
        next_line = next(obj for obj in added if isinstance(obj, BudgetPeriodCategory))

        assert next_period.period_start == date(2027, 1, 1)
        assert next_period.period_end == date(2027, 1, 31)
        assert next_line.rollover_in == Decimal("100")
        assert next_line.effective_budget == Decimal("500")

    async def test_late_close_opens_current_month(self, mock_db):
        """Test a period closed months late is followed by the current month."""
        groceries = make_line("400", name="Groceries", rollover_type=RolloverType.MONTHLY)
        budget = make_budget([groceries])
        period = make_open_period(budget, date(2026, 7, 1), date(2026, 7, 31))
        service = self._service(mock_db, budget, period, {groceries.id: Decimal("100")})
        service.create_period_for_budget = AsyncMock(return_value=BudgetPeriod(id=uuid4()))

        await service.close_period(budget.user_id, budget.id, today=date(2026, 10, 5))

        kwargs = service.create_period_for_budget.await_args.kwargs
        assert kwargs["period_dates"] == PeriodDateRange(date(2026, 10, 1), date(2026, 10, 31))
        assert kwargs["rollover_map"] == {groceries.id: Decimal("300")}

    async def test_budget_not_found(self, mock_db):
        """Test closing an unknown budget returns None."""
        service = BudgetPeriodService(mock_db)
        service._get_budget = AsyncMock(return_value=None)

        assert await service.close_period(uuid4(), uuid4()) is None

    async def test_no_open_period(self, mock_db):
        """Test closing without an open period is rejected."""
        service = self._service(mock_db, make_budget([]), None, {})

        with pytest.raises(ValueError, match="No open period"):
            await service.close_period(uuid4(), uuid4())

    async def test_next_period_failure_propagates(self, mock_db):
        """Test a failure creating the next period surfaces from the savepoint."""
        budget = make_budget([make_line("100")])
        period = make_open_period(budget, date(2026, 1, 1), date(2026, 1, 31))
        service = self._service(mock_db, budget, period, {})
        service.create_period_for_budget = AsyncMock(side_effect=RuntimeError("duplicate period"))

        with pytest.raises(RuntimeError, match="duplicate period"):
            await service.close_period(budget.user_id, budget.id)

        mock_db.begin_nested.return_value.__aexit__.assert_awaited_once()


class TestGetOrCreateCurrentPeriod:
    """Test lazy creation of the current period."""

    async def test_returns_existing_period(self, mock_db):
        """Test an existing period for the month is returned."""
        budget = make_budget([make_line("100")])
        existing = make_open_period(budget, date(2026, 3, 1), date(2026, 3, 31))
        service = BudgetPeriodService(mock_db)
        service._get_budget = AsyncMock(return_value=budget)
        service.create_period_for_budget = AsyncMock()
        mock_db.execute.return_value = scalar_result(existing)

        period = await service.get_or_create_current_period(
            budget.user_id, budget.id, today=date(2026, 3, 18)
        )

        assert period is existing
        service.create_period_for_budget.assert_not_awaited()

    async def test_creates_missing_period(self, mock_db):
        """Test the month's period is created when missing."""
        budget = make_budget([make_line("100")])
        created = BudgetPeriod(id=uuid4())
        service = BudgetPeriodService(mock_db)
        service._get_budget = AsyncMock(return_value=budget)
        service.create_period_for_budget = AsyncMock(return_value=created)
        mock_db.execute.return_value = scalar_result(None)

        period = await service.get_or_create_current_period(
            budget.user_id, budget.id, today=date(2026, 3, 18)
        )

        assert period is created
        kwargs = service.create_period_for_budget.await_args.kwargs
        assert kwargs["period_dates"] == PeriodDateRange(date(2026, 3, 1), date(2026, 3, 31))

    async def test_budget_not_found(self, mock_db):
        """Test unknown budgets return None."""
        service = BudgetPeriodService(mock_db)
        service._get_budget = AsyncMock(return_value=None)

        assert await service.get_or_create_current_period(uuid4(), uuid4()) is None

    async def test_returns_earlier_open_period(self, mock_db):
        """Test an OPEN period from an earlier month is returned instead of a second one."""
        budget = make_budget([make_line("100")])
        september = make_open_period(budget, date(2026, 9, 1), date(2026, 9, 30))
        service = BudgetPeriodService(mock_db)
        service._get_budget = AsyncMock(return_value=budget)
        service.get_open_period = AsyncMock(return_value=september)
        service._get_period_starting = AsyncMock(return_value=None)
        service.create_period_for_budget = AsyncMock()

        period = await service.get_or_create_current_period(
            budget.user_id, budget.id, today=date(2026, 10, 1)
        )

        assert period is september
        service.get_open_period.assert_awaited_once_with(budget.id)
        service.create_period_for_budget.assert_not_awaited()
