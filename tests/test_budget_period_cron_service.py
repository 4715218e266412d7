"""Tests for the scheduled period close job."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock

from budget_planner.services.budget_period_cron_service import (
    BudgetPeriodCronService,
    CronRunResult,
)
from tests.factories import make_budget, make_line, make_open_period


TODAY = date(2026, 2, 1)


def cron_service(mock_db, budgets, periods):
    """Cron service with budgets loaded and open periods keyed by budget ID."""
    period_service = MagicMock()
    period_service.get_open_period = AsyncMock(side_effect=lambda budget_id: periods.get(budget_id))
    period_service.close_period = AsyncMock()
    service = BudgetPeriodCronService(mock_db, period_service=period_service)
    service._load_active_budgets = AsyncMock(return_value=budgets)
    return service, period_service


class TestCloseExpiredPeriods:
    """Test closing expired periods across budgets."""

    async def test_closes_only_expired_periods(self, mock_db):
        """Test periods ending before today are closed and others skipped."""
        expired = make_budget([make_line("100")], name="Expired")
        current = make_budget([make_line("100")], name="Current")
        no_period = make_budget([make_line("100")], name="No period")
        periods = {
            expired.id: make_open_period(expired, date(2026, 1, 1), date(2026, 1, 31)),
            current.id: make_open_period(current, date(2026, 2, 1), date(2026, 2, 28)),
        }
        service, period_service = cron_service(mock_db, [expired, current, no_period], periods)

        result = await service.close_expired_periods(today=TODAY)

        assert result == CronRunResult(processed=1, succeeded=1, failed=0)
        period_service.close_period.assert_awaited_once_with(
            expired.user_id, expired.id, today=TODAY
        )

    async def test_period_ending_today_is_not_closed(self, mock_db):
        """Test a period is only closed after its last day."""
        budget = make_budget([make_line("100")])
        periods = {budget.id: make_open_period(budget, date(2026, 1, 1), TODAY)}
        service, period_service = cron_service(mock_db, [budget], periods)

        result = await service.close_expired_periods(today=TODAY)

        assert result.processed == 0
        period_service.close_period.assert_not_awaited()

    async def test_failure_on_one_budget_does_not_stop_others(self, mock_db):
        """Test per-budget error isolation."""
        broken = make_budget([make_line("100")], name="Broken")
        healthy = make_budget([make_line("100")], name="Healthy")
        periods = {
            broken.id: make_open_period(broken, date(2026, 1, 1), date(2026, 1, 31)),
            healthy.id: make_open_period(healthy, date(2026, 1, 1), date(2026, 1, 31)),
        }
        service, period_service = cron_service(mock_db, [broken, healthy], periods)

        async def close(user_id, budget_id, today=None):
            if budget_id == broken.id:
                raise RuntimeError("database error")

        period_service.close_period.side_effect = close

        result = await service.close_expired_periods(today=TODAY)

        assert result == CronRunResult(processed=2, succeeded=1, failed=1)
        assert period_service.close_period.await_count == 2

    async def test_load_failure_returns_empty_result(self, mock_db):
        """Test a failure loading budgets is logged, not raised."""
        service, period_service = cron_service(mock_db, [], {})
        service._load_active_budgets = AsyncMock(side_effect=RuntimeError("connection lost"))

        result = await service.close_expired_periods(today=TODAY)

        assert result == CronRunResult()
        period_service.get_open_period.assert_not_awaited()

    async def test_no_budgets(self, mock_db):
        """Test an empty run."""
        service, _ = cron_service(mock_db, [], {})

        assert await service.close_expired_periods(today=TODAY) == CronRunResult()

    async def test_each_budget_runs_in_its_own_savepoint(self, mock_db):
        """Test every budget gets a savepoint and a failure exits only its own."""
        broken = make_budget([make_line("100")], name="Broken")
        healthy = make_budget([make_line("100")], name="Healthy")
        current = make_budget([make_line("100")], name="Current")
        periods = {
            broken.id: make_open_period(broken, date(2026, 1, 1), date(2026, 1, 31)),
            healthy.id: make_open_period(healthy, date(2026, 1, 1), date(2026, 1, 31)),
            current.id: make_open_period(current, date(2026, 2, 1), date(2026, 2, 28)),
        }
        service, period_service = cron_service(mock_db, [broken, healthy, current], periods)
        period_service.get_open_period.side_effect = lambda budget_id: (
            _raise(RuntimeError("statement failed"))
            if budget_id == broken.id
            else periods.get(budget_id)
        )

        result = await service.close_expired_periods(today=TODAY)

        assert mock_db.begin_nested.call_count == 3
        savepoint_exits = mock_db.begin_nested.return_value.__aexit__.await_args_list
        assert savepoint_exits[0].args[0] is RuntimeError
        assert savepoint_exits[1].args[0] is None
        assert result == CronRunResult(processed=1, succeeded=1, failed=1)
        period_service.close_period.assert_awaited_once_with(
            healthy.user_id, healthy.id, today=TODAY
        )


def _raise(exc):
    raise exc
