"""Tests for scheduled job registration and execution."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from budget_planner.scheduler import JOBS, ScheduledJob, run_job


class FakeSessionFactory:
    """Session factory double yielding one mocked session."""

    def __init__(self):
        self.session = MagicMock()
        self.session.commit = AsyncMock()
        self.session.rollback = AsyncMock()

    def __call__(self):
        return self

    async def __aenter__(self):
        return self.session

    async def __aexit__(self, exc_type, exc, tb):
        return False


def test_job_schedules():
    """Test the three jobs and their cron expressions."""
    assert JOBS["close-periods"].cron == "0 0 1 * *"
    assert JOBS["budget-alerts"].cron == "0 7 * * *"
    assert JOBS["weekly-digest"].cron == "0 7 * * 1"


async def test_run_job_commits(monkeypatch):
    """Test a successful job commits its session and returns the result."""
    runner = AsyncMock(return_value="done")
    monkeypatch.setitem(
        JOBS, "close-periods", ScheduledJob("close-periods", "0 0 1 * *", "Close", runner)
    )
    factory = FakeSessionFactory()

    result = await run_job("close-periods", session_factory=factory)

    assert result == "done"
    runner.assert_awaited_once_with(factory.session)
    factory.session.commit.assert_awaited_once()
    factory.session.rollback.assert_not_awaited()


async def test_run_job_rolls_back_on_failure(monkeypatch):
    """Test a failing job rolls back and re-raises."""
    runner = AsyncMock(side_effect=RuntimeError("boom"))
    monkeypatch.setitem(
        JOBS, "budget-alerts", ScheduledJob("budget-alerts", "0 7 * * *", "Alerts", runner)
    )
    factory = FakeSessionFactory()

    with pytest.raises(RuntimeError, match="boom"):
        await run_job("budget-alerts", session_factory=factory)

    factory.session.rollback.assert_awaited_once()
    factory.session.commit.assert_not_awaited()


async def test_run_unknown_job():
    """Test unknown job names are rejected."""
    with pytest.raises(KeyError):
        await run_job("nightly-backup", session_factory=FakeSessionFactory())
