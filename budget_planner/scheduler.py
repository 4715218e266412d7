"""Scheduled budget jobs.

Jobs are plain coroutines run against a fresh database session. An external
scheduler (crontab, Kubernetes CronJob) invokes them through
``scripts/run_budget_job.py`` using the cron expressions below.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict

from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.config import settings
from budget_planner.database import AsyncSessionLocal
from budget_planner.services.budget_alert_service import BudgetAlertService
from budget_planner.services.budget_period_cron_service import BudgetPeriodCronService
from budget_planner.logging_config import get_logger, bind_contextvars, clear_contextvars

logger = get_logger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    """A named job with its cron schedule."""

    name: str
    cron: str
    description: str
    runner: Callable[[AsyncSession], Awaitable[Any]]


async def _close_periods(db: AsyncSession) -> Any:
    return await BudgetPeriodCronService(db).close_expired_periods()


async def _check_alerts(db: AsyncSession) -> Any:
    return await BudgetAlertService(db).check_budget_alerts()


async def _weekly_digest(db: AsyncSession) -> Any:
    return await BudgetAlertService(db).send_weekly_digest()


JOBS: Dict[str, ScheduledJob] = {
    job.name: job
    for job in (
        ScheduledJob(
            name="close-periods",
            cron=settings.period_close_cron,
            description="Close expired budget periods and open the next ones",
            runner=_close_periods,
        ),
        ScheduledJob(
            name="budget-alerts",
            cron=settings.alert_check_cron,
            description="Evaluate alert rules for every active budget",
            runner=_check_alerts,
        ),
        ScheduledJob(
            name="weekly-digest",
            cron=settings.weekly_digest_cron,
            description="Email each user a summary of this period's alerts",
            runner=_weekly_digest,
        ),
    )
}


async def run_job(name: str, session_factory=AsyncSessionLocal) -> Any:
    """Run one job in its own session and commit its work.

    Args:
        name: Job name (see ``JOBS``)
        session_factory: Async session factory

    Returns:
        The job's result counters

    Raises:
        KeyError: If the job name is unknown
    """
    if name not in JOBS:
        raise KeyError(f"Unknown job: {name}")

    job = JOBS[name]
    clear_contextvars()
    bind_contextvars(job=job.name)

    logger.info("Scheduled job started", cron=job.cron)

    async with session_factory() as session:
        try:
            result = await job.runner(session)
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.error("Scheduled job failed", error=str(e), exc_info=True)
            raise

    logger.info("Scheduled job finished", result=str(result))

    return result
