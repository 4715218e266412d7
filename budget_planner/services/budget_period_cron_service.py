"""Scheduled close of budget periods whose end date has passed."""

from dataclasses import dataclass
from datetime import date as date_type
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.models.budget import Budget
from budget_planner.services.budget_dates import today_utc
from budget_planner.services.budget_period_service import BudgetPeriodService
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class CronRunResult:
    """Outcome counters of one batch run."""

    processed: int = 0
    succeeded: int = 0
    failed: int = 0


class BudgetPeriodCronService:
    """Closes expired OPEN periods for every active budget."""

    def __init__(self, db: AsyncSession, period_service: Optional[BudgetPeriodService] = None):
        """Initialize period close job.

        Args:
            db: Database session
            period_service: Period service (defaults to one bound to ``db``)
        """
        self.db = db
        self.period_service = period_service or BudgetPeriodService(db)

    async def _load_active_budgets(self) -> List[Budget]:
        stmt = select(Budget).where(Budget.is_active.is_(True)).order_by(Budget.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def close_expired_periods(self, today: Optional[date_type] = None) -> CronRunResult:
        """Close every OPEN period that ended before ``today``.

        Budgets are handled one at a time; a failure on one budget is logged
        and does not stop the others.

        Args:
            today: Reference date (defaults to today, UTC)

        Returns:
            Counters of budgets closed and failed
        """
        today = today or today_utc()
        result = CronRunResult()

        logger.info("Running budget period close check", today=str(today))

        try:
            budgets = await self._load_active_budgets()
        except Exception as e:
            logger.error("Failed to load budgets for period close", error=str(e), exc_info=True)
            return result

        for budget in budgets:
            try:
                # Reads and writes for one budget share a savepoint so a failed
                # statement does not abort the job's transaction
                async with self.db.begin_nested():
                    period = await self.period_service.get_open_period(budget.id)
                    if not period or period.period_end >= today:
                        continue

                    result.processed += 1
                    await self.period_service.close_period(budget.user_id, budget.id, today=today)
                result.succeeded += 1
            except Exception as e:
                result.failed += 1
                logger.error(
                    "Failed to close period for budget",
                    budget_id=str(budget.id),
                    user_id=str(budget.user_id),
                    error=str(e),
                    exc_info=True,
                )

        logger.info(
            "Budget period close check complete",
            budgets=len(budgets),
            processed=result.processed,
            succeeded=result.succeeded,
            failed=result.failed,
        )

        return result
