"""Rule-based budget alert engine, daily alert check and weekly digest."""

from dataclasses import dataclass, field
from datetime import date as date_type
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

import numpy as np
from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.config import Settings, settings as default_settings
from budget_planner.models.budget import Budget, BudgetCategory
from budget_planner.models.budget_alert import AlertSeverity, AlertType, BudgetAlert
from budget_planner.models.user import User, UserPreference
from budget_planner.services.budget_dates import (
    add_months,
    get_current_month_period_dates,
    month_name,
    period_progress,
    today_utc,
)
from budget_planner.services.email_service import (
    AlertEmailItem,
    EmailService,
    build_immediate_alert_body,
    build_weekly_digest_body,
)
from budget_planner.services.spending import SpendingCalculator, ZERO
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)

# Critical alerts of these types are emailed as soon as they are raised
IMMEDIATE_EMAIL_TYPES = {
    AlertType.THRESHOLD_CRITICAL.value,
    AlertType.OVER_BUDGET.value,
    AlertType.INCOME_SHORTFALL.value,
}


@dataclass
class CategoryActual:
    """Budgeted vs. spent for one budget line in the current period."""

    budget_category_id: UUID
    category_id: Optional[UUID]
    category_name: str
    budgeted: Decimal
    spent: Decimal
    percent_used: float
    is_income: bool
    alert_warn_percent: int
    alert_critical_percent: int
    flex_group: Optional[str] = None


@dataclass
class AlertCandidate:
    """Alert produced by a rule, not yet persisted."""

    budget_category_id: Optional[UUID]
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SeasonalProfile:
    """Months in which a category historically spends well above normal."""

    budget_category_id: UUID
    category_id: UUID
    category_name: str
    high_months: List[int]
    typical_monthly_spend: float
    typical_increase: float


@dataclass
class AlertProcessResult:
    """Alerts saved and emails sent for one budget."""

    alerts_created: int = 0
    emails_sent: int = 0


@dataclass
class AlertCheckResult:
    """Totals of a daily alert check run."""

    budgets: int = 0
    alerts_created: int = 0
    emails_sent: int = 0
    failed: int = 0


@dataclass
class DigestResult:
    """Totals of a weekly digest run."""

    sent: int = 0
    skipped: int = 0
    failed: int = 0


def percent_of(part: Decimal, whole: Decimal) -> float:
    """``part / whole`` as a percentage rounded to 2 dp; 0 when ``whole`` is not positive."""
    if whole <= 0:
        return 0.0
    return round(float(Decimal(part) / Decimal(whole) * 100), 2)


def build_category_actuals(
    budget_categories: Iterable[BudgetCategory], actuals: Dict[UUID, Decimal]
) -> List[CategoryActual]:
    """Combine budget lines with their actual amounts."""
    result = []
    for bc in budget_categories:
        budgeted = Decimal(bc.amount)
        spent = Decimal(actuals.get(bc.id, ZERO))
        result.append(
            CategoryActual(
                budget_category_id=bc.id,
                category_id=bc.category_id,
                category_name=bc.display_name,
                budgeted=budgeted,
                spent=spent,
                percent_used=percent_of(spent, budgeted),
                is_income=bc.is_income,
                alert_warn_percent=bc.alert_warn_percent,
                alert_critical_percent=bc.alert_critical_percent,
                flex_group=bc.flex_group,
            )
        )
    return result


def deduplicate_alerts(
    candidates: List[AlertCandidate], existing: Iterable[BudgetAlert]
) -> List[AlertCandidate]:
    """Drop candidates already stored for the same type and budget line."""
    seen = {(alert.alert_type, alert.budget_category_id) for alert in existing}
    return [
        candidate
        for candidate in candidates
        if (AlertType(candidate.alert_type).value, candidate.budget_category_id) not in seen
    ]


class BudgetAlertService:
    """Evaluates alert rules for budgets and delivers alert emails."""

    def __init__(
        self,
        db: AsyncSession,
        email_service: Optional[EmailService] = None,
        config: Optional[Settings] = None,
    ):
        """Initialize budget alert service.

        Args:
            db: Database session
            email_service: Email sender (defaults to SMTP from settings)
            config: Settings providing rule thresholds
        """
        self.db = db
        self.config = config or default_settings
        self.email_service = email_service or EmailService(self.config)
        self.spending = SpendingCalculator(db)

    # Rules

    def check_threshold_alerts(self, cat: CategoryActual) -> List[AlertCandidate]:
        """Over-budget, critical or warning alert for one expense line (at most one)."""
        details = f"${cat.spent:.2f} of ${cat.budgeted:.2f}"
        data = {
            "categoryName": cat.category_name,
            "percent": cat.percent_used,
            "amount": float(cat.spent),
            "limit": float(cat.budgeted),
        }

        if cat.percent_used >= 100:
            return [
                AlertCandidate(
                    budget_category_id=cat.budget_category_id,
                    alert_type=AlertType.OVER_BUDGET,
                    severity=AlertSeverity.CRITICAL,
                    title=f"{cat.category_name} is over budget",
                    message=(
                        f"You have spent ${cat.spent:.2f} of your ${cat.budgeted:.2f} budget "
                        f"for {cat.category_name} ({cat.percent_used:.1f}%)."
                    ),
                    data=data,
                )
            ]

        if cat.percent_used >= cat.alert_critical_percent:
            return [
                AlertCandidate(
                    budget_category_id=cat.budget_category_id,
                    alert_type=AlertType.THRESHOLD_CRITICAL,
                    severity=AlertSeverity.CRITICAL,
                    title=f"{cat.category_name} approaching limit",
                    message=(
                        f"You have used {cat.percent_used:.1f}% of your {cat.category_name} "
                        f"budget ({details})."
                    ),
                    data={**data, "threshold": cat.alert_critical_percent},
                )
            ]

        if cat.percent_used >= cat.alert_warn_percent:
            return [
                AlertCandidate(
                    budget_category_id=cat.budget_category_id,
                    alert_type=AlertType.THRESHOLD_WARNING,
                    severity=AlertSeverity.WARNING,
                    title=f"{cat.category_name} reaching budget limit",
                    message=(
                        f"You have used {cat.percent_used:.1f}% of your {cat.category_name} "
                        f"budget ({details})."
                    ),
                    data={**data, "threshold": cat.alert_warn_percent},
                )
            ]

        return []

    def check_velocity_alert(
        self, cat: CategoryActual, days_elapsed: int, total_days: int
    ) -> Optional[AlertCandidate]:
        """Projected overspend by linear extrapolation of the spend so far."""
        if cat.budgeted <= 0 or days_elapsed <= 0:
            return None

        daily_rate = float(cat.spent) / days_elapsed
        projected_total = daily_rate * total_days
        projected_percent = projected_total / float(cat.budgeted) * 100

        if projected_percent > self.config.projected_overspend_percent and cat.percent_used < 100:
            return AlertCandidate(
                budget_category_id=cat.budget_category_id,
                alert_type=AlertType.PROJECTED_OVERSPEND,
                severity=AlertSeverity.WARNING,
                title=f"{cat.category_name} projected to overspend",
                message=(
                    f"At your current pace, {cat.category_name} is projected to reach "
                    f"${projected_total:.2f} by the end of the period "
                    f"(budget: ${cat.budgeted:.2f})."
                ),
                data={
                    "categoryName": cat.category_name,
                    "projectedTotal": round(projected_total, 2),
                    "budgeted": float(cat.budgeted),
                    "dailyRate": round(daily_rate, 2),
                    "projectedPercent": round(projected_percent, 1),
                },
            )

        return None

    def check_flex_group_alerts(self, actuals: List[CategoryActual]) -> List[AlertCandidate]:
        """Warn when a flex group's combined spend nears its combined budget."""
        groups: Dict[str, Tuple[Decimal, Decimal]] = {}
        for cat in actuals:
            if not cat.flex_group:
                continue
            budgeted, spent = groups.get(cat.flex_group, (ZERO, ZERO))
            groups[cat.flex_group] = (budgeted + cat.budgeted, spent + cat.spent)

        alerts = []
        for group_name, (total_budgeted, total_spent) in groups.items():
            if total_budgeted <= 0:
                continue

            group_percent = float(total_spent / total_budgeted * 100)
            if group_percent >= self.config.flex_group_warn_percent:
                alerts.append(
                    AlertCandidate(
                        budget_category_id=None,
                        alert_type=AlertType.FLEX_GROUP_WARNING,
                        severity=AlertSeverity.WARNING,
                        title=f'Flex group "{group_name}" at {group_percent:.0f}%',
                        message=(
                            f'The "{group_name}" flex group has used ${total_spent:.2f} of its '
                            f"combined ${total_budgeted:.2f} budget ({group_percent:.1f}%)."
                        ),
                        data={
                            "flexGroup": group_name,
                            "totalBudgeted": float(total_budgeted),
                            "totalSpent": float(total_spent),
                            "percent": round(group_percent, 1),
                        },
                    )
                )

        return alerts

    def check_income_shortfall(
        self,
        income_actuals: List[CategoryActual],
        expected_income: Decimal,
        progress: float,
    ) -> Optional[AlertCandidate]:
        """Critical alert when income lags the time-prorated expectation."""
        if progress < 0.5:
            return None

        actual_income = float(sum((cat.spent for cat in income_actuals), ZERO))
        expected_so_far = float(expected_income) * progress
        if expected_so_far <= 0:
            return None

        ratio = actual_income / expected_so_far
        if ratio >= self.config.income_shortfall_ratio:
            return None

        return AlertCandidate(
            budget_category_id=None,
            alert_type=AlertType.INCOME_SHORTFALL,
            severity=AlertSeverity.CRITICAL,
            title="Income below expected",
            message=(
                f"Your actual income (${actual_income:.2f}) is only {round(ratio * 100)}% of "
                f"expected income (${expected_so_far:.2f}) at this point in the period."
            ),
            data={
                "actualIncome": actual_income,
                "expectedIncome": round(expected_so_far, 2),
                "fullPeriodExpected": float(expected_income),
                "ratio": round(ratio * 100),
            },
        )

    def check_positive_milestones(
        self, actuals: List[CategoryActual], progress: float, days_remaining: int
    ) -> List[AlertCandidate]:
        """Success alert when spending is well under budget past the midpoint."""
        if progress < 0.5 or days_remaining <= 0:
            return []

        total_budgeted = sum((cat.budgeted for cat in actuals), ZERO)
        total_spent = sum((cat.spent for cat in actuals), ZERO)
        if total_budgeted <= 0:
            return []

        overall_percent = float(total_spent / total_budgeted * 100)
        if overall_percent >= self.config.milestone_max_percent:
            return []

        return [
            AlertCandidate(
                budget_category_id=None,
                alert_type=AlertType.POSITIVE_MILESTONE,
                severity=AlertSeverity.SUCCESS,
                title="Budget on track",
                message=(
                    f"You are {round(progress * 100)}% through the period and have only used "
                    f"{overall_percent:.1f}% of your total budget. Keep it up!"
                ),
                data={
                    "periodProgress": round(progress * 100),
                    "percentUsed": round(overall_percent, 1),
                    "totalBudgeted": float(total_budgeted),
                    "totalSpent": float(total_spent),
                    "daysRemaining": days_remaining,
                },
            )
        ]

    def build_seasonal_profile(
        self, budget_category: BudgetCategory, monthly: Dict[int, Decimal]
    ) -> Optional[SeasonalProfile]:
        """Detect months whose spend exceeds mean + sigma * stddev of active months.

        Returns:
            Profile, or None if there is too little history or no high month
        """
        amounts = np.array([float(monthly.get(m, 0)) for m in range(1, 13)])
        non_zero = amounts[amounts > 0]
        if non_zero.size < self.config.seasonal_min_active_months:
            return None

        mean = float(non_zero.mean())
        threshold = mean + self.config.seasonal_sigma * float(non_zero.std())

        high_mask = amounts > threshold
        if not high_mask.any():
            return None

        max_increase = float((amounts[high_mask] / mean).max()) if mean > 0 else 0.0

        return SeasonalProfile(
            budget_category_id=budget_category.id,
            category_id=budget_category.category_id,
            category_name=budget_category.display_name,
            high_months=[int(m) + 1 for m in np.flatnonzero(high_mask)],
            typical_monthly_spend=round(mean, 2),
            typical_increase=round(max_increase, 1),
        )

    def seasonal_alerts_for(
        self, profiles: List[SeasonalProfile], next_month: int
    ) -> List[AlertCandidate]:
        """Info alerts for profiles whose high months include ``next_month``."""
        alerts = []
        for profile in profiles:
            if next_month not in profile.high_months:
                continue
            if profile.typical_increase < self.config.seasonal_min_increase:
                continue

            name = month_name(next_month)
            alerts.append(
                AlertCandidate(
                    budget_category_id=profile.budget_category_id,
                    alert_type=AlertType.SEASONAL_SPIKE,
                    severity=AlertSeverity.INFO,
                    title=f"Seasonal spike expected for {profile.category_name}",
                    message=(
                        f"Last {name} you spent {profile.typical_increase:.1f}x your usual on "
                        f"{profile.category_name}. Consider adjusting your budget."
                    ),
                    data={
                        "categoryName": profile.category_name,
                        "highMonth": next_month,
                        "highMonthName": name,
                        "typicalMonthlySpend": profile.typical_monthly_spend,
                        "typicalIncrease": profile.typical_increase,
                        "suggestedBudget": round(
                            profile.typical_monthly_spend * profile.typical_increase, 2
                        ),
                    },
                )
            )
        return alerts

    async def check_seasonal_spikes(
        self, user_id: UUID, budget: Budget, today: Optional[date_type] = None
    ) -> List[AlertCandidate]:
        """Seasonal spike alerts for next month based on the last 12 months."""
        today = today or today_utc()
        categories = [
            bc
            for bc in (budget.categories or [])
            if not bc.is_income and bc.category_id is not None and not bc.is_transfer
        ]
        if not categories:
            return []

        current = get_current_month_period_dates(today)
        monthly = await self.spending.compute_monthly_spending(
            user_id,
            [bc.category_id for bc in categories],
            add_months(current.period_start, -12),
            current.period_end,
        )

        profiles = []
        for bc in categories:
            profile = self.build_seasonal_profile(bc, monthly.get(bc.category_id, {}))
            if profile:
                profiles.append(profile)

        return self.seasonal_alerts_for(profiles, add_months(today, 1).month)

    # Persistence and delivery

    async def _get_existing_alerts(self, budget_id: UUID, period_start: date_type) -> List[BudgetAlert]:
        stmt = select(BudgetAlert).where(
            and_(BudgetAlert.budget_id == budget_id, BudgetAlert.period_start == period_start)
        )
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _get_preference(self, user_id: UUID) -> Optional[UserPreference]:
        result = await self.db.execute(
            select(UserPreference).where(UserPreference.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def _get_user(self, user_id: UUID) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _load_active_budgets(self) -> List[Budget]:
        stmt = select(Budget).where(Budget.is_active.is_(True)).order_by(Budget.created_at)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def process_alerts(
        self, budget: Budget, today: Optional[date_type] = None
    ) -> AlertProcessResult:
        """Evaluate every rule for a budget's current month and save new alerts.

        Args:
            budget: Budget with categories loaded
            today: Reference date (defaults to today, UTC)

        Returns:
            Number of alerts saved and emails sent
        """
        today = today or today_utc()
        period = get_current_month_period_dates(today)
        budget_categories = list(budget.categories or [])

        if not budget_categories:
            return AlertProcessResult()

        actuals = await self.spending.compute_budget_category_actuals(
            budget.user_id, budget, period.period_start, period.period_end
        )
        category_actuals = build_category_actuals(budget_categories, actuals)
        progress = period_progress(period.period_start, period.period_end, today)

        expense_actuals = [cat for cat in category_actuals if not cat.is_income]
        income_actuals = [cat for cat in category_actuals if cat.is_income]

        candidates: List[AlertCandidate] = []

        for cat in expense_actuals:
            if cat.budgeted > 0:
                candidates.extend(self.check_threshold_alerts(cat))

        if progress.days_elapsed >= self.config.velocity_min_days_elapsed:
            for cat in expense_actuals:
                alert = self.check_velocity_alert(cat, progress.days_elapsed, progress.total_days)
                if alert:
                    candidates.append(alert)

        candidates.extend(self.check_flex_group_alerts(expense_actuals))

        if budget.income_linked and budget.base_income:
            alert = self.check_income_shortfall(
                income_actuals, Decimal(budget.base_income), progress.progress
            )
            if alert:
                candidates.append(alert)

        candidates.extend(
            self.check_positive_milestones(
                expense_actuals, progress.progress, progress.days_remaining
            )
        )

        try:
            candidates.extend(await self.check_seasonal_spikes(budget.user_id, budget, today))
        except Exception as e:
            logger.error(
                "Failed to check seasonal spikes",
                budget_id=str(budget.id),
                error=str(e),
                exc_info=True,
            )

        existing = await self._get_existing_alerts(budget.id, period.period_start)
        new_candidates = deduplicate_alerts(candidates, existing)
        if not new_candidates:
            return AlertProcessResult()

        saved: List[BudgetAlert] = []
        for candidate in new_candidates:
            alert = BudgetAlert(
                user_id=budget.user_id,
                budget_id=budget.id,
                budget_category_id=candidate.budget_category_id,
                alert_type=AlertType(candidate.alert_type).value,
                severity=AlertSeverity(candidate.severity).value,
                title=candidate.title,
                message=candidate.message,
                data=candidate.data,
                is_read=False,
                is_email_sent=False,
                period_start=period.period_start,
            )
            self.db.add(alert)
            saved.append(alert)
        await self.db.flush()

        result = AlertProcessResult(alerts_created=len(saved))

        critical = [
            alert
            for alert in saved
            if alert.severity == AlertSeverity.CRITICAL.value
            and alert.alert_type in IMMEDIATE_EMAIL_TYPES
        ]
        if critical and await self.send_immediate_alert_email(budget.user_id, critical):
            result.emails_sent = 1
            for alert in critical:
                alert.is_email_sent = True
            await self.db.flush()

        logger.info(
            "Budget alerts processed",
            budget_id=str(budget.id),
            user_id=str(budget.user_id),
            candidates=len(candidates),
            alerts_created=result.alerts_created,
            emails_sent=result.emails_sent,
        )

        return result

    async def send_immediate_alert_email(self, user_id: UUID, alerts: List[BudgetAlert]) -> bool:
        """Email a batch of critical alerts in one message.

        Returns:
            True if the email was sent
        """
        if not self.email_service.is_configured():
            return False

        try:
            prefs = await self._get_preference(user_id)
            if prefs and not prefs.notification_email:
                return False

            user = await self._get_user(user_id)
            if not user or not user.email:
                return False

            items = [
                AlertEmailItem(
                    title=alert.title,
                    message=alert.message,
                    severity=alert.severity,
                    category_name=(alert.data or {}).get("categoryName", ""),
                )
                for alert in alerts
            ]
            body = build_immediate_alert_body(
                user.first_name or "", items, self.config.public_app_url
            )
            subject = (
                f"{self.config.app_name}: Alert - {alerts[0].title}"
                if len(alerts) == 1
                else f"{self.config.app_name}: {len(alerts)} alerts need attention"
            )

            await self.email_service.send_mail(user.email, subject, body)
            return True
        except Exception as e:
            logger.error(
                "Failed to send immediate budget alert email",
                user_id=str(user_id),
                error=str(e),
                exc_info=True,
            )
            return False

    # Scheduled jobs

    async def check_budget_alerts(self, today: Optional[date_type] = None) -> AlertCheckResult:
        """Daily alert check across all active budgets.

        Each budget runs in its own savepoint; a failure is logged and the
        remaining budgets are still processed.
        """
        result = AlertCheckResult()
        logger.info("Running daily budget alert check")

        try:
            budgets = await self._load_active_budgets()
        except Exception as e:
            logger.error("Failed to load budgets for alert check", error=str(e), exc_info=True)
            return result

        if not budgets:
            logger.info("No active budgets found")
            return result

        for budget in budgets:
            result.budgets += 1
            try:
                async with self.db.begin_nested():
                    processed = await self.process_alerts(budget, today)
                result.alerts_created += processed.alerts_created
                result.emails_sent += processed.emails_sent
            except Exception as e:
                result.failed += 1
                logger.error(
                    "Failed to process alerts for budget",
                    budget_id=str(budget.id),
                    error=str(e),
                    exc_info=True,
                )

        logger.info(
            "Budget alert check complete",
            budgets=result.budgets,
            alerts_created=result.alerts_created,
            emails_sent=result.emails_sent,
            failed=result.failed,
        )

        return result

    async def send_digest_for_user(
        self, user_id: UUID, budgets: List[Budget], today: Optional[date_type] = None
    ) -> bool:
        """Email one user the current period's most recent alerts.

        Returns:
            True if a digest was sent, False if it was skipped
        """
        prefs = await self._get_preference(user_id)
        if prefs and not prefs.notification_email:
            return False
        if prefs and prefs.budget_digest_enabled is False:
            return False

        user = await self._get_user(user_id)
        if not user or not user.email:
            return False

        period = get_current_month_period_dates(today)
        stmt = (
            select(BudgetAlert)
            .where(
                and_(
                    BudgetAlert.user_id == user_id,
                    BudgetAlert.period_start == period.period_start,
                )
            )
            .order_by(BudgetAlert.created_at.desc())
            .limit(self.config.digest_alert_limit)
        )
        alerts = list((await self.db.execute(stmt)).scalars().all())
        if not alerts:
            return False

        items = [
            AlertEmailItem(
                title=alert.title,
                message=alert.message,
                severity=alert.severity,
                category_name=(alert.data or {}).get("categoryName", ""),
            )
            for alert in alerts
        ]
        body = build_weekly_digest_body(
            user.first_name or "",
            items,
            [budget.name for budget in budgets],
            self.config.public_app_url,
        )

        await self.email_service.send_mail(
            user.email, f"{self.config.app_name}: Your weekly budget summary", body
        )
        return True

    async def send_weekly_digest(self, today: Optional[date_type] = None) -> DigestResult:
        """Weekly digest for every user with an active budget."""
        result = DigestResult()
        logger.info("Running weekly budget digest")

        try:
            budgets = await self._load_active_budgets()
        except Exception as e:
            logger.error("Failed to load budgets for weekly digest", error=str(e), exc_info=True)
            return result

        if not budgets:
            logger.info("No active budgets for weekly digest")
            return result

        if not self.email_service.is_configured():
            logger.debug("SMTP not configured, skipping weekly budget digest")
            return result

        budgets_by_user: Dict[UUID, List[Budget]] = {}
        for budget in budgets:
            budgets_by_user.setdefault(budget.user_id, []).append(budget)

        for user_id, user_budgets in budgets_by_user.items():
            try:
                if await self.send_digest_for_user(user_id, user_budgets, today):
                    result.sent += 1
                else:
                    result.skipped += 1
            except Exception as e:
                result.failed += 1
                logger.error(
                    "Failed to send weekly digest",
                    user_id=str(user_id),
                    error=str(e),
                    exc_info=True,
                )

        logger.info(
            "Weekly budget digest complete",
            sent=result.sent,
            skipped=result.skipped,
            failed=result.failed,
        )

        return result
