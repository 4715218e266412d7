"""Tests for budget API routes."""

from datetime import date, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from budget_planner.main import app
from budget_planner.models import BudgetAlert, PeriodStatus
from budget_planner.routes.budgets import (
    get_budget_generator_service,
    get_budget_period_service,
    get_budget_report_service,
    get_budget_service,
)
from budget_planner.schemas.budget_report import BudgetProfile
from budget_planner.services.budget_generator_service import CategoryAnalysis, GeneratedBudget
from budget_planner.services.budget_report_service import (
    DailySpending,
    FlexGroupCategory,
    FlexGroupStatus,
    HealthScore,
    HealthScoreBreakdown,
    TrendPoint,
)
from budget_planner.services.budget_service import (
    BudgetVelocity,
    DashboardCategory,
    DashboardSummary,
)
from tests.factories import make_budget, make_line, make_open_period


NOW = datetime(2026, 1, 15, 12, 0, 0)


def stored_budget():
    """Budget as it would come back from the database."""
    budget = make_budget(
        [make_line("400", name="Groceries", parent="Food"), make_line("1200", name="Rent")]
    )
    budget.created_at = budget.updated_at = NOW
    for line in budget.categories:
        line.budget_id = budget.id
    return budget


def stored_period(budget, status=PeriodStatus.OPEN):
    period = make_open_period(budget, date(2026, 1, 1), date(2026, 1, 31))
    period.status = status.value
    period.created_at = period.updated_at = NOW
    return period


@pytest.fixture
def budget_service():
    """Budget service double installed as the route dependency."""
    service = MagicMock()
    app.dependency_overrides[get_budget_service] = lambda: service
    return service


@pytest.fixture
def period_service():
    """Budget period service double installed as the route dependency."""
    service = MagicMock()
    app.dependency_overrides[get_budget_period_service] = lambda: service
    return service


@pytest.fixture
def report_service():
    """Budget report service double installed as the route dependency."""
    service = MagicMock()
    app.dependency_overrides[get_budget_report_service] = lambda: service
    return service


@pytest.fixture
def generator_service():
    """Budget generator service double installed as the route dependency."""
    service = MagicMock()
    app.dependency_overrides[get_budget_generator_service] = lambda: service
    return service


class TestBudgetRoutes:
    """Test budget CRUD endpoints."""

    async def test_create_budget(self, api_client, budget_service):
        """Test creating a budget returns 201 with its lines."""
        budget = stored_budget()
        budget_service.create_budget = AsyncMock(return_value=budget)
        user_id = uuid4()

        response = await api_client.post(
            f"/api/budgets?user_id={user_id}",
            json={
                "name": "Household",
                "period_start": "2026-01-01",
                "categories": [
                    {"category_id": str(uuid4()), "amount": "400"},
                    {"category_id": str(uuid4()), "amount": "1200", "rollover_type": "MONTHLY"},
                ],
            },
        )

        assert response.status_code == 201
        data = response.json()
        assert data["id"] == str(budget.id)
        assert [c["display_name"] for c in data["categories"]] == ["Food > Groceries", "Rent"]
        args = budget_service.create_budget.await_args.args
        assert str(args[0]) == str(user_id)
        assert len(args[1].categories) == 2

    async def test_create_budget_line_without_target(self, api_client, budget_service):
        """Test a non-transfer line without a category is rejected."""
        response = await api_client.post(
            f"/api/budgets?user_id={uuid4()}",
            json={"name": "Household", "period_start": "2026-01-01", "categories": [{"amount": "5"}]},
        )

        assert response.status_code == 422

    async def test_create_budget_invalid_line(self, api_client, budget_service):
        """Test service validation errors map to 400."""
        budget_service.create_budget = AsyncMock(
            side_effect=ValueError("This category is already in the budget")
        )

        response = await api_client.post(
            f"/api/budgets?user_id={uuid4()}",
            json={"name": "Household", "period_start": "2026-01-01"},
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "This category is already in the budget"

    async def test_get_budget_not_found(self, api_client, budget_service):
        """Test unknown budgets return 404."""
        budget_service.get_budget = AsyncMock(return_value=None)

        response = await api_client.get(f"/api/budgets/{uuid4()}?user_id={uuid4()}")

        assert response.status_code == 404

    async def test_user_id_required(self, api_client, budget_service):
        """Test requests without a user are rejected."""
        response = await api_client.get("/api/budgets")

        assert response.status_code == 422

    async def test_bulk_update_requires_lines(self, api_client, budget_service):
        """Test an empty bulk update is rejected."""
        response = await api_client.put(
            f"/api/budgets/{uuid4()}/categories?user_id={uuid4()}", json={"categories": []}
        )

        assert response.status_code == 422

    async def test_bulk_update_unknown_line(self, api_client, budget_service):
        """Test unknown lines in a bulk update map to 400."""
        budget_service.bulk_update_category_amounts = AsyncMock(
            side_effect=ValueError("Budget category not found: x")
        )

        response = await api_client.put(
            f"/api/budgets/{uuid4()}/categories?user_id={uuid4()}",
            json={"categories": [{"id": str(uuid4()), "amount": "10"}]},
        )

        assert response.status_code == 400

    async def test_service_failure(self, api_client, budget_service):
        """Test unexpected errors map to 500."""
        budget_service.list_budgets = AsyncMock(side_effect=RuntimeError("db down"))

        response = await api_client.get(f"/api/budgets?user_id={uuid4()}")

        assert response.status_code == 500
        assert "db down" in response.json()["detail"]


class TestReportingRoutes:
    """Test dashboard and velocity endpoints."""

    async def test_dashboard(self, api_client, budget_service):
        """Test the dashboard summary."""
        budget_service.get_dashboard_summary = AsyncMock(
            return_value=DashboardSummary(
                budget_id=uuid4(),
                budget_name="Household",
                total_budgeted=Decimal("1600"),
                total_spent=Decimal("400"),
                remaining=Decimal("1200"),
                percent_used=25.0,
                safe_daily_spend=Decimal("70.59"),
                days_remaining=17,
                top_categories=[
                    DashboardCategory("Groceries", Decimal("400"), Decimal("300"), Decimal("100"), 75.0)
                ],
            )
        )

        response = await api_client.get(f"/api/budgets/dashboard?user_id={uuid4()}")

        assert response.status_code == 200
        data = response.json()
        assert data["budget_name"] == "Household"
        assert Decimal(data["safe_daily_spend"]) == Decimal("70.59")
        assert data["top_categories"][0]["category_name"] == "Groceries"

    async def test_dashboard_without_budget(self, api_client, budget_service):
        """Test 404 when the user has no active budget."""
        budget_service.get_dashboard_summary = AsyncMock(return_value=None)

        response = await api_client.get(f"/api/budgets/dashboard?user_id={uuid4()}")

        assert response.status_code == 404

    async def test_velocity(self, api_client, budget_service):
        """Test the velocity endpoint."""
        budget_service.get_velocity = AsyncMock(
            return_value=BudgetVelocity(
                daily_burn_rate=Decimal("140.00"),
                projected_total=Decimal("4340.00"),
                budget_total=Decimal("1600"),
                projected_variance=Decimal("2740.00"),
                safe_daily_spend=Decimal("9.52"),
                days_elapsed=10,
                days_remaining=21,
                total_days=31,
                current_spent=Decimal("1400"),
                pace_status="over",
            )
        )

        response = await api_client.get(f"/api/budgets/{uuid4()}/velocity?user_id={uuid4()}")

        assert response.status_code == 200
        assert response.json()["pace_status"] == "over"
        assert response.json()["total_days"] == 31


class TestPeriodRoutes:
    """Test budget period endpoints."""

    async def test_close_period(self, api_client, period_service):
        """Test closing returns the closed period with its lines."""
        budget = stored_budget()
        period = stored_period(budget, PeriodStatus.CLOSED)
        period_service.close_period = AsyncMock(return_value=period)

        response = await api_client.post(
            f"/api/budgets/{budget.id}/periods/close?user_id={budget.user_id}"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CLOSED"
        assert len(data["period_categories"]) == 2
        period_service.close_period.assert_awaited_once()

    async def test_close_without_open_period(self, api_client, period_service):
        """Test closing without an open period maps to 400."""
        period_service.close_period = AsyncMock(side_effect=ValueError("No open period to close"))

        response = await api_client.post(f"/api/budgets/{uuid4()}/periods/close?user_id={uuid4()}")

        assert response.status_code == 400
        assert response.json()["detail"] == "No open period to close"

    async def test_close_unknown_budget(self, api_client, period_service):
        """Test closing for an unknown budget maps to 404."""
        period_service.close_period = AsyncMock(return_value=None)

        response = await api_client.post(f"/api/budgets/{uuid4()}/periods/close?user_id={uuid4()}")

        assert response.status_code == 404

    async def test_current_period(self, api_client, period_service):
        """Test the current period is returned."""
        budget = stored_budget()
        period_service.get_or_create_current_period = AsyncMock(return_value=stored_period(budget))

        response = await api_client.get(
            f"/api/budgets/{budget.id}/periods/current?user_id={budget.user_id}"
        )

        assert response.status_code == 200
        assert response.json()["status"] == "OPEN"
        assert response.json()["period_start"] == "2026-01-01"

    async def test_list_periods(self, api_client, period_service):
        """Test listing periods of a budget."""
        budget = stored_budget()
        period_service.list_periods = AsyncMock(return_value=[stored_period(budget)])

        response = await api_client.get(
            f"/api/budgets/{budget.id}/periods?user_id={budget.user_id}"
        )

        assert response.status_code == 200
        assert len(response.json()) == 1


class TestAlertRoutes:
    """Test alert endpoints."""

    def _alert(self):
        return BudgetAlert(
            id=uuid4(),
            user_id=uuid4(),
            budget_id=uuid4(),
            budget_category_id=None,
            alert_type="POSITIVE_MILESTONE",
            severity="SUCCESS",
            title="Budget on track",
            message="Keep it up!",
            data={"percentUsed": 25.0},
            is_read=False,
            is_email_sent=False,
            period_start=date(2026, 1, 1),
            created_at=NOW,
        )

    async def test_list_alerts(self, api_client, budget_service):
        """Test listing alerts."""
        budget_service.get_alerts = AsyncMock(return_value=[self._alert()])

        response = await api_client.get(f"/api/budgets/alerts?user_id={uuid4()}&unread_only=true")

        assert response.status_code == 200
        assert response.json()[0]["title"] == "Budget on track"
        assert budget_service.get_alerts.await_args.args[1] is True

    async def test_mark_all_read(self, api_client, budget_service):
        """Test marking all alerts read returns the count."""
        budget_service.mark_all_alerts_read = AsyncMock(return_value=2)

        response = await api_client.post(f"/api/budgets/alerts/read-all?user_id={uuid4()}")

        assert response.status_code == 200
        assert response.json() == {"updated": 2}

    async def test_mark_read(self, api_client, budget_service):
        """Test marking one alert read."""
        alert = self._alert()
        alert.is_read = True
        budget_service.mark_alert_read = AsyncMock(return_value=alert)

        response = await api_client.patch(f"/api/budgets/alerts/{alert.id}/read?user_id={uuid4()}")

        assert response.status_code == 200
        assert response.json()["is_read"] is True

    async def test_delete_missing_alert(self, api_client, budget_service):
        """Test deleting an unknown alert returns 404."""
        budget_service.delete_alert = AsyncMock(return_value=False)

        response = await api_client.delete(f"/api/budgets/alerts/{uuid4()}?user_id={uuid4()}")

        assert response.status_code == 404


class TestBudgetReportRoutes:
    """Test budget report endpoints."""

    async def test_trend(self, api_client, report_service):
        """Test the monthly trend report."""
        report_service.get_trend = AsyncMock(
            return_value=[
                TrendPoint("Dec 2025", Decimal("1600"), Decimal("1500"), Decimal("100"), 93.8),
                TrendPoint("Jan 2026", Decimal("1600"), Decimal("400"), Decimal("1200"), 25.0),
            ]
        )
        budget_id = uuid4()

        response = await api_client.get(
            f"/api/budgets/{budget_id}/reports/trend?user_id={uuid4()}&months=2"
        )

        assert response.status_code == 200
        assert [p["month"] for p in response.json()] == ["Dec 2025", "Jan 2026"]
        assert report_service.get_trend.await_args.args[2] == 2

    async def test_trend_not_found(self, api_client, report_service):
        """Test 404 for an unknown budget."""
        report_service.get_trend = AsyncMock(return_value=None)

        response = await api_client.get(f"/api/budgets/{uuid4()}/reports/trend?user_id={uuid4()}")

        assert response.status_code == 404

    async def test_trend_months_out_of_range(self, api_client, report_service):
        response = await api_client.get(
            f"/api/budgets/{uuid4()}/reports/trend?user_id={uuid4()}&months=0"
        )

        assert response.status_code == 422

    async def test_category_trend_filter(self, api_client, report_service):
        """Test category IDs are passed through as a list."""
        report_service.get_category_trend = AsyncMock(return_value=[])
        first, second = uuid4(), uuid4()

        response = await api_client.get(
            f"/api/budgets/{uuid4()}/reports/category-trend"
            f"?user_id={uuid4()}&category_ids={first}&category_ids={second}"
        )

        assert response.status_code == 200
        assert [str(c) for c in report_service.get_category_trend.await_args.args[3]] == [
            str(first),
            str(second),
        ]

    async def test_health_score(self, api_client, report_service):
        """Test the health score report."""
        report_service.get_health_score = AsyncMock(
            return_value=HealthScore(
                score=85,
                label="Good",
                breakdown=HealthScoreBreakdown(100, 15.0, 0.0, 0.0, 0.0),
                category_scores=[],
            )
        )

        response = await api_client.get(
            f"/api/budgets/{uuid4()}/reports/health-score?user_id={uuid4()}"
        )

        assert response.status_code == 200
        data = response.json()
        assert data["score"] == 85
        assert data["label"] == "Good"
        assert data["breakdown"]["over_budget_deductions"] == 15.0

    async def test_flex_groups(self, api_client, report_service):
        """Test flex group totals."""
        report_service.get_flex_group_status = AsyncMock(
            return_value=[
                FlexGroupStatus(
                    group_name="Fun",
                    total_budgeted=Decimal("200"),
                    total_spent=Decimal("150"),
                    remaining=Decimal("50"),
                    percent_used=75.0,
                    categories=[
                        FlexGroupCategory(uuid4(), "Dining", Decimal("200"), Decimal("150"), 75.0)
                    ],
                )
            ]
        )

        response = await api_client.get(
            f"/api/budgets/{uuid4()}/reports/flex-groups?user_id={uuid4()}"
        )

        assert response.status_code == 200
        assert response.json()[0]["categories"][0]["category_name"] == "Dining"

    async def test_daily_spending(self, api_client, report_service):
        report_service.get_daily_spending = AsyncMock(
            return_value=[DailySpending(date(2026, 1, 3), Decimal("42.50"))]
        )

        response = await api_client.get(
            f"/api/budgets/{uuid4()}/reports/daily-spending?user_id={uuid4()}"
        )

        assert response.status_code == 200
        assert response.json()[0]["date"] == "2026-01-03"
        assert Decimal(response.json()[0]["amount"]) == Decimal("42.50")

    async def test_seasonal_failure(self, api_client, report_service):
        """Test unexpected errors map to 500."""
        report_service.get_seasonal_patterns = AsyncMock(side_effect=RuntimeError("db down"))

        response = await api_client.get(
            f"/api/budgets/{uuid4()}/reports/seasonal?user_id={uuid4()}"
        )

        assert response.status_code == 500
        assert "db down" in response.json()["detail"]


class TestGeneratorRoutes:
    """Test budget generator endpoints."""

    async def test_generate(self, api_client, generator_service):
        """Test generating a budget suggestion."""
        rent = CategoryAnalysis(
            category_id=uuid4(),
            category_name="Rent",
            is_income=False,
            average=Decimal("1200.00"),
            median=Decimal("1200.00"),
            p25=Decimal("1200.00"),
            p75=Decimal("1200.00"),
            min=Decimal("1200.00"),
            max=Decimal("1200.00"),
            std_dev=Decimal("0.00"),
            monthly_amounts=[Decimal("1200.00")] * 3,
            monthly_occurrences=3,
            is_fixed=True,
            seasonal_months=[],
            suggested=Decimal("1200.00"),
        )
        generator_service.generate = AsyncMock(
            return_value=GeneratedBudget(
                profile=BudgetProfile.AGGRESSIVE,
                categories=[rent],
                estimated_monthly_income=Decimal("3000.00"),
                total_budgeted=Decimal("1200.00"),
                projected_monthly_savings=Decimal("1800.00"),
                analysis_start=date(2025, 10, 1),
                analysis_end=date(2025, 12, 31),
                analysis_months=3,
            )
        )

        response = await api_client.post(
            f"/api/budgets/generate?user_id={uuid4()}",
            json={"analysis_months": 3, "profile": "AGGRESSIVE"},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["profile"] == "AGGRESSIVE"
        assert data["categories"][0]["is_fixed"] is True
        assert Decimal(data["projected_monthly_savings"]) == Decimal("1800.00")
        args = generator_service.generate.await_args.args
        assert args[1:] == (3, BudgetProfile.AGGRESSIVE)

    async def test_generate_rejects_invalid_months(self, api_client, generator_service):
        """Test analysis_months outside 1..24 is rejected."""
        generator_service.generate = AsyncMock()

        response = await api_client.post(
            f"/api/budgets/generate?user_id={uuid4()}", json={"analysis_months": 0}
        )

        assert response.status_code == 422
        generator_service.generate.assert_not_awaited()

    async def test_apply(self, api_client, generator_service):
        """Test saving a reviewed suggestion returns 201."""
        budget = stored_budget()
        generator_service.apply = AsyncMock(return_value=budget)

        response = await api_client.post(
            f"/api/budgets/generate/apply?user_id={uuid4()}",
            json={
                "name": "Generated",
                "period_start": "2026-01-01",
                "categories": [{"category_id": str(uuid4()), "amount": "1200"}],
            },
        )

        assert response.status_code == 201
        assert response.json()["id"] == str(budget.id)
        assert generator_service.apply.await_args.args[1].name == "Generated"

    async def test_apply_invalid_line(self, api_client, generator_service):
        generator_service.apply = AsyncMock(side_effect=ValueError("Category not found"))

        response = await api_client.post(
            f"/api/budgets/generate/apply?user_id={uuid4()}",
            json={"name": "Generated", "period_start": "2026-01-01"},
        )

        assert response.status_code == 400


class TestHealthRoutes:
    """Test service health endpoints."""

    async def test_liveness(self, api_client):
        """Test the liveness endpoint."""
        response = await api_client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}
        assert "X-Request-ID" in response.headers

    async def test_root_lists_jobs(self, api_client):
        """Test the root endpoint reports the scheduled jobs."""
        response = await api_client.get("/")

        assert response.status_code == 200
        assert response.json()["jobs"] == {
            "close-periods": "0 0 1 * *",
            "budget-alerts": "0 7 * * *",
            "weekly-digest": "0 7 * * 1",
        }
