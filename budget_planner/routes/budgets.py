"""Budget API endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from budget_planner.database import get_db
from budget_planner.schemas.budget import (
    BudgetCategoryCreate,
    BudgetCategoryResponse,
    BudgetCategoryUpdate,
    BudgetCreate,
    BudgetResponse,
    BudgetSummaryResponse,
    BudgetUpdate,
    BudgetVelocityResponse,
    BulkCategoryAmountUpdate,
    CategoryBudgetStatusResponse,
    DashboardSummaryResponse,
)
from budget_planner.schemas.budget_alert import BudgetAlertResponse, MarkAllReadResponse
from budget_planner.schemas.budget_period import BudgetPeriodDetailResponse, BudgetPeriodResponse
from budget_planner.schemas.budget_report import (
    CategoryTrendResponse,
    DailySpendingResponse,
    FlexGroupStatusResponse,
    GenerateBudgetRequest,
    GeneratedBudgetResponse,
    HealthScoreResponse,
    SeasonalPatternResponse,
    TrendPointResponse,
)
from budget_planner.services.budget_generator_service import BudgetGeneratorService
from budget_planner.services.budget_period_service import BudgetPeriodService
from budget_planner.services.budget_report_service import BudgetReportService
from budget_planner.services.budget_service import BudgetService

router = APIRouter()


# Dependencies
async def get_budget_service(db: AsyncSession = Depends(get_db)) -> BudgetService:
    """Get budget service instance."""
    return BudgetService(db)


async def get_budget_period_service(db: AsyncSession = Depends(get_db)) -> BudgetPeriodService:
    """Get budget period service instance."""
    return BudgetPeriodService(db)


async def get_budget_report_service(db: AsyncSession = Depends(get_db)) -> BudgetReportService:
    """Get budget report service instance."""
    return BudgetReportService(db)


async def get_budget_generator_service(
    db: AsyncSession = Depends(get_db),
) -> BudgetGeneratorService:
    """Get budget generator service instance."""
    return BudgetGeneratorService(db)


# Budgets
@router.post("", response_model=BudgetResponse, status_code=201)
async def create_budget(
    budget: BudgetCreate,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetResponse:
    """Create a new budget.

    Args:
        budget: Budget data with its category lines
        user_id: User ID
        service: Budget service

    Returns:
        Created budget

    Raises:
        HTTPException: If creation fails
    """
    try:
        created = await service.create_budget(user_id, budget)
        return BudgetResponse.model_validate(created)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to create budget: {str(e)}")


@router.get("", response_model=list[BudgetResponse])
async def list_budgets(
    user_id: UUID = Query(..., description="User ID"),
    active_only: bool = Query(False, description="Only return active budgets"),
    service: BudgetService = Depends(get_budget_service),
) -> list[BudgetResponse]:
    """List all budgets for a user, newest first."""
    try:
        budgets = await service.list_budgets(user_id, active_only)
        return [BudgetResponse.model_validate(b) for b in budgets]
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list budgets: {str(e)}")


@router.get("/dashboard", response_model=DashboardSummaryResponse)
async def get_dashboard_summary(
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> DashboardSummaryResponse:
    """Get the dashboard summary of the newest active budget.

    Raises:
        HTTPException: If the user has no active budget
    """
    try:
        summary = await service.get_dashboard_summary(user_id)
        if not summary:
            raise HTTPException(status_code=404, detail="No active budget")
        return DashboardSummaryResponse.model_validate(summary)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get dashboard summary: {str(e)}")


@router.get("/category-status", response_model=dict[UUID, CategoryBudgetStatusResponse])
async def get_category_budget_status(
    user_id: UUID = Query(..., description="User ID"),
    category_ids: List[UUID] = Query(..., description="Category IDs"),
    service: BudgetService = Depends(get_budget_service),
) -> dict[UUID, CategoryBudgetStatusResponse]:
    """Get budgeted vs. spent for the given categories."""
    try:
        statuses = await service.get_category_budget_status(user_id, category_ids)
        return {
            category_id: CategoryBudgetStatusResponse.model_validate(status)
            for category_id, status in statuses.items()
        }
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get category status: {str(e)}")


# Generator
@router.post("/generate", response_model=GeneratedBudgetResponse)
async def generate_budget(
    request: GenerateBudgetRequest,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetGeneratorService = Depends(get_budget_generator_service),
) -> GeneratedBudgetResponse:
    """Suggest category amounts from the user's recent spending.

    Args:
        request: Months to analyse and budget profile
        user_id: User ID
        service: Budget generator service

    Returns:
        Per-category statistics with suggested amounts and totals
    """
    try:
        generated = await service.generate(user_id, request.analysis_months, request.profile)
        return GeneratedBudgetResponse.model_validate(generated)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to generate budget: {str(e)}")


@router.post("/generate/apply", response_model=BudgetResponse, status_code=201)
async def apply_generated_budget(
    budget: BudgetCreate,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetGeneratorService = Depends(get_budget_generator_service),
) -> BudgetResponse:
    """Save a generated budget after the user reviewed it."""
    try:
        created = await service.apply(user_id, budget)
        return BudgetResponse.model_validate(created)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to apply generated budget: {str(e)}")


# Alerts
@router.get("/alerts", response_model=list[BudgetAlertResponse])
async def list_alerts(
    user_id: UUID = Query(..., description="User ID"),
    unread_only: bool = Query(False, description="Only return unread alerts"),
    service: BudgetService = Depends(get_budget_service),
) -> list[BudgetAlertResponse]:
    """List a user's budget alerts, newest first."""
    try:
        alerts = await service.get_alerts(user_id, unread_only)
        return [BudgetAlertResponse.model_validate(a) for a in alerts]
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list alerts: {str(e)}")


@router.post("/alerts/read-all", response_model=MarkAllReadResponse)
async def mark_all_alerts_read(
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> MarkAllReadResponse:
    """Mark all of a user's alerts as read."""
    try:
        updated = await service.mark_all_alerts_read(user_id)
        return MarkAllReadResponse(updated=updated)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to mark alerts read: {str(e)}")


@router.patch("/alerts/{alert_id}/read", response_model=BudgetAlertResponse)
async def mark_alert_read(
    alert_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetAlertResponse:
    """Mark one alert as read.

    Raises:
        HTTPException: If alert not found
    """
    try:
        alert = await service.mark_alert_read(alert_id, user_id)
        if not alert:
            raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
        return BudgetAlertResponse.model_validate(alert)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to mark alert read: {str(e)}")


@router.delete("/alerts/{alert_id}", status_code=204)
async def delete_alert(
    alert_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> Response:
    """Delete an alert."""
    try:
        deleted = await service.delete_alert(alert_id, user_id)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Alert {alert_id} not found")
        return Response(status_code=204)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete alert: {str(e)}")


@router.get("/{budget_id}", response_model=BudgetResponse)
async def get_budget(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetResponse:
    """Get a single budget by ID.

    Args:
        budget_id: Budget ID
        user_id: User ID
        service: Budget service

    Returns:
        Budget details

    Raises:
        HTTPException: If budget not found
    """
    try:
        budget = await service.get_budget(budget_id, user_id)
        if not budget:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetResponse.model_validate(budget)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get budget: {str(e)}")


@router.patch("/{budget_id}", response_model=BudgetResponse)
async def update_budget(
    budget_id: UUID,
    budget_update: BudgetUpdate,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetResponse:
    """Update a budget.

    Args:
        budget_id: Budget ID
        budget_update: Fields to change
        user_id: User ID
        service: Budget service

    Returns:
        Updated budget

    Raises:
        HTTPException: If budget not found or update is invalid
    """
    try:
        budget = await service.update_budget(budget_id, user_id, budget_update)
        if not budget:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetResponse.model_validate(budget)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update budget: {str(e)}")


@router.delete("/{budget_id}", status_code=204)
async def delete_budget(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> Response:
    """Delete a budget with its periods and alerts."""
    try:
        deleted = await service.delete_budget(budget_id, user_id)
        if not deleted:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return Response(status_code=204)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to delete budget: {str(e)}")


# Category lines
@router.post(
    "/{budget_id}/categories", response_model=BudgetCategoryResponse, status_code=201
)
async def add_budget_category(
    budget_id: UUID,
    category: BudgetCategoryCreate,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetCategoryResponse:
    """Add a category line to a budget.

    Raises:
        HTTPException: If budget not found or the category is invalid or duplicated
    """
    try:
        created = await service.add_category(budget_id, user_id, category)
        if not created:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetCategoryResponse.model_validate(created)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to add budget category: {str(e)}")


@router.put("/{budget_id}/categories", response_model=list[BudgetCategoryResponse])
async def bulk_update_budget_categories(
    budget_id: UUID,
    bulk: BulkCategoryAmountUpdate,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> list[BudgetCategoryResponse]:
    """Update the amounts of several category lines."""
    try:
        updated = await service.bulk_update_category_amounts(budget_id, user_id, bulk.categories)
        if updated is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [BudgetCategoryResponse.model_validate(bc) for bc in updated]
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update budget categories: {str(e)}")


@router.patch(
    "/{budget_id}/categories/{budget_category_id}", response_model=BudgetCategoryResponse
)
async def update_budget_category(
    budget_id: UUID,
    budget_category_id: UUID,
    category_update: BudgetCategoryUpdate,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetCategoryResponse:
    """Update a category line."""
    try:
        updated = await service.update_category(
            budget_id, user_id, budget_category_id, category_update
        )
        if not updated:
            raise HTTPException(
                status_code=404, detail=f"Budget category {budget_category_id} not found"
            )
        return BudgetCategoryResponse.model_validate(updated)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to update budget category: {str(e)}")


@router.delete("/{budget_id}/categories/{budget_category_id}", status_code=204)
async def remove_budget_category(
    budget_id: UUID,
    budget_category_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> Response:
    """Remove a category line from a budget."""
    try:
        removed = await service.remove_category(budget_id, user_id, budget_category_id)
        if not removed:
            raise HTTPException(
                status_code=404, detail=f"Budget category {budget_category_id} not found"
            )
        return Response(status_code=204)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to remove budget category: {str(e)}")


# Reporting
@router.get("/{budget_id}/summary", response_model=BudgetSummaryResponse)
async def get_budget_summary(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetSummaryResponse:
    """Get budgeted vs. spent for the current month.

    Args:
        budget_id: Budget ID
        user_id: User ID
        service: Budget service

    Returns:
        Totals and per-category breakdown

    Raises:
        HTTPException: If budget not found
    """
    try:
        summary = await service.get_summary(budget_id, user_id)
        if not summary:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetSummaryResponse.model_validate(summary)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get budget summary: {str(e)}")


@router.get("/{budget_id}/velocity", response_model=BudgetVelocityResponse)
async def get_budget_velocity(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetService = Depends(get_budget_service),
) -> BudgetVelocityResponse:
    """Get the spending pace for the current month."""
    try:
        velocity = await service.get_velocity(budget_id, user_id)
        if not velocity:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetVelocityResponse.model_validate(velocity)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get budget velocity: {str(e)}")


@router.get("/{budget_id}/reports/trend", response_model=list[TrendPointResponse])
async def get_budget_trend(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    months: int = Query(6, ge=1, le=24, description="Number of months"),
    service: BudgetReportService = Depends(get_budget_report_service),
) -> list[TrendPointResponse]:
    """Get budgeted vs. actual expenses per month.

    Raises:
        HTTPException: If budget not found
    """
    try:
        trend = await service.get_trend(user_id, budget_id, months)
        if trend is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [TrendPointResponse.model_validate(p) for p in trend]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get budget trend: {str(e)}")


@router.get("/{budget_id}/reports/category-trend", response_model=list[CategoryTrendResponse])
async def get_budget_category_trend(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    months: int = Query(6, ge=1, le=24, description="Number of months"),
    category_ids: Optional[List[UUID]] = Query(None, description="Only these categories"),
    service: BudgetReportService = Depends(get_budget_report_service),
) -> list[CategoryTrendResponse]:
    """Get budgeted vs. actual per expense category and month."""
    try:
        series = await service.get_category_trend(user_id, budget_id, months, category_ids)
        if series is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [CategoryTrendResponse.model_validate(s) for s in series]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get category trend: {str(e)}")


@router.get("/{budget_id}/reports/health-score", response_model=HealthScoreResponse)
async def get_budget_health_score(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetReportService = Depends(get_budget_report_service),
) -> HealthScoreResponse:
    """Get the 0-100 health score of the current month."""
    try:
        health = await service.get_health_score(user_id, budget_id)
        if not health:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return HealthScoreResponse.model_validate(health)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get health score: {str(e)}")


@router.get("/{budget_id}/reports/seasonal", response_model=list[SeasonalPatternResponse])
async def get_budget_seasonal_patterns(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetReportService = Depends(get_budget_report_service),
) -> list[SeasonalPatternResponse]:
    """Get spend by calendar month and high months per category."""
    try:
        patterns = await service.get_seasonal_patterns(user_id, budget_id)
        if patterns is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [SeasonalPatternResponse.model_validate(p) for p in patterns]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get seasonal patterns: {str(e)}")


@router.get("/{budget_id}/reports/flex-groups", response_model=list[FlexGroupStatusResponse])
async def get_budget_flex_groups(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetReportService = Depends(get_budget_report_service),
) -> list[FlexGroupStatusResponse]:
    """Get current-month totals per flex group."""
    try:
        statuses = await service.get_flex_group_status(user_id, budget_id)
        if statuses is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [FlexGroupStatusResponse.model_validate(s) for s in statuses]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get flex groups: {str(e)}")


@router.get("/{budget_id}/reports/daily-spending", response_model=list[DailySpendingResponse])
async def get_budget_daily_spending(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetReportService = Depends(get_budget_report_service),
) -> list[DailySpendingResponse]:
    """Get expense spending per day of the open period."""
    try:
        daily = await service.get_daily_spending(user_id, budget_id)
        if daily is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [DailySpendingResponse.model_validate(d) for d in daily]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get daily spending: {str(e)}")


# Periods
@router.get("/{budget_id}/periods", response_model=list[BudgetPeriodResponse])
async def list_budget_periods(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetPeriodService = Depends(get_budget_period_service),
) -> list[BudgetPeriodResponse]:
    """List a budget's periods, newest first."""
    try:
        periods = await service.list_periods(user_id, budget_id)
        if periods is None:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return [BudgetPeriodResponse.model_validate(p) for p in periods]
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to list budget periods: {str(e)}")


@router.get("/{budget_id}/periods/current", response_model=BudgetPeriodDetailResponse)
async def get_current_budget_period(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetPeriodService = Depends(get_budget_period_service),
) -> BudgetPeriodDetailResponse:
    """Get the current month's period, creating it if needed."""
    try:
        period = await service.get_or_create_current_period(user_id, budget_id)
        if not period:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetPeriodDetailResponse.model_validate(period)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get current period: {str(e)}")


@router.post("/{budget_id}/periods/close", response_model=BudgetPeriodDetailResponse)
async def close_budget_period(
    budget_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetPeriodService = Depends(get_budget_period_service),
) -> BudgetPeriodDetailResponse:
    """Close the open period and open the next one with rollovers.

    Args:
        budget_id: Budget ID
        user_id: User ID
        service: Budget period service

    Returns:
        The closed period with actuals and rollovers

    Raises:
        HTTPException: If budget not found or it has no open period
    """
    try:
        period = await service.close_period(user_id, budget_id)
        if not period:
            raise HTTPException(status_code=404, detail=f"Budget {budget_id} not found")
        return BudgetPeriodDetailResponse.model_validate(period)
    except HTTPException:
        raise
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to close budget period: {str(e)}")


@router.get("/{budget_id}/periods/{period_id}", response_model=BudgetPeriodDetailResponse)
async def get_budget_period(
    budget_id: UUID,
    period_id: UUID,
    user_id: UUID = Query(..., description="User ID"),
    service: BudgetPeriodService = Depends(get_budget_period_service),
) -> BudgetPeriodDetailResponse:
    """Get one period with its category lines."""
    try:
        period = await service.get_period(user_id, budget_id, period_id)
        if not period:
            raise HTTPException(status_code=404, detail=f"Period {period_id} not found")
        return BudgetPeriodDetailResponse.model_validate(period)
    except HTTPException:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get budget period: {str(e)}")
