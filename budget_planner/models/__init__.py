"""Database models package."""

from budget_planner.models.base import Base
from budget_planner.models.user import User, UserPreference
from budget_planner.models.category import Account, Category
from budget_planner.models.transaction import Transaction, TransactionSplit, TransactionStatus
from budget_planner.models.budget import (
    Budget,
    BudgetCategory,
    BudgetStrategy,
    BudgetType,
    CategoryGroup,
    RolloverType,
)
from budget_planner.models.budget_period import BudgetPeriod, BudgetPeriodCategory, PeriodStatus
from budget_planner.models.budget_alert import AlertSeverity, AlertType, BudgetAlert

__all__ = [
    "Base",
    "User",
    "UserPreference",
    "Account",
    "Category",
    "Transaction",
    "TransactionSplit",
    "TransactionStatus",
    "Budget",
    "BudgetCategory",
    "BudgetStrategy",
    "BudgetType",
    "CategoryGroup",
    "RolloverType",
    "BudgetPeriod",
    "BudgetPeriodCategory",
    "PeriodStatus",
    "AlertSeverity",
    "AlertType",
    "BudgetAlert",
]
