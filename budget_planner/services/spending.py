"""Actual spending aggregation for budget lines."""

from datetime import date as date_type
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import select, and_, func, extract
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased

from budget_planner.models.budget import Budget, BudgetCategory
from budget_planner.models.transaction import Transaction, TransactionSplit, TransactionStatus
from budget_planner.logging_config import get_logger

logger = get_logger(__name__)

ZERO = Decimal("0")

MonthKey = Tuple[int, int]


def _to_decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else ZERO


def is_transfer_line(budget_category: BudgetCategory) -> bool:
    """True when a budget line tracks transfers into an account."""
    return bool(budget_category.is_transfer and budget_category.transfer_account_id)


def expense_targets(budget: Budget) -> Tuple[List[UUID], List[UUID]]:
    """Category IDs and transfer account IDs of a budget's expense lines."""
    lines = [bc for bc in (budget.categories or []) if not bc.is_income]
    category_ids = [
        bc.category_id for bc in lines if bc.category_id is not None and not bc.is_transfer
    ]
    account_ids = [bc.transfer_account_id for bc in lines if is_transfer_line(bc)]
    return category_ids, account_ids


class SpendingCalculator:
    """Sums transaction and split amounts per category over a date range.

    Amounts are absolute values so expense and income lines both read as
    positive totals. VOID transactions are ignored. Split parents are skipped
    in favour of their split rows.
    """

    def __init__(self, db: AsyncSession):
        """Initialize spending calculator.

        Args:
            db: Database session
        """
        self.db = db

    async def spending_by_category(
        self,
        user_id: UUID,
        category_ids: List[UUID],
        start_date: date_type,
        end_date: date_type,
    ) -> Dict[UUID, Decimal]:
        """Direct plus split spending grouped by category.

        Args:
            user_id: User ID
            category_ids: Categories to include
            start_date: First day (inclusive)
            end_date: Last day (inclusive)

        Returns:
            Dictionary mapping category ID to total spent
        """
        if not category_ids:
            return {}

        direct_stmt = (
            select(
                Transaction.category_id,
                func.coalesce(func.sum(func.abs(Transaction.amount)), 0).label("total"),
            )
            .where(
                and_(
                    Transaction.user_id == user_id,
                    Transaction.category_id.in_(category_ids),
                    Transaction.transaction_date >= start_date,
                    Transaction.transaction_date <= end_date,
                    Transaction.status != TransactionStatus.VOID.value,
                    Transaction.is_split.is_(False),
                )
            )
            .group_by(Transaction.category_id)
        )

        split_stmt = (
            select(
                TransactionSplit.category_id,
                func.coalesce(func.sum(func.abs(TransactionSplit.amount)), 0).label("total"),
            )
            .join(Transaction, TransactionSplit.transaction_id == Transaction.id)
            .where(
                and_(
                    Transaction.user_id == user_id,
                    TransactionSplit.category_id.in_(category_ids),
                    Transaction.transaction_date >= start_date,
                    Transaction.transaction_date <= end_date,
                    Transaction.status != TransactionStatus.VOID.value,
                )
            )
            .group_by(TransactionSplit.category_id)
        )

        spending: Dict[UUID, Decimal] = {}

        result = await self.db.execute(direct_stmt)
        for row in result.all():
            spending[row.category_id] = _to_decimal(row.total)

        result = await self.db.execute(split_stmt)
        for row in result.all():
            spending[row.category_id] = spending.get(row.category_id, ZERO) + _to_decimal(
                row.total
            )

        return spending

    async def transfers_by_account(
        self,
        user_id: UUID,
        account_ids: List[UUID],
        start_date: date_type,
        end_date: date_type,
    ) -> Dict[UUID, Decimal]:
        """Outgoing transfer totals grouped by destination account.

        The destination is the account of the linked (incoming) leg.
        """
        if not account_ids:
            return {}

        linked = aliased(Transaction)
        stmt = (
            select(
                linked.account_id.label("destination_account_id"),
                func.coalesce(func.sum(func.abs(Transaction.amount)), 0).label("total"),
            )
            .join(linked, Transaction.linked_transaction_id == linked.id)
            .where(
                and_(
                    Transaction.user_id == user_id,
                    Transaction.is_transfer.is_(True),
                    Transaction.amount < 0,
                    linked.account_id.in_(account_ids),
                    Transaction.transaction_date >= start_date,
                    Transaction.transaction_date <= end_date,
                    Transaction.status != TransactionStatus.VOID.value,
                )
            )
            .group_by(linked.account_id)
        )

        result = await self.db.execute(stmt)
        return {row.destination_account_id: _to_decimal(row.total) for row in result.all()}

    async def compute_budget_category_actuals(
        self,
        user_id: UUID,
        budget: Budget,
        start_date: date_type,
        end_date: date_type,
    ) -> Dict[UUID, Decimal]:
        """Actual amount per budget line for a date range.

        Args:
            user_id: Budget owner
            budget: Budget with categories loaded
            start_date: First day (inclusive)
            end_date: Last day (inclusive)

        Returns:
            Dictionary mapping budget category ID to actual amount
        """
        budget_categories = list(budget.categories or [])
        if not budget_categories:
            return {}

        category_ids = [
            bc.category_id
            for bc in budget_categories
            if bc.category_id is not None and not bc.is_transfer
        ]
        account_ids = [bc.transfer_account_id for bc in budget_categories if is_transfer_line(bc)]

        spending = await self.spending_by_category(user_id, category_ids, start_date, end_date)
        transfers = await self.transfers_by_account(user_id, account_ids, start_date, end_date)

        actuals: Dict[UUID, Decimal] = {}
        for bc in budget_categories:
            if is_transfer_line(bc):
                actuals[bc.id] = transfers.get(bc.transfer_account_id, ZERO)
            elif bc.category_id is not None:
                actuals[bc.id] = spending.get(bc.category_id, ZERO)

        logger.debug(
            "Budget actuals computed",
            budget_id=str(budget.id),
            start_date=str(start_date),
            end_date=str(end_date),
            lines=len(actuals),
        )

        return actuals

    async def compute_actual_income(
        self,
        user_id: UUID,
        budget: Budget,
        start_date: date_type,
        end_date: date_type,
    ) -> Decimal:
        """Total received across the budget's income lines."""
        income_ids = [
            bc.category_id
            for bc in (budget.categories or [])
            if bc.is_income and bc.category_id is not None
        ]
        spending = await self.spending_by_category(user_id, income_ids, start_date, end_date)
        return sum(spending.values(), ZERO)

    async def compute_monthly_spending(
        self,
        user_id: UUID,
        category_ids: Iterable[UUID],
        start_date: date_type,
        end_date: date_type,
    ) -> Dict[UUID, Dict[int, Decimal]]:
        """Spending per category per calendar month number (1-12).

        Months from different years fold onto the same month number.
        """
        category_ids = list(category_ids)
        if not category_ids:
            return {}

        month = extract("month", Transaction.transaction_date)

        direct_stmt = (
            select(
                Transaction.category_id,
                month.label("month"),
                func.coalesce(func.sum(func.abs(Transaction.amount)), 0).label("total"),
            )
            .where(
                and_(
                    Transaction.user_id == user_id,
                    Transaction.category_id.in_(category_ids),
                    Transaction.transaction_date >= start_date,
                    Transaction.transaction_date <= end_date,
                    Transaction.status != TransactionStatus.VOID.value,
                    Transaction.is_split.is_(False),
                )
            )
            .group_by(Transaction.category_id, month)
        )

        split_stmt = (
            select(
                TransactionSplit.category_id,
                month.label("month"),
                func.coalesce(func.sum(func.abs(TransactionSplit.amount)), 0).label("total"),
            )
            .join(Transaction, TransactionSplit.transaction_id == Transaction.id)
            .where(
                and_(
                    Transaction.user_id == user_id,
                    TransactionSplit.category_id.in_(category_ids),
                    Transaction.transaction_date >= start_date,
                    Transaction.transaction_date <= end_date,
                    Transaction.status != TransactionStatus.VOID.value,
                )
            )
            .group_by(TransactionSplit.category_id, month)
        )

        monthly: Dict[UUID, Dict[int, Decimal]] = {}
        for stmt in (direct_stmt, split_stmt):
            result = await self.db.execute(stmt)
            for row in result.all():
                by_month = monthly.setdefault(row.category_id, {})
                month_number = int(row.month)
                by_month[month_number] = by_month.get(month_number, ZERO) + _to_decimal(row.total)

        return monthly

    def _grouped_statements(
        self,
        user_id: UUID,
        start_date: date_type,
        end_date: date_type,
        keys: Dict[str, Any],
        category_ids: Optional[List[UUID]] = None,
        sign: int = 0,
    ) -> list:
        """Direct and split total statements grouped by category and ``keys``.

        ``keys`` maps a label to an expression over ``Transaction``. Without
        ``category_ids`` every categorized row counts. A positive ``sign``
        keeps inflows only, a negative one outflows only.
        """
        statements = []
        for amount, category_id, is_split_row in (
            (Transaction.amount, Transaction.category_id, False),
            (TransactionSplit.amount, TransactionSplit.category_id, True),
        ):
            filters = [
                Transaction.user_id == user_id,
                Transaction.transaction_date >= start_date,
                Transaction.transaction_date <= end_date,
                Transaction.status != TransactionStatus.VOID.value,
            ]
            if not is_split_row:
                filters.append(Transaction.is_split.is_(False))
            if category_ids is None:
                filters.append(category_id.isnot(None))
            else:
                filters.append(category_id.in_(category_ids))
            if sign > 0:
                filters.append(amount > 0)
            elif sign < 0:
                filters.append(amount < 0)

            stmt = select(
                category_id.label("category_id"),
                *(expr.label(name) for name, expr in keys.items()),
                func.coalesce(func.sum(func.abs(amount)), 0).label("total"),
            )
            if is_split_row:
                stmt = stmt.join(Transaction, TransactionSplit.transaction_id == Transaction.id)
            statements.append(stmt.where(and_(*filters)).group_by(category_id, *keys.values()))

        return statements

    def _grouped_transfer_statement(
        self,
        user_id: UUID,
        account_ids: List[UUID],
        start_date: date_type,
        end_date: date_type,
        keys: Dict[str, Any],
    ):
        linked = aliased(Transaction)
        return (
            select(
                *(expr.label(name) for name, expr in keys.items()),
                func.coalesce(func.sum(func.abs(Transaction.amount)), 0).label("total"),
            )
            .join(linked, Transaction.linked_transaction_id == linked.id)
            .where(
                and_(
                    Transaction.user_id == user_id,
                    Transaction.is_transfer.is_(True),
                    Transaction.amount < 0,
                    linked.account_id.in_(account_ids),
                    Transaction.transaction_date >= start_date,
                    Transaction.transaction_date <= end_date,
                    Transaction.status != TransactionStatus.VOID.value,
                )
            )
            .group_by(*keys.values())
        )

    async def monthly_spending_by_category(
        self,
        user_id: UUID,
        start_date: date_type,
        end_date: date_type,
        category_ids: Optional[Iterable[UUID]] = None,
        sign: int = 0,
    ) -> Dict[UUID, Dict[MonthKey, Decimal]]:
        """Totals per category per ``(year, month)``.

        Args:
            user_id: User ID
            start_date: First day (inclusive)
            end_date: Last day (inclusive)
            category_ids: Categories to include (defaults to every category)
            sign: 1 for inflows only, -1 for outflows only, 0 for both

        Returns:
            Dictionary mapping category ID to monthly totals
        """
        if category_ids is not None:
            category_ids = list(category_ids)
            if not category_ids:
                return {}

        keys = {
            "year": extract("year", Transaction.transaction_date),
            "month": extract("month", Transaction.transaction_date),
        }

        monthly: Dict[UUID, Dict[MonthKey, Decimal]] = {}
        for stmt in self._grouped_statements(
            user_id, start_date, end_date, keys, category_ids, sign
        ):
            result = await self.db.execute(stmt)
            for row in result.all():
                by_month = monthly.setdefault(row.category_id, {})
                key = (int(row.year), int(row.month))
                by_month[key] = by_month.get(key, ZERO) + _to_decimal(row.total)

        return monthly

    async def compute_budget_spending_by_month(
        self,
        user_id: UUID,
        budget: Budget,
        start_date: date_type,
        end_date: date_type,
    ) -> Dict[MonthKey, Decimal]:
        """Spending on a budget's expense and transfer lines per ``(year, month)``."""
        category_ids, account_ids = expense_targets(budget)
        totals: Dict[MonthKey, Decimal] = {}

        if category_ids:
            by_category = await self.monthly_spending_by_category(
                user_id, start_date, end_date, category_ids
            )
            for by_month in by_category.values():
                for key, amount in by_month.items():
                    totals[key] = totals.get(key, ZERO) + amount

        if account_ids:
            keys = {
                "year": extract("year", Transaction.transaction_date),
                "month": extract("month", Transaction.transaction_date),
            }
            result = await self.db.execute(
                self._grouped_transfer_statement(user_id, account_ids, start_date, end_date, keys)
            )
            for row in result.all():
                key = (int(row.year), int(row.month))
                totals[key] = totals.get(key, ZERO) + _to_decimal(row.total)

        return totals

    async def compute_budget_spending_by_day(
        self,
        user_id: UUID,
        budget: Budget,
        start_date: date_type,
        end_date: date_type,
    ) -> Dict[date_type, Decimal]:
        """Spending on a budget's expense and transfer lines per day."""
        category_ids, account_ids = expense_targets(budget)
        keys = {"day": Transaction.transaction_date}

        statements = []
        if category_ids:
            statements.extend(
                self._grouped_statements(user_id, start_date, end_date, keys, category_ids)
            )
        if account_ids:
            statements.append(
                self._grouped_transfer_statement(user_id, account_ids, start_date, end_date, keys)
            )

        daily: Dict[date_type, Decimal] = {}
        for stmt in statements:
            result = await self.db.execute(stmt)
            for row in result.all():
                daily[row.day] = daily.get(row.day, ZERO) + _to_decimal(row.total)

        return daily
