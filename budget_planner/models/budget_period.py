"""Budget period models: one instantiation of a budget per cycle."""

from __future__ import annotations

import uuid
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_planner.models.base import Base

if TYPE_CHECKING:
    from budget_planner.models.budget import Budget, BudgetCategory


class PeriodStatus(str, Enum):
    """Lifecycle status of a budget period."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"
    PROJECTED = "PROJECTED"


class BudgetPeriod(Base):
    """Snapshot of a budget for one cycle (a calendar month)."""

    __tablename__ = "budget_periods"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    budget_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    actual_income: Mapped[Decimal] = mapped_column(
        Numeric(20, 4), nullable=False, default=Decimal("0")
    )
    actual_expenses: Mapped[Decimal] = mapped_column(
        Numeric(20, 4), nullable=False, default=Decimal("0")
    )
    total_budgeted: Mapped[Decimal] = mapped_column(
        Numeric(20, 4), nullable=False, default=Decimal("0")
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=PeriodStatus.OPEN.value, index=True
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    budget: Mapped["Budget"] = relationship("Budget", back_populates="periods")
    period_categories: Mapped[list["BudgetPeriodCategory"]] = relationship(
        "BudgetPeriodCategory",
        back_populates="budget_period",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    # Table constraints
    __table_args__ = (
        CheckConstraint(
            "status IN ('OPEN', 'CLOSED', 'PROJECTED')", name="check_budget_period_status"
        ),
        UniqueConstraint("budget_id", "period_start", name="uq_budget_periods_budget_start"),
        Index("idx_budget_periods_dates", "budget_id", "period_start", "period_end"),
    )

    def __repr__(self) -> str:
        """String representation of BudgetPeriod."""
        return (
            f"<BudgetPeriod(id={self.id}, budget_id={self.budget_id}, "
            f"period={self.period_start} to {self.period_end}, status={self.status})>"
        )


class BudgetPeriodCategory(Base):
    """Per-category budget and actuals for one period."""

    __tablename__ = "budget_period_categories"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    budget_period_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("budget_periods.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    budget_category_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("budget_categories.id", ondelete="CASCADE"),
        nullable=False,
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    budgeted_amount: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    rollover_in: Mapped[Decimal] = mapped_column(
        Numeric(20, 4), nullable=False, default=Decimal("0")
    )
    actual_amount: Mapped[Decimal] = mapped_column(
        Numeric(20, 4), nullable=False, default=Decimal("0")
    )
    effective_budget: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    rollover_out: Mapped[Decimal] = mapped_column(
        Numeric(20, 4), nullable=False, default=Decimal("0")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    budget_period: Mapped["BudgetPeriod"] = relationship(
        "BudgetPeriod", back_populates="period_categories"
    )
    budget_category: Mapped["BudgetCategory"] = relationship("BudgetCategory", lazy="selectin")

    __table_args__ = (
        UniqueConstraint(
            "budget_period_id", "budget_category_id", name="uq_bpc_period_budget_category"
        ),
    )

    def __repr__(self) -> str:
        return (
            f"<BudgetPeriodCategory(id={self.id}, budget_category_id={self.budget_category_id}, "
            f"effective_budget={self.effective_budget})>"
        )
