"""Budget and budget category models."""

from __future__ import annotations

import uuid
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Numeric,
    Integer,
    Text,
    ForeignKey,
    Index,
    CheckConstraint,
)
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_planner.models.base import Base
from budget_planner.models.category import category_display_name

if TYPE_CHECKING:
    from budget_planner.models.user import User
    from budget_planner.models.category import Account, Category
    from budget_planner.models.budget_period import BudgetPeriod


class BudgetType(str, Enum):
    """Budget cycle type."""

    MONTHLY = "MONTHLY"
    ANNUAL = "ANNUAL"
    PAY_PERIOD = "PAY_PERIOD"


class BudgetStrategy(str, Enum):
    """Budgeting strategy chosen by the user."""

    FIXED = "FIXED"
    ROLLOVER = "ROLLOVER"
    ZERO_BASED = "ZERO_BASED"
    FIFTY_THIRTY_TWENTY = "FIFTY_THIRTY_TWENTY"


class RolloverType(str, Enum):
    """How unspent budget carries into the next period."""

    NONE = "NONE"
    MONTHLY = "MONTHLY"
    QUARTERLY = "QUARTERLY"
    ANNUAL = "ANNUAL"


class CategoryGroup(str, Enum):
    """50/30/20 grouping of a budget line."""

    NEED = "NEED"
    WANT = "WANT"
    SAVING = "SAVING"


class Budget(Base):
    """User-owned budget defining a set of category allocations."""

    __tablename__ = "budgets"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    budget_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=BudgetType.MONTHLY.value
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    base_income: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 4), nullable=True)
    income_linked: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )
    strategy: Mapped[str] = mapped_column(
        String(30), nullable=False, default=BudgetStrategy.FIXED.value
    )
    is_active: Mapped[bool] = mapped_column(default=True, server_default="true", nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    config: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    user: Mapped["User"] = relationship("User", back_populates="budgets")
    categories: Mapped[list["BudgetCategory"]] = relationship(
        "BudgetCategory",
        back_populates="budget",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="BudgetCategory.sort_order",
    )
    periods: Mapped[list["BudgetPeriod"]] = relationship(
        "BudgetPeriod", back_populates="budget", cascade="all, delete-orphan"
    )

    # Table constraints
    __table_args__ = (
        CheckConstraint(
            "budget_type IN ('MONTHLY', 'ANNUAL', 'PAY_PERIOD')", name="check_budget_type"
        ),
        CheckConstraint(
            "strategy IN ('FIXED', 'ROLLOVER', 'ZERO_BASED', 'FIFTY_THIRTY_TWENTY')",
            name="check_budget_strategy",
        ),
        Index("idx_budgets_user_active", "user_id", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation of Budget."""
        return f"<Budget(id={self.id}, user_id={self.user_id}, name={self.name})>"


class BudgetCategory(Base):
    """One allocation line of a budget."""

    __tablename__ = "budget_categories"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    budget_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("budgets.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    transfer_account_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="SET NULL")
    )
    is_transfer: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )
    category_group: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    is_income: Mapped[bool] = mapped_column(default=False, server_default="false", nullable=False)
    rollover_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=RolloverType.NONE.value
    )
    rollover_cap: Mapped[Optional[Decimal]] = mapped_column(Numeric(20, 4), nullable=True)
    flex_group: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    alert_warn_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=80)
    alert_critical_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=95)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    # Relationships
    budget: Mapped["Budget"] = relationship("Budget", back_populates="categories")
    category: Mapped[Optional["Category"]] = relationship("Category", lazy="selectin")
    transfer_account: Mapped[Optional["Account"]] = relationship("Account", lazy="selectin")

    __table_args__ = (
        CheckConstraint(
            "rollover_type IN ('NONE', 'MONTHLY', 'QUARTERLY', 'ANNUAL')",
            name="check_rollover_type",
        ),
        CheckConstraint(
            "rollover_cap IS NULL OR rollover_cap >= 0", name="check_rollover_cap_non_negative"
        ),
        Index("idx_budget_categories_flex", "budget_id", "flex_group"),
    )

    @property
    def display_name(self) -> str:
        """Name shown in alerts and summaries."""
        if self.is_transfer and self.transfer_account_id:
            return self.transfer_account.name if self.transfer_account else "Transfer"
        return category_display_name(self.category)

    def __repr__(self) -> str:
        """String representation of BudgetCategory."""
        return (
            f"<BudgetCategory(id={self.id}, budget_id={self.budget_id}, "
            f"amount={self.amount}, rollover_type={self.rollover_type})>"
        )
