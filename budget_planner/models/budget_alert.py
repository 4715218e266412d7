"""Budget alert model for persisted alert notifications."""

from __future__ import annotations

import uuid
from datetime import datetime, date
from enum import Enum
from typing import Any, Optional

from sqlalchemy import String, DateTime, Date, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from budget_planner.models.base import Base


class AlertType(str, Enum):
    """Kinds of alerts produced by the alert engine."""

    THRESHOLD_WARNING = "THRESHOLD_WARNING"
    THRESHOLD_CRITICAL = "THRESHOLD_CRITICAL"
    OVER_BUDGET = "OVER_BUDGET"
    FLEX_GROUP_WARNING = "FLEX_GROUP_WARNING"
    SEASONAL_SPIKE = "SEASONAL_SPIKE"
    PROJECTED_OVERSPEND = "PROJECTED_OVERSPEND"
    INCOME_SHORTFALL = "INCOME_SHORTFALL"
    POSITIVE_MILESTONE = "POSITIVE_MILESTONE"


class AlertSeverity(str, Enum):
    """Alert severity."""

    INFO = "INFO"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"
    SUCCESS = "SUCCESS"


class BudgetAlert(Base):
    """Alert generated for a budget, deduplicated per budget and period."""

    __tablename__ = "budget_alerts"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    budget_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("budgets.id", ondelete="CASCADE"), nullable=False
    )
    budget_category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("budget_categories.id", ondelete="CASCADE"), nullable=True
    )
    alert_type: Mapped[str] = mapped_column(String(30), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False, default=dict)
    is_read: Mapped[bool] = mapped_column(default=False, server_default="false", nullable=False)
    is_email_sent: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        CheckConstraint(
            "severity IN ('INFO', 'WARNING', 'CRITICAL', 'SUCCESS')",
            name="check_budget_alert_severity",
        ),
        Index("idx_budget_alerts_user_unread", "user_id", "is_read"),
        Index("idx_budget_alerts_budget_period", "budget_id", "period_start"),
    )

    def __repr__(self) -> str:
        """String representation of BudgetAlert."""
        return (
            f"<BudgetAlert(id={self.id}, budget_id={self.budget_id}, "
            f"type={self.alert_type}, severity={self.severity})>"
        )
