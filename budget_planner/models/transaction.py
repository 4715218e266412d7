"""Transaction and split models used to compute budget actuals."""

from __future__ import annotations

import uuid
from datetime import datetime, date
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    String,
    DateTime,
    Date,
    Numeric,
    ForeignKey,
    Index,
    CheckConstraint,
    Text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from budget_planner.models.base import Base


class TransactionStatus(str, Enum):
    """Transaction reconciliation status."""

    UNRECONCILED = "UNRECONCILED"
    CLEARED = "CLEARED"
    RECONCILED = "RECONCILED"
    VOID = "VOID"


class Transaction(Base):
    """Signed account transaction. Expenses are negative, income positive."""

    __tablename__ = "transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    account_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TransactionStatus.UNRECONCILED.value
    )
    is_split: Mapped[bool] = mapped_column(default=False, server_default="false", nullable=False)
    is_transfer: Mapped[bool] = mapped_column(
        default=False, server_default="false", nullable=False
    )
    linked_transaction_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("transactions.id", ondelete="SET NULL")
    )
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    # Relationships
    splits: Mapped[list["TransactionSplit"]] = relationship(
        "TransactionSplit", back_populates="transaction", cascade="all, delete-orphan"
    )
    linked_transaction: Mapped[Optional["Transaction"]] = relationship(
        "Transaction", remote_side="Transaction.id"
    )

    # Table constraints
    __table_args__ = (
        CheckConstraint(
            "status IN ('UNRECONCILED', 'CLEARED', 'RECONCILED', 'VOID')",
            name="check_transaction_status",
        ),
        Index("idx_transactions_user_date", "user_id", "transaction_date"),
        Index("idx_transactions_user_category", "user_id", "category_id"),
    )

    def __repr__(self) -> str:
        """String representation of Transaction."""
        return (
            f"<Transaction(id={self.id}, user_id={self.user_id}, "
            f"amount={self.amount}, date={self.transaction_date})>"
        )


class TransactionSplit(Base):
    """Portion of a split transaction allocated to one category."""

    __tablename__ = "transaction_splits"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True
    )
    transaction_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("transactions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("categories.id", ondelete="SET NULL"), index=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 4), nullable=False)

    transaction: Mapped["Transaction"] = relationship("Transaction", back_populates="splits")

    def __repr__(self) -> str:
        return f"<TransactionSplit(id={self.id}, amount={self.amount})>"
