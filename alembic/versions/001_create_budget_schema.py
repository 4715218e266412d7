"""Create budget planner schema

Revision ID: 001
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create users, ledger and budget tables."""

    # Create users table
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('first_name', sa.String(length=100), nullable=True),
        sa.Column('last_name', sa.String(length=100), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )
    op.create_index(op.f('ix_users_id'), 'users', ['id'], unique=False)
    op.create_index(op.f('ix_users_email'), 'users', ['email'], unique=True)

    # Create user_preferences table
    op.create_table(
        'user_preferences',
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('notification_email', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('budget_digest_enabled', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('user_id')
    )

    # Create accounts table
    op.create_table(
        'accounts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_accounts_id'), 'accounts', ['id'], unique=False)
    op.create_index(op.f('ix_accounts_user_id'), 'accounts', ['user_id'], unique=False)

    # Create categories table
    op.create_table(
        'categories',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('parent_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_income', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['parent_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_categories_id'), 'categories', ['id'], unique=False)
    op.create_index(op.f('ix_categories_user_id'), 'categories', ['user_id'], unique=False)
    op.create_index('idx_categories_user_name', 'categories', ['user_id', 'name'], unique=False)

    # Create transactions table
    op.create_table(
        'transactions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('account_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('transaction_date', sa.Date(), nullable=False),
        sa.Column('description', sa.Text(), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('is_split', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_transfer', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('linked_transaction_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "status IN ('UNRECONCILED', 'CLEARED', 'RECONCILED', 'VOID')",
            name='check_transaction_status'
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['account_id'], ['accounts.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['linked_transaction_id'], ['transactions.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transactions_id'), 'transactions', ['id'], unique=False)
    op.create_index(op.f('ix_transactions_user_id'), 'transactions', ['user_id'], unique=False)
    op.create_index(op.f('ix_transactions_category_id'), 'transactions', ['category_id'], unique=False)
    op.create_index(op.f('ix_transactions_transaction_date'), 'transactions', ['transaction_date'], unique=False)
    op.create_index('idx_transactions_user_date', 'transactions', ['user_id', 'transaction_date'], unique=False)
    op.create_index('idx_transactions_user_category', 'transactions', ['user_id', 'category_id'], unique=False)

    # Create transaction_splits table
    op.create_table(
        'transaction_splits',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('transaction_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('amount', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transactions.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_transaction_splits_id'), 'transaction_splits', ['id'], unique=False)
    op.create_index(op.f('ix_transaction_splits_transaction_id'), 'transaction_splits', ['transaction_id'], unique=False)
    op.create_index(op.f('ix_transaction_splits_category_id'), 'transaction_splits', ['category_id'], unique=False)

    # Create budgets table
    op.create_table(
        'budgets',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('budget_type', sa.String(length=20), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=True),
        sa.Column('base_income', sa.Numeric(precision=20, scale=4), nullable=True),
        sa.Column('income_linked', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('strategy', sa.String(length=30), nullable=False),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('currency_code', sa.String(length=3), nullable=False),
        sa.Column('config', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("budget_type IN ('MONTHLY', 'ANNUAL', 'PAY_PERIOD')", name='check_budget_type'),
        sa.CheckConstraint(
            "strategy IN ('FIXED', 'ROLLOVER', 'ZERO_BASED', 'FIFTY_THIRTY_TWENTY')",
            name='check_budget_strategy'
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_budgets_id'), 'budgets', ['id'], unique=False)
    op.create_index(op.f('ix_budgets_user_id'), 'budgets', ['user_id'], unique=False)
    op.create_index('idx_budgets_user_active', 'budgets', ['user_id', 'is_active'], unique=False)

    # Create budget_categories table
    op.create_table(
        'budget_categories',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('budget_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('transfer_account_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_transfer', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('category_group', sa.String(length=20), nullable=True),
        sa.Column('amount', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('is_income', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('rollover_type', sa.String(length=20), nullable=False),
        sa.Column('rollover_cap', sa.Numeric(precision=20, scale=4), nullable=True),
        sa.Column('flex_group', sa.String(length=100), nullable=True),
        sa.Column('alert_warn_percent', sa.Integer(), nullable=False),
        sa.Column('alert_critical_percent', sa.Integer(), nullable=False),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "rollover_type IN ('NONE', 'MONTHLY', 'QUARTERLY', 'ANNUAL')",
            name='check_rollover_type'
        ),
        sa.CheckConstraint(
            'rollover_cap IS NULL OR rollover_cap >= 0',
            name='check_rollover_cap_non_negative'
        ),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['transfer_account_id'], ['accounts.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_budget_categories_id'), 'budget_categories', ['id'], unique=False)
    op.create_index(op.f('ix_budget_categories_budget_id'), 'budget_categories', ['budget_id'], unique=False)
    op.create_index(op.f('ix_budget_categories_category_id'), 'budget_categories', ['category_id'], unique=False)
    op.create_index('idx_budget_categories_flex', 'budget_categories', ['budget_id', 'flex_group'], unique=False)

    # Create budget_periods table
    op.create_table(
        'budget_periods',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('budget_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('period_end', sa.Date(), nullable=False),
        sa.Column('actual_income', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('actual_expenses', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('total_budgeted', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint("status IN ('OPEN', 'CLOSED', 'PROJECTED')", name='check_budget_period_status'),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('budget_id', 'period_start', name='uq_budget_periods_budget_start')
    )
    op.create_index(op.f('ix_budget_periods_id'), 'budget_periods', ['id'], unique=False)
    op.create_index(op.f('ix_budget_periods_budget_id'), 'budget_periods', ['budget_id'], unique=False)
    op.create_index(op.f('ix_budget_periods_status'), 'budget_periods', ['status'], unique=False)
    op.create_index(
        'idx_budget_periods_dates', 'budget_periods', ['budget_id', 'period_start', 'period_end'], unique=False
    )

    # Create budget_period_categories table
    op.create_table(
        'budget_period_categories',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('budget_period_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('budget_category_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('budgeted_amount', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('rollover_in', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('actual_amount', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('effective_budget', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('rollover_out', sa.Numeric(precision=20, scale=4), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['budget_period_id'], ['budget_periods.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['budget_category_id'], ['budget_categories.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['category_id'], ['categories.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('budget_period_id', 'budget_category_id', name='uq_bpc_period_budget_category')
    )
    op.create_index(op.f('ix_budget_period_categories_id'), 'budget_period_categories', ['id'], unique=False)
    op.create_index(
        op.f('ix_budget_period_categories_budget_period_id'),
        'budget_period_categories', ['budget_period_id'], unique=False
    )
    op.create_index(
        op.f('ix_budget_period_categories_category_id'),
        'budget_period_categories', ['category_id'], unique=False
    )

    # Create budget_alerts table
    op.create_table(
        'budget_alerts',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('budget_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('budget_category_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('alert_type', sa.String(length=30), nullable=False),
        sa.Column('severity', sa.String(length=20), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('message', sa.Text(), nullable=False),
        sa.Column('data', postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column('is_read', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('is_email_sent', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('period_start', sa.Date(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "severity IN ('INFO', 'WARNING', 'CRITICAL', 'SUCCESS')",
            name='check_budget_alert_severity'
        ),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['budget_id'], ['budgets.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['budget_category_id'], ['budget_categories.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_budget_alerts_id'), 'budget_alerts', ['id'], unique=False)
    op.create_index(op.f('ix_budget_alerts_user_id'), 'budget_alerts', ['user_id'], unique=False)
    op.create_index('idx_budget_alerts_user_unread', 'budget_alerts', ['user_id', 'is_read'], unique=False)
    op.create_index(
        'idx_budget_alerts_budget_period', 'budget_alerts', ['budget_id', 'period_start'], unique=False
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table('budget_alerts')
    op.drop_table('budget_period_categories')
    op.drop_table('budget_periods')
    op.drop_table('budget_categories')
    op.drop_table('budgets')
    op.drop_table('transaction_splits')
    op.drop_table('transactions')
    op.drop_table('categories')
    op.drop_table('accounts')
    op.drop_table('user_preferences')
    op.drop_table('users')
