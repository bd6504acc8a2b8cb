"""create steps tables

Revision ID: 20240101_000001
Revises: 
Create Date: 2024-01-01 00:00:00.000000
"""

from alembic import op
import sqlalchemy as sa

revision = "20240101_000001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "features",
        sa.Column("feature_code", sa.String(length=10), primary_key=True, nullable=False),
        sa.Column("feature_name", sa.String(length=100), nullable=True),
        sa.Column("module", sa.String(length=50), nullable=True),
        sa.Column("target_sla_hours", sa.Numeric(5, 2), nullable=True),
    )

    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=10), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=100), nullable=True),
        sa.Column("department", sa.String(length=50), nullable=True),
        sa.Column("role", sa.String(length=50), nullable=True),
        sa.Column("region", sa.String(length=20), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
    )

    op.create_table(
        "costs_monthly",
        sa.Column("month", sa.String(length=7), primary_key=True, nullable=False),
        sa.Column("infra_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("support_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("dev_cost", sa.Numeric(12, 2), nullable=True),
        sa.Column("other_cost", sa.Numeric(12, 2), nullable=True),
    )

    op.create_table(
        "transactions",
        sa.Column("transaction_id", sa.String(length=15), primary_key=True, nullable=False),
        sa.Column("user_id", sa.String(length=10), nullable=True),
        sa.Column("region", sa.String(length=20), nullable=True),
        sa.Column("feature_code", sa.String(length=10), nullable=True),
        sa.Column("start_time", sa.DateTime(), nullable=False),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("cycle_hours", sa.Numeric(6, 2), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("error_code", sa.String(length=30), nullable=True),
        sa.Column("amount_usd", sa.Numeric(12, 2), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.user_id"]),
        sa.ForeignKeyConstraint(["feature_code"], ["features.feature_code"]),
        sa.CheckConstraint(
            "status IN ('Completed', 'Failed', 'Reprocessed')",
            name="ck_transactions_status",
        ),
    )
    op.create_index("ix_transactions_start_time", "transactions", ["start_time"])

    op.create_table(
        "targets",
        sa.Column("month", sa.String(length=7), primary_key=True, nullable=False),
        sa.Column("target_avg_cycle_hours", sa.Numeric(6, 2), nullable=True),
        sa.Column("target_error_rate_pct", sa.Numeric(5, 2), nullable=True),
        sa.Column("target_cost_per_txn", sa.Numeric(10, 2), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("targets")
    op.drop_index("ix_transactions_start_time", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("costs_monthly")
    op.drop_table("users")
    op.drop_table("features")
