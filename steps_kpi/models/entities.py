from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlalchemy import Boolean, DateTime, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from steps_kpi.database import Base


def _money(precision: int = 12) -> sa.Numeric:
    return sa.Numeric(precision, 2, asdecimal=False)


class Feature(Base):
    __tablename__ = "features"

    feature_code: Mapped[str] = mapped_column(String(10), primary_key=True)
    feature_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    module: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    target_sla_hours: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), nullable=True
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="feature",
        passive_deletes=True,
    )


class User(Base):
    __tablename__ = "users"

    user_id: Mapped[str] = mapped_column(String(10), primary_key=True)
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    department: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    role: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    region: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction",
        back_populates="user",
        passive_deletes=True,
    )


class MonthlyCost(Base):
    __tablename__ = "costs_monthly"

    month: Mapped[str] = mapped_column(String(7), primary_key=True)
    infra_cost: Mapped[Optional[float]] = mapped_column(_money(), nullable=True)
    support_cost: Mapped[Optional[float]] = mapped_column(_money(), nullable=True)
    dev_cost: Mapped[Optional[float]] = mapped_column(_money(), nullable=True)
    other_cost: Mapped[Optional[float]] = mapped_column(_money(), nullable=True)


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = (
        sa.CheckConstraint(
            "status IN ('Completed', 'Failed', 'Reprocessed')",
            name="ck_transactions_status",
        ),
        sa.Index("ix_transactions_start_time", "start_time"),
    )

    transaction_id: Mapped[str] = mapped_column(String(15), primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(
        String(10), ForeignKey("users.user_id"), nullable=True
    )
    region: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    feature_code: Mapped[Optional[str]] = mapped_column(
        String(10), ForeignKey("features.feature_code"), nullable=True
    )
    start_time: Mapped[datetime] = mapped_column(DateTime(), nullable=False)
    end_time: Mapped[Optional[datetime]] = mapped_column(DateTime(), nullable=True)
    cycle_hours: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(6, 2, asdecimal=False), nullable=True
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    error_code: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    amount_usd: Mapped[Optional[float]] = mapped_column(_money(), nullable=True)

    user: Mapped[Optional[User]] = relationship("User", back_populates="transactions")
    feature: Mapped[Optional[Feature]] = relationship("Feature", back_populates="transactions")


class Target(Base):
    __tablename__ = "targets"

    month: Mapped[str] = mapped_column(String(7), primary_key=True)
    target_avg_cycle_hours: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(6, 2, asdecimal=False), nullable=True
    )
    target_error_rate_pct: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(5, 2, asdecimal=False), nullable=True
    )
    target_cost_per_txn: Mapped[Optional[float]] = mapped_column(
        sa.Numeric(10, 2, asdecimal=False), nullable=True
    )
