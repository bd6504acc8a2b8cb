"""Read-only snapshot of the STEPS store handed to the KPI reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from steps_kpi.models import Feature, MonthlyCost, Target, Transaction, User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureRecord:
    feature_code: str
    feature_name: Optional[str] = None
    module: Optional[str] = None
    target_sla_hours: Optional[float] = None


@dataclass(frozen=True)
class UserRecord:
    user_id: str
    name: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    region: Optional[str] = None
    is_active: bool = True


@dataclass(frozen=True)
class MonthlyCostRecord:
    month: str
    infra_cost: Optional[float] = None
    support_cost: Optional[float] = None
    dev_cost: Optional[float] = None
    other_cost: Optional[float] = None


@dataclass(frozen=True)
class TransactionRecord:
    transaction_id: str
    start_time: datetime
    status: str
    user_id: Optional[str] = None
    region: Optional[str] = None
    feature_code: Optional[str] = None
    end_time: Optional[datetime] = None
    cycle_hours: Optional[float] = None
    error_code: Optional[str] = None
    amount_usd: Optional[float] = None


@dataclass(frozen=True)
class TargetRecord:
    month: str
    target_avg_cycle_hours: Optional[float] = None
    target_error_rate_pct: Optional[float] = None
    target_cost_per_txn: Optional[float] = None


@dataclass(frozen=True)
class ReportContext:
    features: tuple[FeatureRecord, ...] = ()
    users: tuple[UserRecord, ...] = ()
    costs: tuple[MonthlyCostRecord, ...] = ()
    transactions: tuple[TransactionRecord, ...] = ()
    targets: tuple[TargetRecord, ...] = ()

    @classmethod
    def build(
        cls,
        *,
        features: Iterable[FeatureRecord] = (),
        users: Iterable[UserRecord] = (),
        costs: Iterable[MonthlyCostRecord] = (),
        transactions: Iterable[TransactionRecord] = (),
        targets: Iterable[TargetRecord] = (),
    ) -> "ReportContext":
        return cls(
            features=tuple(features),
            users=tuple(users),
            costs=tuple(costs),
            transactions=tuple(transactions),
            targets=tuple(targets),
        )


def _as_float(value) -> Optional[float]:
    return float(value) if value is not None else None


def load_report_context(db: Session) -> ReportContext:
    """Snapshot the five STEPS tables into an immutable :class:`ReportContext`."""

    features = [
        FeatureRecord(
            feature_code=row.feature_code,
            feature_name=row.feature_name,
            module=row.module,
            target_sla_hours=_as_float(row.target_sla_hours),
        )
        for row in db.execute(select(Feature).order_by(Feature.feature_code)).scalars()
    ]
    users = [
        UserRecord(
            user_id=row.user_id,
            name=row.name,
            department=row.department,
            role=row.role,
            region=row.region,
            is_active=bool(row.is_active),
        )
        for row in db.execute(select(User).order_by(User.user_id)).scalars()
    ]
    costs = [
        MonthlyCostRecord(
            month=row.month,
            infra_cost=_as_float(row.infra_cost),
            support_cost=_as_float(row.support_cost),
            dev_cost=_as_float(row.dev_cost),
            other_cost=_as_float(row.other_cost),
        )
        for row in db.execute(select(MonthlyCost).order_by(MonthlyCost.month)).scalars()
    ]
    transactions = [
        TransactionRecord(
            transaction_id=row.transaction_id,
            user_id=row.user_id,
            region=row.region,
            feature_code=row.feature_code,
            start_time=row.start_time,
            end_time=row.end_time,
            cycle_hours=_as_float(row.cycle_hours),
            status=row.status,
            error_code=row.error_code,
            amount_usd=_as_float(row.amount_usd),
        )
        for row in db.execute(
            select(Transaction).order_by(Transaction.start_time, Transaction.transaction_id)
        ).scalars()
    ]
    targets = [
        TargetRecord(
            month=row.month,
            target_avg_cycle_hours=_as_float(row.target_avg_cycle_hours),
            target_error_rate_pct=_as_float(row.target_error_rate_pct),
            target_cost_per_txn=_as_float(row.target_cost_per_txn),
        )
        for row in db.execute(select(Target).order_by(Target.month)).scalars()
    ]

    logger.debug(
        "Loaded report context: %d features, %d users, %d cost months, %d transactions, %d targets",
        len(features),
        len(users),
        len(costs),
        len(transactions),
        len(targets),
    )
    return ReportContext.build(
        features=features,
        users=users,
        costs=costs,
        transactions=transactions,
        targets=targets,
    )
