"""Deterministic generator for the simulated STEPS operations dataset."""

from __future__ import annotations

import csv
import logging
import random
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from steps_kpi.schemas.entities import (
    DatasetKind,
    FeatureRow,
    MonthlyCostRow,
    TargetRow,
    TransactionRow,
    TransactionStatus,
    UserRow,
)
from steps_kpi.services.dataset_loader import dataset_filename

logger = logging.getLogger(__name__)

FEATURE_CATALOGUE: tuple[tuple[str, str, str, float], ...] = (
    ("F01", "Invoice Capture", "Accounts Payable", 4.0),
    ("F02", "Invoice Approval", "Accounts Payable", 8.0),
    ("F03", "Payment Run", "Treasury", 6.0),
    ("F04", "Vendor Onboarding", "Procurement", 24.0),
    ("F05", "Purchase Requisition", "Procurement", 12.0),
    ("F06", "Expense Claim", "Travel & Expense", 10.0),
    ("F07", "Journal Posting", "General Ledger", 2.0),
    ("F08", "Period Close Task", "General Ledger", 16.0),
)
REGIONS = ("North", "South", "East", "West")
DEPARTMENTS = ("Finance", "Operations", "Procurement", "Shared Services")
ROLES = ("Analyst", "Approver", "Clerk", "Manager")
ERROR_CODES = ("VALIDATION_ERROR", "TIMEOUT", "DUPLICATE_RECORD", "MISSING_APPROVAL", "INTEGRATION_FAILURE")


@dataclass(frozen=True)
class SimulationConfig:
    seed: int = 42
    start_month: date = date(2024, 1, 1)
    months: int = 6
    users: int = 40
    transactions_per_month: int = 250
    failure_rate: float = 0.06
    reprocess_rate: float = 0.05

    def __post_init__(self) -> None:
        for name in ("months", "users", "transactions_per_month"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be at least 1")
        if not 0 <= self.failure_rate <= 1 or not 0 <= self.reprocess_rate <= 1:
            raise ValueError("failure_rate and reprocess_rate must lie between 0 and 1")
        if self.failure_rate + self.reprocess_rate > 1:
            raise ValueError("failure_rate and reprocess_rate cannot exceed 1 combined")


@dataclass
class SimulationDataset:
    features: list[FeatureRow] = field(default_factory=list)
    users: list[UserRow] = field(default_factory=list)
    costs: list[MonthlyCostRow] = field(default_factory=list)
    transactions: list[TransactionRow] = field(default_factory=list)
    targets: list[TargetRow] = field(default_factory=list)

    def rows_by_kind(self) -> dict[DatasetKind, list[BaseModel]]:
        return {
            DatasetKind.FEATURES: list(self.features),
            DatasetKind.USERS: list(self.users),
            DatasetKind.COSTS_MONTHLY: list(self.costs),
            DatasetKind.TRANSACTIONS: list(self.transactions),
            DatasetKind.TARGETS: list(self.targets),
        }


def _add_months(start: date, offset: int) -> date:
    index = start.year * 12 + (start.month - 1) + offset
    return date(index // 12, index % 12 + 1, 1)


def _build_users(rng: random.Random, count: int) -> list[UserRow]:
    return [
        UserRow(
            user_id=f"U{index:04d}",
            name=f"User {index:04d}",
            department=rng.choice(DEPARTMENTS),
            role=rng.choice(ROLES),
            region=REGIONS[index % len(REGIONS)],
            is_active=rng.random() > 0.05,
        )
        for index in range(1, count + 1)
    ]


def _build_transactions(
    rng: random.Random,
    config: SimulationConfig,
    month: date,
    users: list[UserRow],
    features: list[FeatureRow],
) -> list[TransactionRow]:
    rows: list[TransactionRow] = []
    spread = config.transactions_per_month // 10
    volume = config.transactions_per_month + rng.randint(-spread, spread)
    for index in range(1, max(volume, 1) + 1):
        user = rng.choice(users)
        feature = rng.choice(features)
        sla = feature.target_sla_hours or 8.0
        start_time = datetime(month.year, month.month, rng.randint(1, 28), rng.randint(0, 23), rng.randint(0, 59))

        roll = rng.random()
        if roll < config.failure_rate:
            status = TransactionStatus.FAILED
        elif roll < config.failure_rate + config.reprocess_rate:
            status = TransactionStatus.REPROCESSED
        else:
            status = TransactionStatus.COMPLETED

        cycle_hours = None
        end_time = None
        error_code = None
        if status == TransactionStatus.FAILED:
            error_code = rng.choice(ERROR_CODES)
        else:
            cycle = max(0.1, rng.gauss(sla * 0.8, sla * 0.25))
            if status == TransactionStatus.REPROCESSED:
                error_code = rng.choice(ERROR_CODES)
                cycle += sla * 0.5
            cycle_hours = round(cycle, 2)
            end_time = start_time + timedelta(hours=cycle_hours)

        rows.append(
            TransactionRow(
                transaction_id=f"T{month:%Y%m}{index:05d}",
                user_id=user.user_id,
                region=user.region,
                feature_code=feature.feature_code,
                start_time=start_time,
                end_time=end_time,
                cycle_hours=cycle_hours,
                status=status,
                error_code=error_code,
                amount_usd=round(rng.uniform(50, 5000), 2),
            )
        )
    return rows


def generate_simulation(config: SimulationConfig | None = None) -> SimulationDataset:
    config = config or SimulationConfig()
    rng = random.Random(config.seed)

    features = [
        FeatureRow(feature_code=code, feature_name=name, module=module, target_sla_hours=sla)
        for code, name, module, sla in FEATURE_CATALOGUE
    ]
    users = _build_users(rng, config.users)
    dataset = SimulationDataset(features=features, users=users)
    mean_sla = sum(sla for *_, sla in FEATURE_CATALOGUE) / len(FEATURE_CATALOGUE)

    for offset in range(config.months):
        month = _add_months(config.start_month, offset)
        label = f"{month:%Y-%m}"
        transactions = _build_transactions(rng, config, month, users, features)
        dataset.transactions.extend(transactions)

        infra = round(rng.uniform(38_000, 46_000), 2)
        support = round(rng.uniform(12_000, 16_000), 2)
        dev = round(rng.uniform(20_000, 30_000), 2)
        other = round(rng.uniform(2_000, 5_000), 2)
        dataset.costs.append(
            MonthlyCostRow(month=label, infra_cost=infra, support_cost=support, dev_cost=dev, other_cost=other)
        )
        dataset.targets.append(
            TargetRow(
                month=label,
                target_avg_cycle_hours=round(mean_sla * 0.85, 2),
                target_error_rate_pct=5.0,
                target_cost_per_txn=round(80_000 / config.transactions_per_month, 2),
            )
        )

    logger.info(
        "Generated STEPS simulation: %d months, %d users, %d transactions (seed=%s)",
        config.months,
        len(dataset.users),
        len(dataset.transactions),
        config.seed,
    )
    return dataset


def _csv_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    return value


def write_simulation_csv(dataset: SimulationDataset, directory: Path) -> list[Path]:
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    written: list[Path] = []
    for kind, rows in dataset.rows_by_kind().items():
        path = directory / dataset_filename(kind)
        model_fields = list(type(rows[0]).model_fields) if rows else []
        with path.open("w", newline="", encoding="utf-8") as handle:
            writer = csv.DictWriter(handle, fieldnames=model_fields)
            writer.writeheader()
            for row in rows:
                writer.writerow({name: _csv_value(value) for name, value in row.model_dump().items()})
        written.append(path)
    return written
