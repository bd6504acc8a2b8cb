"""KPI reports over a :class:`ReportContext`.

Every report is a pure function of the context: it groups, joins and divides
in memory and returns a freshly built list of frozen rows. Reports never raise
for data-dependent conditions. Empty groups are omitted and zero denominators
produce ``None`` cells, the same way ``NULLIF`` guarded SQL would behave.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, fields
from datetime import date, datetime
from typing import Any, Callable, Iterable, Optional, Sequence

from steps_kpi.services.report_context import (
    MonthlyCostRecord,
    ReportContext,
    TransactionRecord,
)

logger = logging.getLogger(__name__)

STATUS_COMPLETED = "Completed"
STATUS_FAILED = "Failed"
STATUS_REPROCESSED = "Reprocessed"
TRANSACTION_STATUSES = (STATUS_COMPLETED, STATUS_FAILED, STATUS_REPROCESSED)
CYCLE_TIME_STATUSES = frozenset({STATUS_COMPLETED, STATUS_REPROCESSED})


class UnknownReportError(Exception):
    """Raised when a report name is not registered."""


def month_start(moment: datetime | date) -> date:
    """Truncate a timestamp to the first day of its calendar month."""
    return date(moment.year, moment.month, 1)


def parse_month(value: str) -> Optional[date]:
    """Parse ``YYYY-MM`` into a first-of-month date, ``None`` when malformed."""
    try:
        return datetime.strptime(value.strip(), "%Y-%m").date()
    except (AttributeError, ValueError):
        return None


def format_month(value: date) -> str:
    return value.strftime("%Y-%m")


def _mean(values: Iterable[Optional[float]]) -> Optional[float]:
    present = [value for value in values if value is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _ratio(numerator: Optional[float], denominator: Optional[float]) -> Optional[float]:
    if numerator is None or not denominator:
        return None
    return numerator / denominator


def _failure_rate_pct(transactions: Sequence[TransactionRecord]) -> Optional[float]:
    failed = sum(1 for txn in transactions if txn.status == STATUS_FAILED)
    return _ratio(100.0 * failed, len(transactions))


def _group_by_month(transactions: Iterable[TransactionRecord]) -> dict[date, list[TransactionRecord]]:
    grouped: dict[date, list[TransactionRecord]] = defaultdict(list)
    for txn in transactions:
        grouped[month_start(txn.start_time)].append(txn)
    return grouped


def _total_cost(cost: MonthlyCostRecord) -> Optional[float]:
    parts = (cost.infra_cost, cost.support_cost, cost.dev_cost, cost.other_cost)
    if any(part is None for part in parts):
        return None
    return float(sum(parts))


# -------------------------------- rows --------------------------------


@dataclass(frozen=True)
class MonthlyVolumeRow:
    month: date
    transactions: int


@dataclass(frozen=True)
class MonthlyAvgCycleRow:
    month: date
    avg_cycle_hours: Optional[float]


@dataclass(frozen=True)
class MonthlyErrorRateRow:
    month: date
    total_txn: int
    failed_txn: int
    error_rate_pct: Optional[float]


@dataclass(frozen=True)
class FeatureUtilizationRow:
    feature_code: str
    feature_name: Optional[str]
    transactions: int
    feature_share_pct: Optional[float]


@dataclass(frozen=True)
class MonthlyCostPerTxnRow:
    month: date
    total_cost: Optional[float]
    transactions: Optional[int]
    cost_per_txn: Optional[float]


@dataclass(frozen=True)
class MonthlyVsTargetRow:
    month: str
    avg_cycle_hours: Optional[float]
    target_avg_cycle_hours: Optional[float]
    error_rate_pct: Optional[float]
    target_error_rate_pct: Optional[float]
    cost_per_txn: Optional[float]
    target_cost_per_txn: Optional[float]


@dataclass(frozen=True)
class RegionDepartmentRow:
    region: Optional[str]
    department: Optional[str]
    volume: int
    avg_cycle_hours: Optional[float]
    error_rate_pct: Optional[float]


# ------------------------------- reports -------------------------------


def monthly_volume(ctx: ReportContext) -> list[MonthlyVolumeRow]:
    grouped = _group_by_month(ctx.transactions)
    return [MonthlyVolumeRow(month=month, transactions=len(grouped[month])) for month in sorted(grouped)]


def monthly_avg_cycle_hours(ctx: ReportContext) -> list[MonthlyAvgCycleRow]:
    qualifying = (txn for txn in ctx.transactions if txn.status in CYCLE_TIME_STATUSES)
    grouped = _group_by_month(qualifying)
    return [
        MonthlyAvgCycleRow(
            month=month,
            avg_cycle_hours=_mean(txn.cycle_hours for txn in grouped[month]),
        )
        for month in sorted(grouped)
    ]


def monthly_error_rate_pct(ctx: ReportContext) -> list[MonthlyErrorRateRow]:
    grouped = _group_by_month(ctx.transactions)
    rows: list[MonthlyErrorRateRow] = []
    for month in sorted(grouped):
        members = grouped[month]
        rows.append(
            MonthlyErrorRateRow(
                month=month,
                total_txn=len(members),
                failed_txn=sum(1 for txn in members if txn.status == STATUS_FAILED),
                error_rate_pct=_failure_rate_pct(members),
            )
        )
    return rows


def feature_utilization(ctx: ReportContext) -> list[FeatureUtilizationRow]:
    counts: dict[Optional[str], int] = defaultdict(int)
    for txn in ctx.transactions:
        counts[txn.feature_code] += 1

    # one row per catalogue entry, as with a relational join
    joined = [
        (feature, counts[feature.feature_code])
        for feature in ctx.features
        if feature.feature_code in counts
    ]
    grand_total = sum(count for _, count in joined)

    rows = [
        FeatureUtilizationRow(
            feature_code=feature.feature_code,
            feature_name=feature.feature_name,
            transactions=count,
            feature_share_pct=_ratio(100.0 * count, grand_total),
        )
        for feature, count in joined
    ]
    rows.sort(key=lambda row: (-row.transactions, row.feature_code))
    return rows


def monthly_cost_per_txn(ctx: ReportContext) -> list[MonthlyCostPerTxnRow]:
    txn_counts = {month: len(members) for month, members in _group_by_month(ctx.transactions).items()}

    dated: list[tuple[date, MonthlyCostRecord]] = []
    for cost in ctx.costs:
        month = parse_month(cost.month)
        if month is None:
            logger.warning("Skipping cost row with malformed month %r", cost.month)
            continue
        dated.append((month, cost))
    dated.sort(key=lambda item: item[0])

    rows: list[MonthlyCostPerTxnRow] = []
    for month, cost in dated:
        total_cost = _total_cost(cost)
        txn_count = txn_counts.get(month)
        rows.append(
            MonthlyCostPerTxnRow(
                month=month,
                total_cost=total_cost,
                transactions=txn_count,
                cost_per_txn=_ratio(total_cost, txn_count),
            )
        )
    return rows


def monthly_vs_targets(ctx: ReportContext) -> list[MonthlyVsTargetRow]:
    error_rates = {row.month: row for row in monthly_error_rate_pct(ctx)}
    cost_rows: dict[date, list[MonthlyCostPerTxnRow]] = defaultdict(list)
    for row in monthly_cost_per_txn(ctx):
        cost_rows[row.month].append(row)
    targets = defaultdict(list)
    for target in ctx.targets:
        targets[target.month.strip()].append(target)

    rows: list[MonthlyVsTargetRow] = []
    for cycle in monthly_avg_cycle_hours(ctx):
        label = format_month(cycle.month)
        error = error_rates.get(cycle.month)
        if error is None:
            continue
        for cost in cost_rows.get(cycle.month, ()):
            for target in targets.get(label, ()):
                rows.append(
                    MonthlyVsTargetRow(
                        month=label,
                        avg_cycle_hours=cycle.avg_cycle_hours,
                        target_avg_cycle_hours=target.target_avg_cycle_hours,
                        error_rate_pct=error.error_rate_pct,
                        target_error_rate_pct=target.target_error_rate_pct,
                        cost_per_txn=cost.cost_per_txn,
                        target_cost_per_txn=target.target_cost_per_txn,
                    )
                )
    return rows


def region_department_snapshot(ctx: ReportContext) -> list[RegionDepartmentRow]:
    users_by_id: dict[str, list] = defaultdict(list)
    for user in ctx.users:
        users_by_id[user.user_id].append(user)

    grouped: dict[tuple[Optional[str], Optional[str]], list[TransactionRecord]] = defaultdict(list)
    for txn in ctx.transactions:
        for user in users_by_id.get(txn.user_id, ()):
            grouped[(user.region, user.department)].append(txn)

    def _sort_key(key: tuple[Optional[str], Optional[str]]):
        region, department = key
        return (region is None, region or "", department is None, department or "")

    return [
        RegionDepartmentRow(
            region=region,
            department=department,
            volume=len(grouped[(region, department)]),
            avg_cycle_hours=_mean(txn.cycle_hours for txn in grouped[(region, department)]),
            error_rate_pct=_failure_rate_pct(grouped[(region, department)]),
        )
        for region, department in sorted(grouped, key=_sort_key)
    ]


# ------------------------------- registry -------------------------------


@dataclass(frozen=True)
class ReportDefinition:
    name: str
    title: str
    row_type: type
    compute: Callable[[ReportContext], list]

    @property
    def columns(self) -> list[str]:
        return [field.name for field in fields(self.row_type)]


REPORTS: dict[str, ReportDefinition] = {
    definition.name: definition
    for definition in (
        ReportDefinition("monthly-volume", "Transactions per month", MonthlyVolumeRow, monthly_volume),
        ReportDefinition(
            "monthly-avg-cycle-hours",
            "Average cycle time by month",
            MonthlyAvgCycleRow,
            monthly_avg_cycle_hours,
        ),
        ReportDefinition(
            "monthly-error-rate",
            "Error rate by month",
            MonthlyErrorRateRow,
            monthly_error_rate_pct,
        ),
        ReportDefinition(
            "feature-utilization",
            "Feature utilization",
            FeatureUtilizationRow,
            feature_utilization,
        ),
        ReportDefinition(
            "monthly-cost-per-txn",
            "Cost per transaction by month",
            MonthlyCostPerTxnRow,
            monthly_cost_per_txn,
        ),
        ReportDefinition(
            "monthly-vs-targets",
            "Monthly KPIs against targets",
            MonthlyVsTargetRow,
            monthly_vs_targets,
        ),
        ReportDefinition(
            "region-department-snapshot",
            "Region and department performance",
            RegionDepartmentRow,
            region_department_snapshot,
        ),
    )
}


def get_report_definition(name: str) -> ReportDefinition:
    try:
        return REPORTS[name]
    except KeyError:
        raise UnknownReportError(name) from None


def build_report(name: str, ctx: ReportContext) -> list:
    definition = get_report_definition(name)
    rows = definition.compute(ctx)
    logger.debug("Report %s produced %d rows", name, len(rows))
    return rows


def rows_as_dicts(rows: Sequence[Any]) -> list[dict[str, Any]]:
    return [asdict(row) for row in rows]


__all__ = [
    "FeatureUtilizationRow",
    "MonthlyAvgCycleRow",
    "MonthlyCostPerTxnRow",
    "MonthlyErrorRateRow",
    "MonthlyVolumeRow",
    "MonthlyVsTargetRow",
    "REPORTS",
    "RegionDepartmentRow",
    "ReportDefinition",
    "TRANSACTION_STATUSES",
    "UnknownReportError",
    "build_report",
    "feature_utilization",
    "format_month",
    "get_report_definition",
    "month_start",
    "monthly_avg_cycle_hours",
    "monthly_cost_per_txn",
    "monthly_error_rate_pct",
    "monthly_volume",
    "monthly_vs_targets",
    "parse_month",
    "region_department_snapshot",
    "rows_as_dicts",
]
