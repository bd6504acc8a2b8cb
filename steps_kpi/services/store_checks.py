from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone

from steps_kpi.services.kpi_reports import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    TRANSACTION_STATUSES,
    parse_month,
)
from steps_kpi.services.report_context import ReportContext


@dataclass(frozen=True)
class StoreIssue:
    table: str
    key: str
    code: str
    message: str


def _duplicate_months(table: str, months: list[str]) -> list[StoreIssue]:
    issues: list[StoreIssue] = []
    for month, count in sorted(Counter(months).items()):
        if count > 1:
            issues.append(
                StoreIssue(table, month, "duplicate_month", f"{count} rows share month {month}.")
            )
        if parse_month(month) is None:
            issues.append(StoreIssue(table, month, "invalid_month", "Month must use the YYYY-MM format."))
    return issues


def _as_naive_utc(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment


def check_store(ctx: ReportContext) -> list[StoreIssue]:
    """List integrity problems in a snapshot without altering it."""

    issues: list[StoreIssue] = []
    issues.extend(_duplicate_months("costs_monthly", [cost.month for cost in ctx.costs]))
    issues.extend(_duplicate_months("targets", [target.month for target in ctx.targets]))

    user_ids = {user.user_id for user in ctx.users}
    feature_codes = {feature.feature_code for feature in ctx.features}

    for txn in ctx.transactions:
        key = txn.transaction_id
        if txn.user_id is not None and txn.user_id not in user_ids:
            issues.append(
                StoreIssue("transactions", key, "unknown_user", f"User {txn.user_id} does not exist.")
            )
        if txn.feature_code is not None and txn.feature_code not in feature_codes:
            issues.append(
                StoreIssue(
                    "transactions", key, "unknown_feature", f"Feature {txn.feature_code} does not exist."
                )
            )
        if txn.end_time is not None and _as_naive_utc(txn.end_time) < _as_naive_utc(txn.start_time):
            issues.append(StoreIssue("transactions", key, "negative_duration", "end_time precedes start_time."))
        if txn.status not in TRANSACTION_STATUSES:
            issues.append(StoreIssue("transactions", key, "invalid_status", f"Unknown status {txn.status!r}."))
        elif txn.status == STATUS_FAILED and not txn.error_code:
            issues.append(StoreIssue("transactions", key, "missing_error_code", "Failed without an error_code."))
        elif txn.status == STATUS_COMPLETED and txn.error_code:
            issues.append(
                StoreIssue("transactions", key, "unexpected_error_code", "Completed with an error_code.")
            )
    return issues
