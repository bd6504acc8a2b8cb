from __future__ import annotations

from datetime import date, datetime

import pytest

from steps_kpi.services.kpi_reports import (
    REPORTS,
    UnknownReportError,
    build_report,
    feature_utilization,
    month_start,
    monthly_avg_cycle_hours,
    monthly_cost_per_txn,
    monthly_error_rate_pct,
    monthly_volume,
    monthly_vs_targets,
    region_department_snapshot,
    rows_as_dicts,
)
from steps_kpi.services.report_context import (
    FeatureRecord,
    MonthlyCostRecord,
    ReportContext,
    TargetRecord,
    TransactionRecord,
    UserRecord,
)


def _txn(
    transaction_id: str,
    start_time: datetime,
    status: str = "Completed",
    cycle_hours: float | None = None,
    *,
    user_id: str | None = "U1",
    feature_code: str | None = "F1",
    error_code: str | None = None,
) -> TransactionRecord:
    if status == "Failed" and error_code is None:
        error_code = "TIMEOUT"
    return TransactionRecord(
        transaction_id=transaction_id,
        start_time=start_time,
        status=status,
        cycle_hours=cycle_hours,
        user_id=user_id,
        feature_code=feature_code,
        error_code=error_code,
    )


def _cost(month: str, total: float | None = 1000.0) -> MonthlyCostRecord:
    if total is None:
        return MonthlyCostRecord(month=month, infra_cost=None, support_cost=100.0, dev_cost=100.0, other_cost=0.0)
    return MonthlyCostRecord(
        month=month,
        infra_cost=total * 0.5,
        support_cost=total * 0.2,
        dev_cost=total * 0.2,
        other_cost=total * 0.1,
    )


@pytest.fixture
def worked_example() -> ReportContext:
    return ReportContext.build(
        transactions=[
            _txn("T1", datetime(2024, 1, 3, 9, 0), "Completed", 2.0),
            _txn("T2", datetime(2024, 1, 20, 17, 30), "Failed", None),
        ]
    )


@pytest.fixture
def quarter_context() -> ReportContext:
    return ReportContext.build(
        features=[
            FeatureRecord("F1", "Invoice Capture", "AP", 4.0),
            FeatureRecord("F2", "Payment Run", "Treasury", 6.0),
            FeatureRecord("F3", "Unused Feature", "GL", 2.0),
        ],
        users=[
            UserRecord("U1", "Ada", "Finance", "Analyst", "North"),
            UserRecord("U2", "Ben", "Operations", "Clerk", "North"),
            UserRecord("U3", "Cai", "Finance", "Manager", "South"),
        ],
        costs=[_cost("2024-03", 900.0), _cost("2024-01", 1000.0), _cost("2024-02", 1200.0), _cost("2024-04", 500.0)],
        targets=[
            TargetRecord("2024-01", 3.0, 5.0, 300.0),
            TargetRecord("2024-02", 3.0, 5.0, 300.0),
            TargetRecord("2024-04", 3.0, 5.0, 300.0),
        ],
        transactions=[
            _txn("T1", datetime(2024, 1, 1, 0, 0), "Completed", 2.0, user_id="U1", feature_code="F1"),
            _txn("T2", datetime(2024, 1, 31, 23, 59), "Reprocessed", 4.0, user_id="U2", feature_code="F1",
                 error_code="TIMEOUT"),
            _txn("T3", datetime(2024, 1, 15, 12, 0), "Failed", None, user_id="U3", feature_code="F2"),
            _txn("T4", datetime(2024, 2, 2, 8, 0), "Completed", 1.0, user_id="U1", feature_code="F2"),
            _txn("T5", datetime(2024, 2, 9, 8, 0), "Completed", 3.0, user_id="U3", feature_code="F1"),
            _txn("T6", datetime(2024, 3, 4, 8, 0), "Failed", None, user_id="U2", feature_code="ZZ"),
        ],
    )


def test_month_start_truncates_to_first_day() -> None:
    assert month_start(datetime(2024, 7, 31, 23, 59, 59)) == date(2024, 7, 1)
    assert month_start(date(2024, 7, 1)) == date(2024, 7, 1)


def test_worked_example(worked_example: ReportContext) -> None:
    volume = monthly_volume(worked_example)
    assert [(row.month, row.transactions) for row in volume] == [(date(2024, 1, 1), 2)]

    cycle = monthly_avg_cycle_hours(worked_example)
    assert [(row.month, row.avg_cycle_hours) for row in cycle] == [(date(2024, 1, 1), 2.0)]

    errors = monthly_error_rate_pct(worked_example)
    assert [(row.month, row.error_rate_pct) for row in errors] == [(date(2024, 1, 1), 50.0)]


def test_empty_context_yields_empty_reports() -> None:
    ctx = ReportContext()
    for definition in REPORTS.values():
        assert definition.compute(ctx) == []


def test_monthly_volume_groups_whole_calendar_month(quarter_context: ReportContext) -> None:
    rows = monthly_volume(quarter_context)
    assert [(row.month, row.transactions) for row in rows] == [
        (date(2024, 1, 1), 3),
        (date(2024, 2, 1), 2),
        (date(2024, 3, 1), 1),
    ]
    assert sum(row.transactions for row in rows) == len(quarter_context.transactions)


def test_avg_cycle_excludes_failed_and_omits_empty_months(quarter_context: ReportContext) -> None:
    rows = monthly_avg_cycle_hours(quarter_context)
    assert [row.month for row in rows] == [date(2024, 1, 1), date(2024, 2, 1)]
    assert rows[0].avg_cycle_hours == pytest.approx(3.0)
    assert rows[1].avg_cycle_hours == pytest.approx(2.0)


def test_avg_cycle_ignores_null_hours() -> None:
    ctx = ReportContext.build(
        transactions=[
            _txn("T1", datetime(2024, 5, 1), "Completed", None),
            _txn("T2", datetime(2024, 5, 2), "Completed", 6.0),
            _txn("T3", datetime(2024, 6, 2), "Completed", None),
        ]
    )
    rows = monthly_avg_cycle_hours(ctx)
    assert [(row.month, row.avg_cycle_hours) for row in rows] == [
        (date(2024, 5, 1), 6.0),
        (date(2024, 6, 1), None),
    ]


def test_error_rate_bounds_and_zero_failures(quarter_context: ReportContext) -> None:
    rows = monthly_error_rate_pct(quarter_context)
    rates = {row.month: row.error_rate_pct for row in rows}
    assert rates[date(2024, 1, 1)] == pytest.approx(100.0 / 3)
    assert rates[date(2024, 2, 1)] == 0.0
    assert rates[date(2024, 3, 1)] == 100.0
    assert all(0.0 <= rate <= 100.0 for rate in rates.values())
    assert [row.month for row in rows] == sorted(rates)


def test_feature_utilization_inner_join_and_shares(quarter_context: ReportContext) -> None:
    rows = feature_utilization(quarter_context)

    assert [(row.feature_code, row.transactions) for row in rows] == [("F1", 3), ("F2", 2)]
    assert rows[0].feature_name == "Invoice Capture"
    assert rows[0].feature_share_pct == pytest.approx(60.0)
    assert rows[1].feature_share_pct == pytest.approx(40.0)
    assert sum(row.feature_share_pct for row in rows) == pytest.approx(100.0)


def test_feature_utilization_orders_ties_by_code() -> None:
    ctx = ReportContext.build(
        features=[FeatureRecord("F9", "Nine"), FeatureRecord("F2", "Two")],
        transactions=[
            _txn("T1", datetime(2024, 1, 1), feature_code="F9"),
            _txn("T2", datetime(2024, 1, 2), feature_code="F2"),
        ],
    )
    assert [row.feature_code for row in feature_utilization(ctx)] == ["F2", "F9"]


def test_cost_per_txn_left_joins_costs(quarter_context: ReportContext) -> None:
    rows = monthly_cost_per_txn(quarter_context)

    assert [row.month for row in rows] == [date(2024, m, 1) for m in (1, 2, 3, 4)]
    by_month = {row.month: row for row in rows}
    assert by_month[date(2024, 1, 1)].cost_per_txn == pytest.approx(1000.0 / 3)
    assert by_month[date(2024, 2, 1)].cost_per_txn == pytest.approx(600.0)
    assert by_month[date(2024, 3, 1)].cost_per_txn == pytest.approx(900.0)

    april = by_month[date(2024, 4, 1)]
    assert april.transactions is None
    assert april.total_cost == pytest.approx(500.0)
    assert april.cost_per_txn is None


def test_cost_per_txn_null_component_propagates() -> None:
    ctx = ReportContext.build(
        costs=[_cost("2024-01", None)],
        transactions=[_txn("T1", datetime(2024, 1, 5))],
    )
    (row,) = monthly_cost_per_txn(ctx)
    assert row.total_cost is None
    assert row.transactions == 1
    assert row.cost_per_txn is None


def test_vs_targets_requires_all_four_sources(quarter_context: ReportContext) -> None:
    rows = monthly_vs_targets(quarter_context)

    # 2024-03 has no qualifying cycle time and no target; 2024-04 has no transactions.
    assert [row.month for row in rows] == ["2024-01", "2024-02"]
    january = rows[0]
    assert january.avg_cycle_hours == pytest.approx(3.0)
    assert january.target_avg_cycle_hours == 3.0
    assert january.error_rate_pct == pytest.approx(100.0 / 3)
    assert january.target_error_rate_pct == 5.0
    assert january.cost_per_txn == pytest.approx(1000.0 / 3)
    assert january.target_cost_per_txn == 300.0


def test_vs_targets_skips_month_without_target() -> None:
    ctx = ReportContext.build(
        costs=[_cost("2024-06"), _cost("2024-07")],
        targets=[TargetRecord("2024-06", 2.0, 1.0, 10.0)],
        transactions=[
            _txn("T1", datetime(2024, 6, 1), "Completed", 1.0),
            _txn("T2", datetime(2024, 7, 1), "Completed", 1.0),
        ],
    )
    assert [row.month for row in monthly_vs_targets(ctx)] == ["2024-06"]


def test_vs_targets_keeps_month_with_null_cost_per_txn() -> None:
    ctx = ReportContext.build(
        costs=[_cost("2024-06", None)],
        targets=[TargetRecord("2024-06", 2.0, 1.0, 10.0)],
        transactions=[_txn("T1", datetime(2024, 6, 1), "Completed", 1.0)],
    )
    (row,) = monthly_vs_targets(ctx)
    assert row.cost_per_txn is None
    assert row.target_cost_per_txn == 10.0


def test_region_department_snapshot_partitions_transactions(quarter_context: ReportContext) -> None:
    rows = region_department_snapshot(quarter_context)

    assert [(row.region, row.department) for row in rows] == [
        ("North", "Finance"),
        ("North", "Operations"),
        ("South", "Finance"),
    ]
    assert sum(row.volume for row in rows) == len(quarter_context.transactions)

    north_ops = rows[1]
    assert north_ops.volume == 2
    assert north_ops.avg_cycle_hours == pytest.approx(4.0)
    assert north_ops.error_rate_pct == pytest.approx(50.0)

    south_finance = rows[2]
    assert south_finance.volume == 2
    assert south_finance.avg_cycle_hours == pytest.approx(3.0)
    assert south_finance.error_rate_pct == pytest.approx(50.0)


def test_region_department_snapshot_uses_user_region_and_drops_orphans() -> None:
    ctx = ReportContext.build(
        users=[
            UserRecord("U1", department="Finance", region="West"),
            UserRecord("U2", department=None, region=None),
        ],
        transactions=[
            TransactionRecord("T1", datetime(2024, 1, 1), "Completed", user_id="U1", region="East", cycle_hours=1.0),
            TransactionRecord("T2", datetime(2024, 1, 1), "Completed", user_id="U2", cycle_hours=2.0),
            TransactionRecord("T3", datetime(2024, 1, 1), "Completed", user_id="GHOST", cycle_hours=3.0),
        ],
    )
    rows = region_department_snapshot(ctx)
    assert [(row.region, row.department, row.volume) for row in rows] == [
        ("West", "Finance", 1),
        (None, None, 1),
    ]


def test_build_report_dispatches_by_name(quarter_context: ReportContext) -> None:
    rows = build_report("monthly-volume", quarter_context)
    assert rows == monthly_volume(quarter_context)
    assert rows_as_dicts(rows)[0] == {"month": date(2024, 1, 1), "transactions": 3}


def test_build_report_rejects_unknown_name() -> None:
    with pytest.raises(UnknownReportError):
        build_report("does-not-exist", ReportContext())


def test_report_columns_follow_row_fields() -> None:
    assert REPORTS["monthly-vs-targets"].columns == [
        "month",
        "avg_cycle_hours",
        "target_avg_cycle_hours",
        "error_rate_pct",
        "target_error_rate_pct",
        "cost_per_txn",
        "target_cost_per_txn",
    ]
    assert REPORTS["feature-utilization"].columns == [
        "feature_code",
        "feature_name",
        "transactions",
        "feature_share_pct",
    ]
