from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.orm import Session

from scripts.seed_simulation import _parse_args, run_seed_simulation
from steps_kpi.schemas.entities import DatasetKind
from steps_kpi.services.dataset_loader import load_dataset, load_dataset_directory
from steps_kpi.services.kpi_reports import feature_utilization, monthly_volume, monthly_vs_targets
from steps_kpi.services.report_context import load_report_context
from steps_kpi.services.simulation import SimulationConfig, generate_simulation, write_simulation_csv
from steps_kpi.services.store_checks import check_store

SMALL = SimulationConfig(seed=7, start_month=date(2024, 11, 1), months=3, users=6, transactions_per_month=30)


def test_generation_is_deterministic() -> None:
    first = generate_simulation(SMALL)
    second = generate_simulation(SMALL)

    assert [row.model_dump() for row in first.transactions] == [row.model_dump() for row in second.transactions]
    assert [row.month for row in first.costs] == ["2024-11", "2024-12", "2025-01"]
    assert [row.month for row in first.targets] == ["2024-11", "2024-12", "2025-01"]
    assert len(first.users) == 6


def test_generated_transactions_respect_status_rules() -> None:
    dataset = generate_simulation(SMALL)

    for txn in dataset.transactions:
        if txn.status == "Failed":
            assert txn.error_code
            assert txn.cycle_hours is None
        else:
            assert txn.cycle_hours is not None and txn.cycle_hours > 0
            assert txn.end_time >= txn.start_time
        if txn.status == "Completed":
            assert txn.error_code is None


def test_simulation_loads_cleanly_and_reports(db_session: Session) -> None:
    dataset = generate_simulation(SMALL)
    loaded = load_dataset(db_session, dataset.rows_by_kind())
    assert loaded[DatasetKind.TRANSACTIONS] == len(dataset.transactions)

    ctx = load_report_context(db_session)
    assert check_store(ctx) == []
    assert sum(row.transactions for row in monthly_volume(ctx)) == len(dataset.transactions)
    assert sum(row.feature_share_pct for row in feature_utilization(ctx)) == pytest.approx(100.0)
    assert [row.month for row in monthly_vs_targets(ctx)] == ["2024-11", "2024-12", "2025-01"]


def test_csv_export_round_trips_through_loader(tmp_path, db_session: Session) -> None:
    dataset = generate_simulation(SMALL)
    paths = write_simulation_csv(dataset, tmp_path / "steps")

    assert sorted(path.name for path in paths) == [
        "costs_monthly.csv",
        "features.csv",
        "targets.csv",
        "transactions.csv",
        "users.csv",
    ]
    loaded = load_dataset_directory(db_session, tmp_path / "steps")
    assert loaded[DatasetKind.USERS] == 6
    assert loaded[DatasetKind.TRANSACTIONS] == len(dataset.transactions)


def test_seed_script_writes_and_seeds(tmp_path, session_factory) -> None:
    args = _parse_args(["--write-dir", str(tmp_path), "--seed-store", "--start-month", "2024-11", "--months", "3"])
    assert args.start_month == date(2024, 11, 1)

    summary = run_seed_simulation(SMALL, write_dir=tmp_path, session_factory=session_factory)

    assert (tmp_path / "transactions.csv").exists()
    assert summary["features"] == 8
    assert summary["users"] == 6
    assert summary["costs_monthly"] == 3


@pytest.mark.parametrize(
    "overrides",
    [
        {"transactions_per_month": 0},
        {"users": 0},
        {"months": -1},
        {"failure_rate": 1.5},
        {"failure_rate": 0.6, "reprocess_rate": 0.6},
    ],
)
def test_simulation_config_rejects_degenerate_values(overrides) -> None:
    with pytest.raises(ValueError):
        SimulationConfig(**overrides)


def test_smallest_simulation_generates() -> None:
    dataset = generate_simulation(SimulationConfig(months=1, users=1, transactions_per_month=1))

    assert len(dataset.transactions) == 1
    assert dataset.targets[0].target_cost_per_txn == 80_000


@pytest.mark.parametrize("flag", ["--months", "--users", "--transactions-per-month"])
def test_seed_script_rejects_non_positive_counts(flag, capsys) -> None:
    with pytest.raises(SystemExit) as excinfo:
        _parse_args(["--write-dir", "out", flag, "0"])

    assert excinfo.value.code == 2
    assert "at least 1" in capsys.readouterr().err
