from __future__ import annotations

import argparse
import logging
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterable, Optional

from sqlalchemy.orm import Session

from steps_kpi.schemas.entities import DatasetKind
from steps_kpi.services.dataset_loader import load_dataset
from steps_kpi.services.simulation import SimulationConfig, generate_simulation, write_simulation_csv

logger = logging.getLogger(__name__)


def _parse_month(value: str):
    try:
        return datetime.strptime(value, "%Y-%m").date()
    except ValueError as exc:
        raise argparse.ArgumentTypeError("month must use the YYYY-MM format") from exc


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}") from exc
    if number < 1:
        raise argparse.ArgumentTypeError("value must be at least 1")
    return number


def _parse_args(argv: Optional[Iterable[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate the simulated STEPS operations dataset.")
    parser.add_argument("--write-dir", type=Path, help="Directory for CSV exports (one file per table).")
    parser.add_argument("--seed-store", action="store_true", help="Load the generated rows into DATABASE_URL.")
    parser.add_argument("--replace", action="store_true", help="Clear existing rows before seeding the store.")
    parser.add_argument("--create-tables", action="store_true", help="Create missing tables before seeding.")
    parser.add_argument("--seed", type=int, default=42, help="Random seed for reproducible output.")
    parser.add_argument("--start-month", type=_parse_month, default="2024-01", help="First simulated month (YYYY-MM).")
    parser.add_argument("--months", type=_positive_int, default=6, help="Number of simulated months.")
    parser.add_argument("--users", type=_positive_int, default=40, help="Number of simulated users.")
    parser.add_argument("--transactions-per-month", type=_positive_int, default=250)
    return parser.parse_args(list(argv) if argv is not None else None)


def run_seed_simulation(
    config: SimulationConfig,
    *,
    write_dir: Optional[Path] = None,
    session_factory: Optional[Callable[[], Session]] = None,
    replace: bool = False,
) -> dict[str, int]:
    dataset = generate_simulation(config)
    summary = {kind.value: len(rows) for kind, rows in dataset.rows_by_kind().items()}

    if write_dir is not None:
        paths = write_simulation_csv(dataset, write_dir)
        logger.info("Wrote %d CSV files to %s", len(paths), write_dir)

    if session_factory is not None:
        with session_factory() as session:
            loaded = load_dataset(session, dataset.rows_by_kind(), replace=replace)
        summary = {kind.value: count for kind, count in loaded.items()}
        for kind in DatasetKind:
            summary.setdefault(kind.value, 0)

    return summary


def main(argv: Optional[Iterable[str]] = None) -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = _parse_args(argv)
    if not args.write_dir and not args.seed_store:
        raise SystemExit("Specify --write-dir, --seed-store, or both.")

    session_factory = None
    if args.seed_store:
        from steps_kpi import models  # noqa: F401
        from steps_kpi.database import Base, SessionLocal, engine

        if args.create_tables:
            Base.metadata.create_all(bind=engine)
        session_factory = SessionLocal

    config = SimulationConfig(
        seed=args.seed,
        start_month=args.start_month,
        months=args.months,
        users=args.users,
        transactions_per_month=args.transactions_per_month,
    )
    summary = run_seed_simulation(
        config,
        write_dir=args.write_dir,
        session_factory=session_factory,
        replace=args.replace,
    )
    for table, count in summary.items():
        print(f"{table}: {count} rows")


if __name__ == "__main__":
    main()
