from __future__ import annotations

import csv
import logging
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from pydantic import BaseModel, ValidationError
from sqlalchemy import delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from steps_kpi.models import Feature, MonthlyCost, Target, Transaction, User
from steps_kpi.schemas.entities import DATASET_ROW_MODELS, DatasetKind, DatasetRowError

logger = logging.getLogger(__name__)

# Parents before children so foreign keys resolve on strict backends.
LOAD_ORDER: tuple[DatasetKind, ...] = (
    DatasetKind.FEATURES,
    DatasetKind.USERS,
    DatasetKind.COSTS_MONTHLY,
    DatasetKind.TARGETS,
    DatasetKind.TRANSACTIONS,
)

_ORM_MODELS = {
    DatasetKind.FEATURES: Feature,
    DatasetKind.USERS: User,
    DatasetKind.COSTS_MONTHLY: MonthlyCost,
    DatasetKind.TRANSACTIONS: Transaction,
    DatasetKind.TARGETS: Target,
}

_KEY_COLUMNS = {
    DatasetKind.FEATURES: "feature_code",
    DatasetKind.USERS: "user_id",
    DatasetKind.COSTS_MONTHLY: "month",
    DatasetKind.TRANSACTIONS: "transaction_id",
    DatasetKind.TARGETS: "month",
}


class DatasetValidationError(ValueError):
    """Raised when a dataset file contains rows that fail validation."""

    def __init__(self, kind: DatasetKind, errors: Sequence[DatasetRowError]):
        self.kind = kind
        self.errors = list(errors)
        super().__init__(f"{kind.value}: {len(self.errors)} invalid row(s)")


class DatasetLoadError(RuntimeError):
    """Raised when validated rows cannot be written to the store."""


def dataset_filename(kind: DatasetKind) -> str:
    return f"{kind.value}.csv"


def key_column(kind: DatasetKind) -> str:
    return _KEY_COLUMNS[kind]


def read_dataset_csv(kind: DatasetKind, lines: Iterable[str]) -> list[BaseModel]:
    """Parse and validate one CSV dataset; the header row names the columns."""

    model = DATASET_ROW_MODELS[kind]
    reader = csv.DictReader(lines)
    if not reader.fieldnames:
        raise DatasetValidationError(kind, [DatasetRowError(row=1, message="Missing header row.")])

    key = _KEY_COLUMNS[kind]
    missing = [
        name for name, field in model.model_fields.items() if field.is_required() and name not in reader.fieldnames
    ]
    if missing:
        raise DatasetValidationError(
            kind,
            [DatasetRowError(row=1, column=name, message="Required column is missing.") for name in missing],
        )

    rows: list[BaseModel] = []
    errors: list[DatasetRowError] = []
    seen_keys: dict[str, int] = {}
    for line_number, raw in enumerate(reader, start=2):
        try:
            parsed = model.model_validate(raw)
        except ValidationError as exc:
            for detail in exc.errors():
                location = detail.get("loc") or ()
                errors.append(
                    DatasetRowError(
                        row=line_number,
                        column=str(location[0]) if location else None,
                        message=detail.get("msg", "Invalid value."),
                    )
                )
            continue

        key_value = getattr(parsed, key)
        if key_value in seen_keys:
            errors.append(
                DatasetRowError(
                    row=line_number,
                    column=key,
                    message=f"Duplicate {key} {key_value!r} (first seen on row {seen_keys[key_value]}).",
                )
            )
            continue
        seen_keys[key_value] = line_number
        rows.append(parsed)

    if errors:
        raise DatasetValidationError(kind, errors)
    return rows


def load_dataset(
    db: Session,
    rows_by_kind: Mapping[DatasetKind, Sequence[BaseModel]],
    *,
    replace: bool = False,
) -> dict[DatasetKind, int]:
    """Bulk insert validated rows; ``replace`` clears the given tables first."""

    kinds = [kind for kind in LOAD_ORDER if kind in rows_by_kind]
    loaded: dict[DatasetKind, int] = {}
    try:
        if replace:
            for kind in reversed(kinds):
                db.execute(delete(_ORM_MODELS[kind]))
        for kind in kinds:
            orm_model = _ORM_MODELS[kind]
            records = [orm_model(**row.model_dump(mode="python")) for row in rows_by_kind[kind]]
            db.add_all(records)
            db.flush()
            loaded[kind] = len(records)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.warning("Dataset load failed; transaction rolled back", exc_info=exc)
        raise DatasetLoadError(str(getattr(exc, "orig", exc))) from exc

    logger.info(
        "Loaded STEPS dataset (%s)",
        ", ".join(f"{kind.value}={count}" for kind, count in loaded.items()),
    )
    return loaded


def load_dataset_directory(db: Session, directory: Path, *, replace: bool = False) -> dict[DatasetKind, int]:
    """Load every ``<table>.csv`` present in ``directory``."""

    rows_by_kind: dict[DatasetKind, list[BaseModel]] = {}
    for kind in LOAD_ORDER:
        path = Path(directory) / dataset_filename(kind)
        if not path.exists():
            logger.debug("No %s found in %s", path.name, directory)
            continue
        with path.open(newline="", encoding="utf-8") as handle:
            rows_by_kind[kind] = read_dataset_csv(kind, handle)

    if not rows_by_kind:
        raise DatasetLoadError(f"No dataset files found in {directory}.")
    return load_dataset(db, rows_by_kind, replace=replace)
