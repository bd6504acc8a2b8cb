from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


class TransactionStatus(str, Enum):
    COMPLETED = "Completed"
    FAILED = "Failed"
    REPROCESSED = "Reprocessed"


class DatasetKind(str, Enum):
    FEATURES = "features"
    USERS = "users"
    COSTS_MONTHLY = "costs_monthly"
    TRANSACTIONS = "transactions"
    TARGETS = "targets"


class _DatasetRow(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def blank_cells_are_null(cls, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: (None if isinstance(value, str) and not value.strip() else value)
                for key, value in data.items()
            }
        return data


class _MonthlyRow(_DatasetRow):
    month: str = Field(..., max_length=7)

    @field_validator("month")
    @classmethod
    def validate_month(cls, value: str) -> str:
        if not MONTH_PATTERN.match(value):
            raise ValueError("month must use the YYYY-MM format")
        return value


class FeatureRow(_DatasetRow):
    feature_code: str = Field(..., min_length=1, max_length=10)
    feature_name: Optional[str] = Field(None, max_length=100)
    module: Optional[str] = Field(None, max_length=50)
    target_sla_hours: Optional[float] = Field(None, ge=0)


class UserRow(_DatasetRow):
    user_id: str = Field(..., min_length=1, max_length=10)
    name: Optional[str] = Field(None, max_length=100)
    department: Optional[str] = Field(None, max_length=50)
    role: Optional[str] = Field(None, max_length=50)
    region: Optional[str] = Field(None, max_length=20)
    is_active: bool = True


class MonthlyCostRow(_MonthlyRow):
    infra_cost: Optional[float] = Field(None, ge=0)
    support_cost: Optional[float] = Field(None, ge=0)
    dev_cost: Optional[float] = Field(None, ge=0)
    other_cost: Optional[float] = Field(None, ge=0)


class TransactionRow(_DatasetRow):
    model_config = ConfigDict(use_enum_values=True)

    transaction_id: str = Field(..., min_length=1, max_length=15)
    user_id: Optional[str] = Field(None, max_length=10)
    region: Optional[str] = Field(None, max_length=20)
    feature_code: Optional[str] = Field(None, max_length=10)
    start_time: datetime
    end_time: Optional[datetime] = None
    cycle_hours: Optional[float] = Field(None, ge=0)
    status: TransactionStatus
    error_code: Optional[str] = Field(None, max_length=30)
    amount_usd: Optional[float] = Field(None, ge=0)

    @field_validator("start_time", "end_time")
    @classmethod
    def store_as_naive_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # columns are timezone-naive and hold UTC
        if value is not None and value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value

    @model_validator(mode="after")
    def check_consistency(self) -> "TransactionRow":
        if self.end_time is not None and self.end_time < self.start_time:
            raise ValueError("end_time must not precede start_time")
        if self.status == TransactionStatus.FAILED and not self.error_code:
            raise ValueError("Failed transactions require an error_code")
        if self.status == TransactionStatus.COMPLETED and self.error_code:
            raise ValueError("Completed transactions cannot carry an error_code")
        return self


class TargetRow(_MonthlyRow):
    target_avg_cycle_hours: Optional[float] = Field(None, ge=0)
    target_error_rate_pct: Optional[float] = Field(None, ge=0, le=100)
    target_cost_per_txn: Optional[float] = Field(None, ge=0)


DATASET_ROW_MODELS: dict[DatasetKind, type[_DatasetRow]] = {
    DatasetKind.FEATURES: FeatureRow,
    DatasetKind.USERS: UserRow,
    DatasetKind.COSTS_MONTHLY: MonthlyCostRow,
    DatasetKind.TRANSACTIONS: TransactionRow,
    DatasetKind.TARGETS: TargetRow,
}


class DatasetRowError(BaseModel):
    row: int
    column: Optional[str] = None
    message: str


class DatasetUploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    kind: DatasetKind
    rows_loaded: int = Field(..., alias="rowsLoaded")
    replaced: bool


class StoreIssueResponse(BaseModel):
    table: str
    key: str
    code: str
    message: str


__all__ = [
    "DATASET_ROW_MODELS",
    "DatasetKind",
    "DatasetRowError",
    "DatasetUploadResponse",
    "FeatureRow",
    "MonthlyCostRow",
    "StoreIssueResponse",
    "TargetRow",
    "TransactionRow",
    "TransactionStatus",
    "UserRow",
]
