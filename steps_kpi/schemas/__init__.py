from steps_kpi.schemas.entities import (
    DatasetKind,
    FeatureRow,
    MonthlyCostRow,
    TargetRow,
    TransactionRow,
    TransactionStatus,
    UserRow,
)
from steps_kpi.schemas.reporting import KpiReportListItem, KpiReportResponse

__all__ = [
    "DatasetKind",
    "FeatureRow",
    "KpiReportListItem",
    "KpiReportResponse",
    "MonthlyCostRow",
    "TargetRow",
    "TransactionRow",
    "TransactionStatus",
    "UserRow",
]
