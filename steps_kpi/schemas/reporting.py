from __future__ import annotations

from datetime import datetime
from typing import Any, List

from pydantic import BaseModel, ConfigDict, Field


class KpiReportListItem(BaseModel):
    name: str
    title: str
    columns: List[str]


class KpiReportResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    report: str
    title: str
    generated_at: datetime = Field(..., alias="generatedAt")
    row_count: int = Field(..., alias="rowCount")
    columns: List[str]
    rows: List[dict[str, Any]]


__all__ = [
    "KpiReportListItem",
    "KpiReportResponse",
]
