from __future__ import annotations

import csv
from datetime import datetime, timezone
from io import StringIO
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from steps_kpi.config import get_settings
from steps_kpi.database import get_db
from steps_kpi.schemas.reporting import KpiReportListItem, KpiReportResponse
from steps_kpi.services.kpi_reports import (
    REPORTS,
    UnknownReportError,
    build_report,
    get_report_definition,
    rows_as_dicts,
)
from steps_kpi.services.report_context import load_report_context

router = APIRouter(prefix="/reporting", tags=["Reporting"])


def _build_response(db: Session, name: str) -> KpiReportResponse:
    try:
        definition = get_report_definition(name)
    except UnknownReportError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Report not found.") from None

    rows = build_report(definition.name, load_report_context(db))
    return KpiReportResponse(
        report=definition.name,
        title=definition.title,
        generated_at=datetime.now(timezone.utc),
        row_count=len(rows),
        columns=definition.columns,
        rows=rows_as_dicts(rows),
    )


@router.get("/kpis", response_model=List[KpiReportListItem])
def list_kpi_reports() -> List[KpiReportListItem]:
    return [
        KpiReportListItem(name=definition.name, title=definition.title, columns=definition.columns)
        for definition in REPORTS.values()
    ]


@router.get("/kpis/{name}", response_model=KpiReportResponse)
def read_kpi_report(name: str, db: Session = Depends(get_db)) -> KpiReportResponse:
    return _build_response(db, name)


@router.get("/kpis/{name}/export")
def export_kpi_report(name: str, db: Session = Depends(get_db)) -> StreamingResponse:
    report = _build_response(db, name)

    buffer = StringIO()
    writer = csv.DictWriter(buffer, fieldnames=report.columns, extrasaction="ignore")
    writer.writeheader()
    for row in report.rows:
        writer.writerow({column: row.get(column) for column in report.columns})

    buffer.seek(0)
    content = buffer.getvalue()
    prefix = get_settings().report_export_filename_prefix.strip() or "steps"
    sanitized = "".join(ch if ch.isalnum() or ch in {"_", "-"} else "_" for ch in f"{prefix}_{report.report}")
    filename = f"{sanitized.lower()}.csv"

    headers = {
        "Content-Disposition": f"attachment; filename={filename}",
        "Cache-Control": "no-store",
    }

    return StreamingResponse(iter([content]), media_type="text/csv", headers=headers)
