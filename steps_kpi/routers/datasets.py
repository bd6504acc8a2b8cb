from __future__ import annotations

import io
import logging
from typing import List

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from sqlalchemy.orm import Session

from steps_kpi.config import get_settings
from steps_kpi.database import get_db
from steps_kpi.schemas.entities import DatasetKind, DatasetUploadResponse, StoreIssueResponse
from steps_kpi.services.dataset_loader import (
    DatasetLoadError,
    DatasetValidationError,
    load_dataset,
    read_dataset_csv,
)
from steps_kpi.services.report_context import load_report_context
from steps_kpi.services.store_checks import check_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/datasets", tags=["Datasets"])


async def _read_upload_text(file: UploadFile) -> str:
    limit = get_settings().max_upload_bytes
    data = await file.read(limit + 1)
    await file.close()
    if len(data) > limit:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"Uploaded file exceeds {limit} bytes.",
        )
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="File must be UTF-8 encoded CSV.") from exc


@router.post("/{kind}/upload", response_model=DatasetUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_dataset(
    kind: DatasetKind,
    file: UploadFile = File(...),
    replace: bool = Form(False),
    db: Session = Depends(get_db),
) -> DatasetUploadResponse:
    text = await _read_upload_text(file)
    try:
        rows = read_dataset_csv(kind, io.StringIO(text, newline=""))
    except DatasetValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"message": str(exc), "errors": [error.model_dump() for error in exc.errors]},
        ) from exc

    try:
        loaded = load_dataset(db, {kind: rows}, replace=replace)
    except DatasetLoadError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    logger.info("Uploaded %d %s rows (replace=%s)", loaded.get(kind, 0), kind.value, replace)
    return DatasetUploadResponse(kind=kind, rows_loaded=loaded.get(kind, 0), replaced=replace)


@router.get("/checks", response_model=List[StoreIssueResponse])
def read_store_checks(db: Session = Depends(get_db)) -> List[StoreIssueResponse]:
    issues = check_store(load_report_context(db))
    return [StoreIssueResponse(table=issue.table, key=issue.key, code=issue.code, message=issue.message) for issue in issues]
