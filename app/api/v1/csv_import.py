"""
CSV Import API Router - metadata enrichment

- POST /imports/csv/validate   step=format | exist
- POST /imports/csv            commit a validated file
- GET  /imports/csv/{job_id}   commit progress
"""

import json
import logging
from typing import Optional, Union

from fastapi import APIRouter, File, Form, UploadFile

from app.api.deps import ClientIP, CsvImportServiceDep, Operator
from app.core.exceptions import ValidationError
from app.models.import_job import ImportProgress
from app.models.schemas import (
    CsvImportStartResponse,
    ExistenceValidationResult,
    FormatValidationResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports/csv", tags=["CSV Import"])


async def _read_csv(file: UploadFile) -> str:
    if not file.filename or not file.filename.lower().endswith(".csv"):
        raise ValidationError("Only CSV files are supported")
    raw = await file.read()
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ValidationError(f"CSV file must be UTF-8 encoded: {e}") from e


def _parse_archive_nos(value: str) -> list[str]:
    try:
        archive_nos = json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(f"archive_nos must be a JSON list: {e}") from e
    if not isinstance(archive_nos, list) or not all(isinstance(a, str) for a in archive_nos):
        raise ValidationError("archive_nos must be a JSON list of strings")
    return archive_nos


@router.post("/validate", response_model=Union[FormatValidationResult, ExistenceValidationResult])
async def validate_csv(
    service: CsvImportServiceDep,
    file: Optional[UploadFile] = File(None, description="CSV file (step=format)"),
    step: str = Form("format", description="format | exist"),
    archive_nos: Optional[str] = Form(None, description="JSON list of archive numbers (step=exist)"),
):
    """
    Two-step validation.

    step=format checks the file for empty and duplicate archive numbers;
    step=exist checks that the given archive numbers are already stored.
    """
    if step == "format":
        if file is None:
            raise ValidationError("A CSV file is required for format validation")
        return service.validate_format(await _read_csv(file))

    if step == "exist":
        if archive_nos is None:
            raise ValidationError("archive_nos is required for existence validation")
        return service.validate_existence(_parse_archive_nos(archive_nos))

    raise ValidationError(f"Unknown validation step: {step}")


@router.post("", response_model=CsvImportStartResponse, status_code=202)
async def start_csv_import(
    service: CsvImportServiceDep,
    operator: Operator,
    client_ip: ClientIP,
    file: UploadFile = File(..., description="Validated CSV file"),
):
    """Re-validate and commit a CSV batch in the background."""
    text = await _read_csv(file)
    job = service.start_commit(text, file.filename, operator, client_ip)
    return CsvImportStartResponse(
        import_job_id=job.id,
        message=f"Started processing {job.total} archive records",
    )


@router.get("/{job_id}", response_model=ImportProgress)
async def get_csv_import_progress(job_id: str, service: CsvImportServiceDep):
    return service.get_progress(job_id)
