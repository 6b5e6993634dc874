"""
Import API Router - bulk PDF ingestion

Endpoints:
- POST /imports/scan            list PDFs in a server folder
- POST /imports                 start a batch (one job per file)
- GET  /imports                 paginated history
- GET  /imports/active          pending + processing jobs
- GET  /imports/config          runtime import config
- PUT  /imports/config          change concurrency at runtime
- GET  /imports/{job_id}        poll one job
- POST /imports/{job_id}/cancel advisory cancel
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Query

from app.api.deps import ClientIP, ImportServiceDep, Operator
from app.models.import_job import ImportHistoryResponse, ImportJobResponse
from app.models.schemas import (
    ConcurrencyUpdateRequest,
    ImportConfigResponse,
    PdfFile,
    ScanFolderRequest,
    StartImportRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/imports", tags=["Imports"])


@router.post("/scan", response_model=List[PdfFile])
async def scan_folder(request: ScanFolderRequest, service: ImportServiceDep):
    """List PDF files in a server-side folder."""
    return await service.scan_folder(request.folder_path)


@router.post("", response_model=List[ImportJobResponse], status_code=202)
async def start_import(
    request: StartImportRequest,
    service: ImportServiceDep,
    operator: Operator,
    client_ip: ClientIP,
):
    """
    Start ingesting a batch of PDF files.

    Returns immediately with one pending job per file; poll
    GET /imports/{job_id} for progress.
    """
    jobs = await service.start_import(request.files, operator, client_ip)
    return [ImportJobResponse.from_model(job) for job in jobs]


@router.get("", response_model=ImportHistoryResponse)
async def get_import_history(
    service: ImportServiceDep,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status: Optional[str] = Query(None, description="Filter by job status"),
    operator: Optional[str] = Query(None, description="Filter by operator"),
):
    return service.get_history(page=page, page_size=page_size, status=status, operator=operator)


@router.get("/active", response_model=List[ImportJobResponse])
async def get_active_imports(service: ImportServiceDep):
    return service.get_active_imports()


@router.get("/config", response_model=ImportConfigResponse)
async def get_import_config(service: ImportServiceDep):
    return service.get_import_config()


@router.put("/config", response_model=ImportConfigResponse)
async def update_import_config(request: ConcurrencyUpdateRequest, service: ImportServiceDep):
    """Change import concurrency; takes effect for permits granted from now on."""
    return service.set_concurrency(request.concurrency)


@router.get("/{job_id}", response_model=ImportJobResponse)
async def get_import_job(job_id: str, service: ImportServiceDep):
    return service.get_job(job_id)


@router.post("/{job_id}/cancel", response_model=ImportJobResponse)
async def cancel_import(job_id: str, service: ImportServiceDep, operator: Operator, client_ip: ClientIP):
    """Flag a job as cancelled. In-flight work for it is not interrupted."""
    return service.cancel_import(job_id, operator, client_ip)
