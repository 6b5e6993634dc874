"""
Import Service - bulk PDF ingestion into managed storage.

Pipeline per file (under one limiter permit):
    dedupe by archive number -> copy into storage -> skeleton record -> audit

Skeleton records are deliberately NOT indexed for search here: their
descriptive fields are empty until CSV enrichment fills them.
"""

import asyncio
import logging
import math
import os
import re
from typing import Coroutine, List, Optional, Set

from app.cache.config_cache import ConfigCache
from app.core.config import settings
from app.core.exceptions import CopyFailure, DuplicateKeyError, FolderScanError, NotFoundError
from app.models.database import ImportJobModel, new_id
from app.models.import_job import (
    ImportHistoryResponse,
    ImportJobResponse,
    JobStatus,
    JobType,
)
from app.models.schemas import ImportConfigResponse, PdfFile
from app.repositories.archive_repository import ArchiveRepository, get_archive_repository
from app.repositories.import_job_repository import ImportJobRepository, get_import_job_repository
from app.services.audit_service import AuditService, get_audit_service
from app.services.concurrency_limiter import ConcurrencyLimiter
from app.services.file_copier import FileCopier

logger = logging.getLogger(__name__)

SKIP_REASON_EXISTS = "archive number already exists"

CONCURRENCY_KEY = "import.concurrency"
STORAGE_PATH_KEY = "import.storage_path"

_PDF_SUFFIX = re.compile(r"\.pdf$", re.IGNORECASE)


def derive_archive_no(file_name: str) -> str:
    """Archive number is the file name without its .pdf extension."""
    return _PDF_SUFFIX.sub("", file_name)


class ImportService:
    """
    Runs PDF ingestion batches with bounded concurrency.

    All jobs of a batch are created before any file is processed, so
    callers can poll every job id as soon as start_import returns.
    """

    def __init__(
        self,
        archive_repo: Optional[ArchiveRepository] = None,
        job_repo: Optional[ImportJobRepository] = None,
        audit: Optional[AuditService] = None,
        copier: Optional[FileCopier] = None,
        limiter: Optional[ConcurrencyLimiter] = None,
        config_cache: Optional[ConfigCache] = None,
        storage_path: Optional[str] = None,
        url_prefix: Optional[str] = None,
    ):
        self._archive_repo = archive_repo or get_archive_repository()
        self._job_repo = job_repo or get_import_job_repository()
        self._audit = audit or get_audit_service()
        self._copier = copier or FileCopier()
        self._limiter = limiter or ConcurrencyLimiter(settings.import_concurrency)
        self._config_cache = config_cache or ConfigCache(default_ttl=settings.config_cache_ttl_seconds)
        self._storage_path = storage_path or settings.pdf_storage_path
        self._url_prefix = (url_prefix or settings.pdf_url_prefix).rstrip("/")
        self._tasks: Set[asyncio.Task] = set()

        self._config_cache.bulk_load(
            {CONCURRENCY_KEY: self._limiter.capacity, STORAGE_PATH_KEY: self._storage_path},
            ttl=math.inf,
        )

    @property
    def limiter(self) -> ConcurrencyLimiter:
        return self._limiter

    # =========================================================================
    # BATCH SUBMISSION
    # =========================================================================

    async def scan_folder(self, folder_path: str) -> List[PdfFile]:
        """List PDF files (case-insensitive extension) in a server folder."""
        def _scan() -> List[PdfFile]:
            found = []
            with os.scandir(folder_path) as entries:
                for entry in entries:
                    if entry.is_file() and entry.name.lower().endswith(".pdf"):
                        found.append(PdfFile(name=entry.name, path=entry.path, size=entry.stat().st_size))
            return sorted(found, key=lambda f: f.name)

        try:
            return await asyncio.to_thread(_scan)
        except OSError as e:
            logger.error(f"[IMPORT] Error scanning folder {folder_path}: {e}")
            raise FolderScanError(f"Failed to scan folder: {e}") from e

    async def start_import(
        self,
        files: List[PdfFile],
        operator: str,
        client_ip: str = "",
    ) -> List[ImportJobModel]:
        """
        Create one pending job per file, then schedule processing.

        Returns the created jobs immediately; progress is tracked by polling.
        """
        scheduled = []
        for file in files:
            try:
                job = self._job_repo.create(JobType.PDF, operator, total=1, file_name=file.name)
            except Exception as e:
                logger.error(f"[IMPORT] Error creating import job for {file.name}: {e}")
                continue
            scheduled.append((job, file))

        for job, file in scheduled:
            self._schedule(self._process_with_permit(job.id, file, operator, client_ip))

        self._audit.record(operator, "import_batch", f"Batch import of {len(files)} files", client_ip)
        logger.info(
            f"[IMPORT] Batch of {len(scheduled)}/{len(files)} files scheduled by {operator} "
            f"(concurrency={self._limiter.capacity})"
        )
        return [job for job, _ in scheduled]

    def _schedule(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _process_with_permit(self, job_id: str, file: PdfFile, operator: str, client_ip: str) -> None:
        try:
            async with self._limiter.permit():
                await self.process_file(job_id, file, operator, client_ip)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"[IMPORT] Error processing file {file.name}: {e}")

    async def drain(self) -> None:
        """Wait for every scheduled ingestion task to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # PER-FILE PIPELINE
    # =========================================================================

    async def process_file(
        self,
        job_id: str,
        file: PdfFile,
        operator: str,
        client_ip: str = "",
    ) -> JobStatus:
        """
        Process a single PDF file. Never raises; the outcome is written to the job.

        Returns the job's resulting status.
        """
        if not self._job_repo.transition(job_id, JobStatus.PROCESSING):
            return self._current_status(job_id)

        archive_no = derive_archive_no(file.name)

        try:
            if self._archive_repo.exists(archive_no):
                return self._mark_skipped(job_id, file, archive_no, operator, client_ip)

            archive_id = new_id()
            await asyncio.to_thread(os.makedirs, self._storage_path, exist_ok=True)
            dest_path = os.path.join(self._storage_path, f"{archive_id}.pdf")

            try:
                result = await self._copier.copy(file.path, dest_path, file.size)
            except CopyFailure as e:
                return self._mark_failed(job_id, file, archive_no, str(e), operator, client_ip)

            try:
                archive = self._archive_repo.create_skeleton(
                    archive_id=archive_id,
                    archive_no=archive_no,
                    file_url=f"{self._url_prefix}/{archive_id}.pdf",
                    import_job_id=job_id,
                )
            except DuplicateKeyError:
                # Another worker took the key while we were copying
                await asyncio.to_thread(self._remove_quietly, dest_path)
                return self._mark_skipped(job_id, file, archive_no, operator, client_ip)

            status = self._finish(job_id, JobStatus.COMPLETED, processed=1, archive_id=archive.id)
            self._audit.record(operator, "import", f"PDF import: {archive_no}", client_ip, archive_id=archive.id)
            logger.info(f"[IMPORT] Imported {file.name} as {archive_no} via {result.strategy.value}")
            return status

        except Exception as e:
            logger.error(f"[IMPORT] Error processing import job {job_id}: {e}")
            return self._mark_failed(job_id, file, archive_no, str(e), operator, client_ip)

    def _mark_skipped(self, job_id: str, file: PdfFile, archive_no: str, operator: str, client_ip: str) -> JobStatus:
        status = self._finish(
            job_id,
            JobStatus.SKIPPED,
            processed=1,
            skipped=1,
            errors=[{"archive_no": archive_no, "reason": SKIP_REASON_EXISTS}],
        )
        self._audit.record(
            operator, "import_skipped", f"PDF import skipped: {archive_no} ({SKIP_REASON_EXISTS})", client_ip
        )
        logger.warning(f"[IMPORT] Skipped existing archive number: {archive_no}")
        return status

    def _mark_failed(
        self, job_id: str, file: PdfFile, archive_no: str, reason: str, operator: str, client_ip: str
    ) -> JobStatus:
        try:
            status = self._finish(
                job_id,
                JobStatus.FAILED,
                processed=1,
                failed=1,
                errors=[{"archive_no": archive_no, "reason": reason}],
            )
        except Exception as e:
            logger.error(f"[IMPORT] Could not mark job {job_id} failed: {e}")
            status = JobStatus.FAILED
        self._audit.record(operator, "import_failed", f"PDF import failed: {file.name}", client_ip)
        return status

    def _finish(self, job_id: str, status: JobStatus, **fields) -> JobStatus:
        if self._job_repo.transition(job_id, status, **fields):
            return status
        return self._current_status(job_id)

    def _current_status(self, job_id: str) -> JobStatus:
        job = self._job_repo.get(job_id)
        return JobStatus(job.status) if job else JobStatus.FAILED

    @staticmethod
    def _remove_quietly(path: str) -> None:
        try:
            os.remove(path)
        except OSError as e:
            logger.warning(f"[IMPORT] Could not remove orphaned copy {path}: {e}")

    # =========================================================================
    # POLLING / HISTORY / CANCEL
    # =========================================================================

    def get_job(self, job_id: str) -> ImportJobResponse:
        job = self._job_repo.get(job_id)
        if job is None:
            raise NotFoundError(f"Import job not found: {job_id}")
        return ImportJobResponse.from_model(job)

    def cancel_import(self, job_id: str, operator: str, client_ip: str = "") -> ImportJobResponse:
        """
        Flag a job as cancelled.

        Advisory only: in-flight copy or database work for the job is not
        interrupted, but the worker's final status write is dropped.
        """
        job = self._job_repo.cancel(job_id)
        if job is None:
            raise NotFoundError(f"Import job not found: {job_id}")
        self._audit.record(operator, "cancel_import", f"Cancelled import job {job_id}", client_ip)
        return ImportJobResponse.from_model(job)

    def get_history(
        self,
        page: int = 1,
        page_size: int = 20,
        status: Optional[str] = None,
        operator: Optional[str] = None,
    ) -> ImportHistoryResponse:
        items, total = self._job_repo.list_history(page, page_size, status=status, operator=operator)
        return ImportHistoryResponse(
            items=[ImportJobResponse.from_model(job) for job in items],
            total=total,
            total_pages=math.ceil(total / page_size) if page_size else 0,
        )

    def get_active_imports(self) -> List[ImportJobResponse]:
        return [ImportJobResponse.from_model(job) for job in self._job_repo.list_active()]

    # =========================================================================
    # RUNTIME CONFIG
    # =========================================================================

    def set_concurrency(self, concurrency: int) -> ImportConfigResponse:
        applied = self._limiter.set_capacity(concurrency)
        self._config_cache.set(CONCURRENCY_KEY, applied, ttl=math.inf)
        logger.info(f"[IMPORT] Import concurrency set to: {applied}")
        return self.get_import_config()

    def get_import_config(self) -> ImportConfigResponse:
        return ImportConfigResponse(
            concurrency=self._config_cache.get(CONCURRENCY_KEY, self._limiter.capacity),
            storage_path=self._config_cache.get(STORAGE_PATH_KEY, self._storage_path),
        )


# =============================================================================
# SINGLETON
# =============================================================================

_import_service: Optional[ImportService] = None


def get_import_service() -> ImportService:
    """Get or create import service singleton."""
    global _import_service
    if _import_service is None:
        _import_service = ImportService()
    return _import_service
