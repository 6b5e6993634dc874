"""
CSV Import Service - two-phase validated metadata enrichment.

Phase 1 (format): every row has an archive number and none repeats.
Phase 2 (exist): every archive number already exists in the store.

Only a batch that passes both phases is committed. The commit runs in the
background, one row at a time, with per-row error isolation.
"""

import asyncio
import logging
from collections import OrderedDict
from typing import Dict, Iterable, List, Optional, Set

from app.core.exceptions import NotFoundError, ValidationError
from app.models.database import ImportJobModel
from app.models.import_job import ImportProgress, JobStatus, JobType
from app.models.schemas import (
    DuplicateArchiveNo,
    EmptyArchiveNo,
    ExistenceValidationResult,
    FormatValidationResult,
)
from app.repositories.archive_repository import ArchiveRepository, get_archive_repository
from app.repositories.import_job_repository import ImportJobRepository, get_import_job_repository
from app.services.audit_service import AuditService, get_audit_service
from app.services.background_tasks import IndexingQueue, get_indexing_queue
from app.services.csv_parser import build_field_columns, find_key_column, parse_csv, row_to_fields

logger = logging.getLogger(__name__)


class CsvImportService:
    """Validate and commit CSV enrichment batches."""

    def __init__(
        self,
        archive_repo: Optional[ArchiveRepository] = None,
        job_repo: Optional[ImportJobRepository] = None,
        audit: Optional[AuditService] = None,
        indexing_queue: Optional[IndexingQueue] = None,
    ):
        self._archive_repo = archive_repo or get_archive_repository()
        self._job_repo = job_repo or get_import_job_repository()
        self._audit = audit or get_audit_service()
        self._indexing_queue = indexing_queue
        self._tasks: Set[asyncio.Task] = set()

    def _get_indexing_queue(self) -> IndexingQueue:
        if self._indexing_queue is None:
            self._indexing_queue = get_indexing_queue()
        return self._indexing_queue

    # =========================================================================
    # VALIDATION
    # =========================================================================

    def validate_format(self, text: str) -> FormatValidationResult:
        """
        Phase 1: key column present, no empty and no duplicate archive numbers.

        Raises:
            ValidationError: if the CSV cannot be parsed at all
        """
        headers, rows = parse_csv(text)
        key_column = find_key_column(headers)

        archive_nos: List[str] = []
        empty: List[EmptyArchiveNo] = []
        rows_by_key: Dict[str, List[int]] = OrderedDict()

        for index, row in enumerate(rows):
            row_number = index + 2
            archive_no = row[key_column] if key_column < len(row) else ""
            if not archive_no:
                empty.append(EmptyArchiveNo(row=row_number, index=index))
                continue
            archive_nos.append(archive_no)
            rows_by_key.setdefault(archive_no, []).append(row_number)

        duplicates = [
            DuplicateArchiveNo(archive_no=archive_no, rows=row_numbers)
            for archive_no, row_numbers in rows_by_key.items()
            if len(row_numbers) > 1
        ]

        error = None
        if empty or duplicates:
            problems = []
            if empty:
                problems.append(f"{len(empty)} rows with empty archive number")
            if duplicates:
                problems.append(f"{len(duplicates)} duplicate archive numbers")
            error = "CSV format validation failed: " + ", ".join(problems)

        return FormatValidationResult(
            success=error is None,
            total_records=len(rows),
            archive_nos=archive_nos,
            empty_archive_nos=empty,
            duplicate_archive_nos=duplicates,
            error=error,
        )

    def validate_existence(self, archive_nos: Iterable[str]) -> ExistenceValidationResult:
        """Phase 2: every archive number must already exist."""
        archive_nos = list(archive_nos)
        existing = self._archive_repo.find_existing_archive_nos(archive_nos)
        missing = [archive_no for archive_no in archive_nos if archive_no not in existing]

        return ExistenceValidationResult(
            success=not missing,
            total=len(archive_nos),
            exist_count=len(archive_nos) - len(missing),
            not_exist_count=len(missing),
            not_exist_archive_nos=missing,
            error=f"{len(missing)} archive numbers do not exist" if missing else None,
        )

    # =========================================================================
    # COMMIT
    # =========================================================================

    def start_commit(
        self,
        text: str,
        file_name: str,
        operator: str,
        client_ip: str = "",
    ) -> ImportJobModel:
        """
        Re-validate, create the CSV job and schedule the row-by-row commit.

        Nothing is mutated unless both validation phases pass.

        Raises:
            ValidationError: format phase failed (details = FormatValidationResult)
            NotFoundError: existence phase failed (details = ExistenceValidationResult)
        """
        format_result = self.validate_format(text)
        if not format_result.success:
            raise ValidationError(format_result.error, details=format_result.model_dump())

        exist_result = self.validate_existence(format_result.archive_nos)
        if not exist_result.success:
            raise NotFoundError(exist_result.error, details=exist_result.model_dump())

        headers, rows = parse_csv(text)
        job = self._job_repo.create(JobType.CSV, operator, total=len(rows), file_name=file_name)

        self._audit.record(operator, "csv_import", f"CSV import: {file_name} ({len(rows)} records)", client_ip)

        task = asyncio.create_task(self._process_rows(job.id, headers, rows, operator, client_ip))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        logger.info(f"[CSV] Started import job {job.id}: {file_name} ({len(rows)} records)")
        return job

    async def _process_rows(
        self,
        job_id: str,
        headers: List[str],
        rows: List[List[str]],
        operator: str,
        client_ip: str,
    ) -> None:
        try:
            await self._commit_rows(job_id, headers, rows, operator, client_ip)
        except Exception as e:
            logger.error(f"[CSV] Error processing import job {job_id}: {e}")
            self._job_repo.transition(job_id, JobStatus.FAILED)

    async def _commit_rows(
        self,
        job_id: str,
        headers: List[str],
        rows: List[List[str]],
        operator: str,
        client_ip: str,
    ) -> None:
        key_column = find_key_column(headers)
        field_columns = build_field_columns(headers)
        errors: List[Dict[str, str]] = []
        succeeded = 0

        if not self._job_repo.transition(job_id, JobStatus.PROCESSING):
            return

        for index, row in enumerate(rows):
            archive_no = row[key_column] if key_column < len(row) else ""
            try:
                if not archive_no:
                    raise ValueError("archive number is empty")

                archive = self._archive_repo.update_fields(archive_no, row_to_fields(row, field_columns))
                if archive is None:
                    raise LookupError(f"archive number {archive_no} does not exist")

                self._audit.record(
                    operator,
                    "modify",
                    f"CSV update: {archive_no} - {archive.title or 'untitled'}",
                    client_ip,
                    archive_id=archive.id,
                )
                self._get_indexing_queue().enqueue(archive)
                succeeded += 1
            except Exception as e:
                errors.append({"archive_no": archive_no or "unknown", "reason": str(e)})
                logger.error(f"[CSV] Failed to update row {index + 2}: {e}")

            processed = index + 1
            if not self._job_repo.transition(
                job_id,
                JobStatus.PROCESSING,
                processed=processed,
                failed=len(errors),
            ):
                logger.info(f"[CSV] Import job {job_id} stopped after {processed} rows")
                return

            # Yield so polling requests are served between rows
            await asyncio.sleep(0)

        self._job_repo.transition(
            job_id,
            JobStatus.COMPLETED,
            processed=len(rows),
            failed=len(errors),
            errors=errors or None,
        )
        self._audit.record(
            operator,
            "csv_import_complete",
            f"CSV import complete: {succeeded} succeeded, {len(errors)} failed",
            client_ip,
        )
        logger.info(f"[CSV] Completed job {job_id}: {succeeded} succeeded, {len(errors)} failed")

    async def drain(self) -> None:
        """Wait for every scheduled commit to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # PROGRESS
    # =========================================================================

    def get_progress(self, job_id: str) -> ImportProgress:
        job = self._job_repo.get(job_id)
        if job is None or job.job_type != JobType.CSV.value:
            raise NotFoundError(f"CSV import job not found: {job_id}")
        return ImportProgress(
            status=job.status,
            total=job.total,
            processed=job.processed,
            failed=job.failed,
            skipped=job.skipped,
            errors=job.errors or [],
        )


# =============================================================================
# SINGLETON
# =============================================================================

_csv_import_service: Optional[CsvImportService] = None


def get_csv_import_service() -> CsvImportService:
    """Get or create CsvImportService singleton."""
    global _csv_import_service
    if _csv_import_service is None:
        _csv_import_service = CsvImportService()
    return _csv_import_service
