"""
Import Job Repository - progress and status tracking for import jobs.

Workers move jobs forward only (pending -> processing -> terminal).
Cancellation is an out-of-band flag: once a job is cancelled, later
worker writes to its status are dropped.
"""

import logging
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.orm import sessionmaker

from app.models.database import ImportJobModel
from app.models.import_job import JobStatus, JobType, can_transition

logger = logging.getLogger(__name__)


class ImportJobRepository:
    """Repository for import_jobs."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from app.core.database import get_shared_session_factory
            session_factory = get_shared_session_factory()
        self._session_factory = session_factory

    def create(
        self,
        job_type: JobType,
        operator: str,
        total: int,
        file_name: Optional[str] = None,
    ) -> ImportJobModel:
        job = ImportJobModel(
            job_type=job_type.value,
            operator=operator,
            total=total,
            file_name=file_name,
            status=JobStatus.PENDING.value,
        )
        with self._session_factory.begin() as session:
            session.add(job)
        return job

    def get(self, job_id: str) -> Optional[ImportJobModel]:
        with self._session_factory() as session:
            return session.get(ImportJobModel, job_id)

    def transition(self, job_id: str, status: JobStatus, **fields) -> bool:
        """
        Move a job to a new status and update counters in one transaction.

        Returns False (and writes nothing) when the job is missing, already
        cancelled, or the move would go backwards.
        """
        with self._session_factory.begin() as session:
            job = session.get(ImportJobModel, job_id, with_for_update=True)
            if job is None:
                logger.error(f"Import job not found: {job_id}")
                return False

            current = JobStatus(job.status)
            if not can_transition(current, status):
                if current == JobStatus.CANCELLED:
                    logger.info(f"Import job {job_id} was cancelled, dropping {status.value} update")
                else:
                    logger.warning(f"Import job {job_id}: refusing {current.value} -> {status.value}")
                return False

            job.status = status.value
            for name, value in fields.items():
                setattr(job, name, value)
        return True

    def cancel(self, job_id: str) -> Optional[ImportJobModel]:
        """Set the advisory cancel flag. In-flight work is not interrupted."""
        with self._session_factory.begin() as session:
            job = session.get(ImportJobModel, job_id, with_for_update=True)
            if job is None:
                return None
            job.status = JobStatus.CANCELLED.value
        return job

    def list_history(
        self,
        page: int,
        page_size: int,
        status: Optional[str] = None,
        operator: Optional[str] = None,
    ) -> Tuple[List[ImportJobModel], int]:
        conditions = []
        if status:
            conditions.append(ImportJobModel.status == status)
        if operator:
            conditions.append(ImportJobModel.operator == operator)

        with self._session_factory() as session:
            total = session.scalar(
                select(func.count()).select_from(ImportJobModel).where(*conditions)
            ) or 0
            items = list(session.scalars(
                select(ImportJobModel)
                .where(*conditions)
                .order_by(ImportJobModel.created_at.desc(), ImportJobModel.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ))
        return items, total

    def list_active(self) -> List[ImportJobModel]:
        """Pending and processing jobs, newest first."""
        with self._session_factory() as session:
            return list(session.scalars(
                select(ImportJobModel)
                .where(ImportJobModel.status.in_([JobStatus.PENDING.value, JobStatus.PROCESSING.value]))
                .order_by(ImportJobModel.created_at.desc(), ImportJobModel.id.desc())
            ))

    def count_by_status(self, status: JobStatus) -> int:
        with self._session_factory() as session:
            return session.scalar(
                select(func.count()).select_from(ImportJobModel).where(ImportJobModel.status == status.value)
            ) or 0


# =============================================================================
# SINGLETON
# =============================================================================

_import_job_repository: Optional[ImportJobRepository] = None


def get_import_job_repository() -> ImportJobRepository:
    """Get or create ImportJobRepository singleton."""
    global _import_job_repository
    if _import_job_repository is None:
        _import_job_repository = ImportJobRepository()
    return _import_job_repository
