"""
SQLAlchemy database models for the Archive Ingestion Service.

Defines archives, import jobs and the operation (audit) log.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Surrogate id used for archives, jobs and log entries."""
    return uuid4().hex


# ============================================================================
# ARCHIVES
# ============================================================================

class ArchiveModel(Base):
    """
    SQLAlchemy model for archive records.

    A record created by PDF ingestion is a skeleton: only archive_no and
    file_url are set. CSV enrichment fills the descriptive fields later.
    """
    __tablename__ = "archives"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    archive_no: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    fonds_no: Mapped[str] = mapped_column(String(100), default="")
    retention_period: Mapped[str] = mapped_column(String(50), default="")
    retention_code: Mapped[str] = mapped_column(String(50), default="")
    year: Mapped[str] = mapped_column(String(20), default="", index=True)
    dept_code: Mapped[str] = mapped_column(String(100), default="")
    box_no: Mapped[str] = mapped_column(String(50), default="")
    piece_no: Mapped[str] = mapped_column(String(50), default="")
    title: Mapped[str] = mapped_column(Text, default="")
    dept_issue: Mapped[str] = mapped_column(String(255), default="")
    responsible: Mapped[str] = mapped_column(String(255), default="")
    doc_no: Mapped[str] = mapped_column(String(255), default="")
    date: Mapped[str] = mapped_column(String(50), default="")
    page_no: Mapped[str] = mapped_column(String(50), default="")
    remark: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    file_url: Mapped[str] = mapped_column(String(500), nullable=False)
    import_job_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )


# Descriptive fields written by CSV enrichment (everything except identity/file pointer)
ARCHIVE_METADATA_FIELDS = (
    "fonds_no",
    "retention_period",
    "retention_code",
    "year",
    "dept_code",
    "box_no",
    "piece_no",
    "title",
    "dept_issue",
    "responsible",
    "doc_no",
    "date",
    "page_no",
    "remark",
)


# ============================================================================
# IMPORT JOBS
# ============================================================================

class ImportJobModel(Base):
    """
    SQLAlchemy model for import_jobs table.

    One row per ingested PDF file, or one per CSV batch.
    """
    __tablename__ = "import_jobs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    job_type: Mapped[str] = mapped_column(String(10), nullable=False, default="pdf")
    file_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    operator: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    total: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skipped: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    errors: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    archive_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, index=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=_utc_now, onupdate=_utc_now
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed', 'skipped', 'cancelled')",
            name="check_import_status",
        ),
        CheckConstraint("processed <= total", name="check_processed_le_total"),
        CheckConstraint("failed + skipped <= processed", name="check_failed_skipped_le_processed"),
    )


# ============================================================================
# OPERATION LOG
# ============================================================================

class OperationLogModel(Base):
    """Audit trail: one row per state-changing step."""
    __tablename__ = "operation_logs"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    operator: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    operation: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    target: Mapped[str] = mapped_column(Text, nullable=False)
    ip: Mapped[str] = mapped_column(String(64), default="")
    archive_id: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utc_now, index=True)
