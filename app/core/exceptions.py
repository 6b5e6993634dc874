"""
Exception taxonomy for the ingestion and search pipeline.

Per-item failures (duplicate keys, copy errors, indexing errors) are
recorded on the job that hit them. Batch-level failures (ValidationError,
NotFoundError during CSV validation) block the whole commit and are
returned to the caller with structured details.
"""
from typing import Any, Optional


class ArchiveServiceError(Exception):
    """Base class for all service errors."""

    error_code = "service_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class DuplicateKeyError(ArchiveServiceError):
    """An archive with the same archive number already exists (a skip, not a failure)."""

    error_code = "duplicate_key"
    status_code = 409

    def __init__(self, archive_no: str):
        super().__init__(f"Archive number already exists: {archive_no}")
        self.archive_no = archive_no


class ValidationError(ArchiveServiceError):
    """Malformed CSV, or empty/duplicate archive numbers."""

    error_code = "validation_error"
    status_code = 400


class NotFoundError(ArchiveServiceError):
    """A referenced job or archive number does not exist."""

    error_code = "not_found"
    status_code = 404


class FolderScanError(ArchiveServiceError):
    """A source folder could not be listed."""

    error_code = "folder_scan_error"
    status_code = 400


class CopyFailure(ArchiveServiceError):
    """Every copy strategy failed for a file."""

    error_code = "copy_failure"


class SearchEngineError(ArchiveServiceError):
    """The search engine rejected or failed a write/read call."""

    error_code = "search_engine_error"
    status_code = 502


class EngineUnavailable(SearchEngineError):
    """The search engine health probe failed."""

    error_code = "engine_unavailable"
    status_code = 503
