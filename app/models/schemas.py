"""
Pydantic Schemas for API Request/Response
"""
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utc_now() -> datetime:
    """Get current UTC time (timezone-aware)"""
    return datetime.now(timezone.utc)


class ComponentStatus(str, Enum):
    """Status of a system component"""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNAVAILABLE = "unavailable"


# =============================================================================
# PDF Ingestion Schemas
# =============================================================================

class PdfFile(BaseModel):
    """A PDF file on the server, ready to be ingested."""
    name: str = Field(..., description="Original file name")
    path: str = Field(..., description="Full server-side path")
    size: int = Field(..., ge=0, description="File size in bytes")


class ScanFolderRequest(BaseModel):
    """Request to list PDF files in a server folder"""
    folder_path: str = Field(..., min_length=1, description="Folder to scan")


class StartImportRequest(BaseModel):
    """Request to ingest a batch of PDF files"""
    files: List[PdfFile] = Field(..., min_length=1, description="Files to ingest")


class ImportConfigResponse(BaseModel):
    """Runtime import configuration"""
    concurrency: int
    storage_path: str


class ConcurrencyUpdateRequest(BaseModel):
    """Request to change import concurrency at runtime"""
    concurrency: int = Field(..., ge=1, le=10)


# =============================================================================
# CSV Enrichment Schemas
# =============================================================================

class EmptyArchiveNo(BaseModel):
    """A CSV row with no archive number"""
    row: int = Field(..., description="1-based row number (header is row 1)")
    index: int = Field(..., description="0-based data row index")


class DuplicateArchiveNo(BaseModel):
    """An archive number repeated across CSV rows"""
    archive_no: str
    rows: List[int]


class FormatValidationResult(BaseModel):
    """Step 1: CSV format validation"""
    success: bool
    step: str = "format"
    total_records: int
    archive_nos: List[str] = Field(default_factory=list)
    empty_archive_nos: List[EmptyArchiveNo] = Field(default_factory=list)
    duplicate_archive_nos: List[DuplicateArchiveNo] = Field(default_factory=list)
    error: Optional[str] = None


class ExistenceValidationResult(BaseModel):
    """Step 2: archive numbers must already exist in the store"""
    success: bool
    step: str = "exist"
    total: int
    exist_count: int
    not_exist_count: int
    not_exist_archive_nos: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class CsvImportStartResponse(BaseModel):
    """Response after a CSV batch is accepted for commit"""
    success: bool = True
    import_job_id: str
    message: str


# =============================================================================
# Search Schemas
# =============================================================================

class ArchiveOut(BaseModel):
    """Archive record as returned by search"""
    model_config = ConfigDict(from_attributes=True)

    id: str
    archive_no: str
    fonds_no: str = ""
    retention_period: str = ""
    retention_code: str = ""
    year: str = ""
    dept_code: str = ""
    box_no: str = ""
    piece_no: str = ""
    title: str = ""
    dept_issue: str = ""
    responsible: str = ""
    doc_no: str = ""
    date: str = ""
    page_no: str = ""
    remark: Optional[str] = None
    file_url: str
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    """Pagination metadata"""
    page: int
    limit: int
    total: int
    total_pages: int


class SearchSource(str, Enum):
    """Which path served a search"""
    ENGINE = "engine"
    FALLBACK = "fallback"


class SearchResponse(BaseModel):
    """Identical response shape for engine-backed and fallback search"""
    results: List[ArchiveOut]
    pagination: Pagination
    query: str
    processing_time_ms: int
    source: SearchSource


class SearchQuery(BaseModel):
    """Validated search parameters"""
    q: str = Field(..., min_length=1, max_length=500)
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @field_validator("q")
    @classmethod
    def strip_query(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Search query must not be empty")
        return v


class IndexResult(BaseModel):
    """Result of indexing or deleting a single document"""
    success: bool
    error: Optional[str] = None


class BatchIndexResult(BaseModel):
    """Aggregated result of batch indexing"""
    success: bool
    indexed: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


class IndexInitResponse(BaseModel):
    """Result of building the index from the store"""
    success: bool
    indexed: int = 0
    error: Optional[str] = None


class SearchStats(BaseModel):
    """Search index statistics"""
    number_of_documents: Optional[int] = None
    is_indexing: Optional[bool] = None
    field_distribution: Optional[dict[str, int]] = None
    last_update: Optional[str] = None


# =============================================================================
# Health Check Schemas
# =============================================================================

class ComponentHealth(BaseModel):
    """Health status of a single component"""
    name: str = Field(..., description="Component name")
    status: ComponentStatus = Field(..., description="Component status")
    latency_ms: Optional[float] = Field(default=None, description="Response latency in ms")
    message: Optional[str] = Field(default=None, description="Status message or error")


class HealthResponse(BaseModel):
    """Health check response"""
    status: str = Field(..., description="Overall system status")
    version: str = Field(..., description="Application version")
    environment: str = Field(..., description="Current environment")
    components: dict[str, ComponentHealth] = Field(
        ...,
        description="Status of all components: API, Database, Search Engine"
    )
    timestamp: datetime = Field(default_factory=utc_now, description="Check timestamp")


# =============================================================================
# Error Response Schemas
# =============================================================================

class ErrorDetail(BaseModel):
    """Detail of a validation or processing error"""
    field: Optional[str] = Field(default=None, description="Field that caused the error")
    message: str = Field(..., description="Error message")
    code: Optional[str] = Field(default=None, description="Error code")


class ErrorResponse(BaseModel):
    """Standard error response format"""
    error: str = Field(..., description="Error type")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[list[ErrorDetail] | dict] = Field(default=None, description="Error details")
    request_id: Optional[str] = Field(default=None, description="Request ID for tracking")
    timestamp: datetime = Field(default_factory=utc_now, description="Error timestamp")


class RateLimitResponse(BaseModel):
    """Rate limit exceeded response"""
    error: str = Field(default="rate_limited", description="Error type")
    message: str = Field(default="Rate limit exceeded", description="Error message")
    retry_after: int = Field(..., description="Seconds until rate limit resets")
