"""
Search Index Service - keeps the search engine in sync with the archive store.

Writes are best-effort: single-document indexing retries with exponential
backoff and reports failure instead of raising, so a search engine outage
never breaks ingestion or enrichment.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from app.core.config import settings
from app.models.database import ArchiveModel
from app.models.schemas import BatchIndexResult, IndexInitResponse, IndexResult, SearchStats
from app.repositories.archive_repository import ArchiveRepository, get_archive_repository
from app.services.search_client import SearchEngineClient, get_search_client

logger = logging.getLogger(__name__)

# Canonical index configuration, applied as a whole (idempotent)
CANONICAL_SETTINGS: Dict[str, Any] = {
    "searchableAttributes": [
        "title",
        "archiveNo",
        "docNo",
        "deptIssue",
        "responsible",
        "remark",
        "fondsNo",
        "retentionPeriod",
    ],
    "filterableAttributes": ["fondsNo", "retentionPeriod", "year", "deptCode"],
    "sortableAttributes": ["createdAt", "title"],
    "rankingRules": ["words", "typo", "proximity", "attribute", "sort", "exactness"],
    "typoTolerance": {
        "enabled": True,
        "minWordSizeForTypos": {"oneTypo": 4, "twoTypos": 8},
    },
}


def archive_to_document(archive: ArchiveModel) -> Dict[str, Any]:
    """Project an archive record onto the search document schema."""
    return {
        "id": archive.id,
        "archiveNo": archive.archive_no or "",
        "title": archive.title or "",
        "deptIssue": archive.dept_issue or "",
        "responsible": archive.responsible or "",
        "docNo": archive.doc_no or "",
        "remark": archive.remark,
        "fondsNo": archive.fonds_no or "",
        "retentionPeriod": archive.retention_period or "",
        "year": archive.year or "",
        "deptCode": archive.dept_code or "",
        "createdAt": archive.created_at.isoformat() if archive.created_at else None,
    }


class SearchIndexService:
    """Index writes, index configuration and bulk (re)build."""

    def __init__(
        self,
        client: Optional[SearchEngineClient] = None,
        archive_repo: Optional[ArchiveRepository] = None,
        max_retries: Optional[int] = None,
        backoff_ms: Optional[int] = None,
        batch_size: Optional[int] = None,
    ):
        self._client = client or get_search_client()
        self._archive_repo = archive_repo
        self.max_retries = max_retries or settings.search_index_max_retries
        self.backoff_ms = backoff_ms if backoff_ms is not None else settings.search_index_backoff_ms
        self.batch_size = batch_size or settings.search_index_batch_size

    def _get_archive_repo(self) -> ArchiveRepository:
        if self._archive_repo is None:
            self._archive_repo = get_archive_repository()
        return self._archive_repo

    async def index_one(self, archive: ArchiveModel) -> IndexResult:
        """
        Upsert one archive, retrying with exponential backoff.

        Never raises; returns IndexResult(success=False, error=...) once
        every attempt has failed.
        """
        document = archive_to_document(archive)
        last_error = "Max retries exceeded"

        for attempt in range(1, self.max_retries + 1):
            try:
                await self._client.update_documents([document])
                return IndexResult(success=True)
            except Exception as e:
                last_error = str(e)
                logger.warning(
                    f"[SEARCH] Index error for {archive.archive_no} "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt < self.max_retries:
                    await asyncio.sleep(self.backoff_ms * (2 ** (attempt - 1)) / 1000)

        logger.error(f"[SEARCH] Giving up indexing {archive.archive_no}: {last_error}")
        return IndexResult(success=False, error=last_error)

    async def index_many(self, archives: Sequence[ArchiveModel]) -> BatchIndexResult:
        """Index in fixed-size batches; one failed batch does not stop the rest."""
        indexed = 0
        failed = 0
        errors: List[str] = []

        for start in range(0, len(archives), self.batch_size):
            batch = archives[start:start + self.batch_size]
            batch_number = start // self.batch_size + 1
            try:
                await self._client.update_documents([archive_to_document(a) for a in batch])
                indexed += len(batch)
            except Exception as e:
                failed += len(batch)
                errors.append(f"Batch {batch_number}: {e}")
                logger.error(f"[SEARCH] Batch {batch_number} failed ({len(batch)} documents): {e}")

        return BatchIndexResult(success=failed == 0, indexed=indexed, failed=failed, errors=errors)

    async def deindex_one(self, archive_id: str) -> IndexResult:
        """Remove one document. Deleting an absent document succeeds."""
        try:
            await self._client.delete_document(archive_id)
            return IndexResult(success=True)
        except Exception as e:
            logger.error(f"[SEARCH] Delete error for {archive_id}: {e}")
            return IndexResult(success=False, error=str(e))

    async def configure_index(self) -> IndexResult:
        try:
            await self._client.update_settings(CANONICAL_SETTINGS)
            logger.info("[SEARCH] Index settings applied")
            return IndexResult(success=True)
        except Exception as e:
            logger.error(f"[SEARCH] Failed to configure index: {e}")
            return IndexResult(success=False, error=str(e))

    async def get_stats(self) -> Optional[SearchStats]:
        try:
            stats = await self._client.get_stats()
            index = await self._client.get_index()
        except Exception as e:
            logger.error(f"[SEARCH] Failed to get index stats: {e}")
            return None
        return SearchStats(
            number_of_documents=stats.get("numberOfDocuments"),
            is_indexing=stats.get("isIndexing"),
            field_distribution=stats.get("fieldDistribution"),
            last_update=index.get("updatedAt"),
        )

    async def initialize(self) -> IndexInitResponse:
        """Configure the index, then index every stored archive."""
        configured = await self.configure_index()
        if not configured.success:
            return IndexInitResponse(success=False, error=configured.error)

        archives = await asyncio.to_thread(self._get_archive_repo().list_all)
        if not archives:
            logger.info("[SEARCH] No archives to index")
            return IndexInitResponse(success=True, indexed=0)

        result = await self.index_many(archives)
        logger.info(f"[SEARCH] Index initialized: {result.indexed} indexed, {result.failed} failed")
        return IndexInitResponse(
            success=result.success,
            indexed=result.indexed,
            error="; ".join(result.errors) if result.errors else None,
        )


# =============================================================================
# SINGLETON
# =============================================================================

_search_index_service: Optional[SearchIndexService] = None


def get_search_index_service() -> SearchIndexService:
    """Get or create SearchIndexService singleton."""
    global _search_index_service
    if _search_index_service is None:
        _search_index_service = SearchIndexService()
    return _search_index_service
