"""
Search Service - routes queries to the search engine, or to the store.

Engine path: probe health -> engine search -> hydrate from store in rank order.
Fallback path: case-insensitive substring match in the relational store.

Both paths return the same SearchResponse shape.
"""

import asyncio
import logging
import math
import time
from typing import Optional

from app.core.exceptions import EngineUnavailable
from app.models.schemas import ArchiveOut, Pagination, SearchResponse, SearchSource
from app.repositories.archive_repository import ArchiveRepository, get_archive_repository
from app.services.search_client import SearchEngineClient, get_search_client

logger = logging.getLogger(__name__)


def _total_pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0


class SearchService:
    """Full-text search with automatic fallback."""

    def __init__(
        self,
        client: Optional[SearchEngineClient] = None,
        archive_repo: Optional[ArchiveRepository] = None,
    ):
        self._client = client or get_search_client()
        self._archive_repo = archive_repo or get_archive_repository()

    async def search(self, query: str, page: int = 1, limit: int = 20) -> SearchResponse:
        """Search archives. Never fails because of the search engine."""
        try:
            if not await self._client.health():
                raise EngineUnavailable("Search engine health probe failed")
            return await self._search_engine(query, page, limit)
        except EngineUnavailable:
            logger.warning("[SEARCH] Engine unhealthy, falling back to database search")
            return await self.search_fallback(query, page, limit)
        except Exception as e:
            logger.warning(f"[SEARCH] Engine search failed, falling back to database search: {e}")
            return await self.search_fallback(query, page, limit)

    async def _search_engine(self, query: str, page: int, limit: int) -> SearchResponse:
        offset = (page - 1) * limit
        raw = await self._client.search(query, limit=limit, offset=offset)

        ranked_ids = [hit["id"] for hit in raw.get("hits", [])]
        archives = await asyncio.to_thread(self._archive_repo.get_by_ids, ranked_ids)
        by_id = {archive.id: archive for archive in archives}

        # Engine rank order; ids no longer in the store are dropped
        ordered = [by_id[archive_id] for archive_id in ranked_ids if archive_id in by_id]

        total = raw.get("estimatedTotalHits", raw.get("totalHits", len(ordered)))
        return SearchResponse(
            results=[ArchiveOut.model_validate(archive) for archive in ordered],
            pagination=Pagination(page=page, limit=limit, total=total, total_pages=_total_pages(total, limit)),
            query=query,
            processing_time_ms=int(raw.get("processingTimeMs", 0)),
            source=SearchSource.ENGINE,
        )

    async def search_fallback(self, query: str, page: int = 1, limit: int = 20) -> SearchResponse:
        """Relational substring search, newest first."""
        start_time = time.time()
        archives, total = await asyncio.to_thread(
            self._archive_repo.search_fallback, query, (page - 1) * limit, limit
        )
        return SearchResponse(
            results=[ArchiveOut.model_validate(archive) for archive in archives],
            pagination=Pagination(page=page, limit=limit, total=total, total_pages=_total_pages(total, limit)),
            query=query,
            processing_time_ms=int((time.time() - start_time) * 1000),
            source=SearchSource.FALLBACK,
        )


# =============================================================================
# SINGLETON
# =============================================================================

_search_service: Optional[SearchService] = None


def get_search_service() -> SearchService:
    """Get or create SearchService singleton."""
    global _search_service
    if _search_service is None:
        _search_service = SearchService()
    return _search_service
