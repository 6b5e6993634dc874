"""
Search API Router

- GET  /search         full-text search (engine, or database fallback)
- POST /search/init    configure the index and index every stored archive
- GET  /search/stats   index statistics
"""

import logging

from fastapi import APIRouter, Query, Request
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import SearchIndexServiceDep, SearchServiceDep
from app.core.config import settings
from app.core.exceptions import SearchEngineError, ValidationError
from app.core.rate_limit import limiter
from app.models.schemas import ErrorDetail, IndexInitResponse, SearchQuery, SearchResponse, SearchStats

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["Search"])


@router.get("", response_model=SearchResponse)
@limiter.limit(settings.search_rate_limit)
async def search_archives(
    request: Request,
    service: SearchServiceDep,
    q: str = Query(..., min_length=1, max_length=500, description="Search text"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
):
    """
    Search archives.

    Served by the search engine when it is healthy, otherwise by a
    substring match in the database. The response shape is the same.
    """
    try:
        params = SearchQuery(q=q, page=page, limit=limit)
    except PydanticValidationError as e:
        details = [
            ErrorDetail(field=".".join(str(loc) for loc in error["loc"]), message=error["msg"], code=error["type"])
            for error in e.errors()
        ]
        raise ValidationError("Invalid search query", details=details) from e
    logger.info(f"[SEARCH] q={params.q!r} page={params.page} limit={params.limit}")
    return await service.search(params.q, params.page, params.limit)


@router.post("/init", response_model=IndexInitResponse)
async def init_search_index(service: SearchIndexServiceDep):
    """Apply index settings and (re)index all archives."""
    return await service.initialize()


@router.get("/stats", response_model=SearchStats)
async def get_search_stats(service: SearchIndexServiceDep):
    stats = await service.get_stats()
    if stats is None:
        raise SearchEngineError("Failed to get search index stats")
    return stats
