"""
Search Engine Client - thin async wrapper over the Meilisearch HTTP API.

Only the calls the pipeline needs: health, document upsert/delete,
search, index settings and stats.
"""

import logging
from typing import Any, Dict, List, Optional

import httpx

from app.core.config import settings
from app.core.exceptions import SearchEngineError

logger = logging.getLogger(__name__)


class SearchEngineClient:
    """
    Async client for one search index.

    The underlying httpx.AsyncClient is created lazily and reused;
    pass `transport` to route requests elsewhere (e.g. httpx.MockTransport).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        index_name: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = (base_url or settings.meilisearch_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.meili_master_key
        self.index_name = index_name or settings.meilisearch_index_name
        self.timeout = timeout or settings.search_timeout_seconds
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create async HTTP client."""
        if self._client is None or self._client.is_closed:
            headers = {"Content-Type": "application/json"}
            if self.api_key:
                headers["Authorization"] = f"Bearer {self.api_key}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        """Close HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        client = await self._get_client()
        try:
            response = await client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise SearchEngineError(f"{method} {path} failed: {e}") from e

        if response.is_success:
            return response
        raise SearchEngineError(
            f"{method} {path} returned {response.status_code}: {response.text[:200]}",
            details={"status_code": response.status_code},
        )

    @property
    def _index_path(self) -> str:
        return f"/indexes/{self.index_name}"

    # =========================================================================
    # HEALTH
    # =========================================================================

    async def health(self) -> bool:
        """True when the engine reports itself available. Never raises."""
        try:
            client = await self._get_client()
            response = await client.get("/health")
            return response.status_code == 200 and response.json().get("status") == "available"
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"[SEARCH] Health probe failed: {e}")
            return False

    # =========================================================================
    # DOCUMENTS
    # =========================================================================

    async def update_documents(self, documents: List[Dict[str, Any]]) -> Dict[str, Any]:
        """Upsert documents by primary key `id`."""
        response = await self._request(
            "PUT",
            f"{self._index_path}/documents",
            params={"primaryKey": "id"},
            json=documents,
        )
        return response.json()

    async def delete_document(self, document_id: str) -> None:
        """Delete one document. A missing document is not an error."""
        client = await self._get_client()
        path = f"{self._index_path}/documents/{document_id}"
        try:
            response = await client.delete(path)
        except httpx.HTTPError as e:
            raise SearchEngineError(f"DELETE {path} failed: {e}") from e

        if response.status_code == 404 or response.is_success:
            return
        raise SearchEngineError(
            f"DELETE {path} returned {response.status_code}: {response.text[:200]}",
            details={"status_code": response.status_code},
        )

    # =========================================================================
    # QUERY / SETTINGS / STATS
    # =========================================================================

    async def search(self, query: str, limit: int, offset: int) -> Dict[str, Any]:
        """Raw search response: hits, estimatedTotalHits, processingTimeMs."""
        response = await self._request(
            "POST",
            f"{self._index_path}/search",
            json={"q": query, "limit": limit, "offset": offset},
        )
        return response.json()

    async def update_settings(self, index_settings: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("PATCH", f"{self._index_path}/settings", json=index_settings)
        return response.json()

    async def get_stats(self) -> Dict[str, Any]:
        response = await self._request("GET", f"{self._index_path}/stats")
        return response.json()

    async def get_index(self) -> Dict[str, Any]:
        """Index metadata (uid, primaryKey, createdAt, updatedAt)."""
        response = await self._request("GET", self._index_path)
        return response.json()


# =============================================================================
# SINGLETON
# =============================================================================

_search_client: Optional[SearchEngineClient] = None


def get_search_client() -> SearchEngineClient:
    """Get or create SearchEngineClient singleton."""
    global _search_client
    if _search_client is None:
        _search_client = SearchEngineClient()
    return _search_client
