"""
Background Tasks - search indexing off the request path.

Enrichment enqueues updated archives here instead of indexing inline, so
a slow or unavailable search engine never delays a CSV commit. Failures
are logged and counted; nothing is raised back to the enqueuer.

**Pattern:** Task Runner with an explicit asyncio.Queue worker
"""

import asyncio
import logging
from typing import Optional

from app.models.database import ArchiveModel
from app.services.search_index_service import SearchIndexService, get_search_index_service

logger = logging.getLogger(__name__)


class IndexingQueue:
    """
    Single worker draining archives into the search index.

    Usage:
        queue = IndexingQueue(index_service)
        queue.start()
        queue.enqueue(archive)
        await queue.join()      # wait until everything queued is handled
        await queue.stop()
    """

    def __init__(self, index_service: Optional[SearchIndexService] = None):
        self._index_service = index_service
        self._queue: "asyncio.Queue[ArchiveModel]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None
        self.indexed_count = 0
        self.failed_count = 0
        self.last_error: Optional[str] = None

    def _get_index_service(self) -> SearchIndexService:
        if self._index_service is None:
            self._index_service = get_search_index_service()
        return self._index_service

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run())
        logger.info("[INDEX] Indexing queue started")

    async def stop(self) -> None:
        """Finish queued work, then stop the worker."""
        if not self.running:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info(
            f"[INDEX] Indexing queue stopped (indexed={self.indexed_count}, failed={self.failed_count})"
        )

    def enqueue(self, archive: ArchiveModel) -> None:
        self._queue.put_nowait(archive)

    async def join(self) -> None:
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            archive = await self._queue.get()
            try:
                await self._index_safe(archive)
            finally:
                self._queue.task_done()

    async def _index_safe(self, archive: ArchiveModel) -> None:
        """Index with exception handling for the background worker."""
        try:
            result = await self._get_index_service().index_one(archive)
        except Exception as e:
            self._record_failure(archive, str(e))
            return
        if result.success:
            self.indexed_count += 1
        else:
            self._record_failure(archive, result.error or "unknown error")

    def _record_failure(self, archive: ArchiveModel, error: str) -> None:
        self.failed_count += 1
        self.last_error = error
        logger.error(f"[INDEX] Background indexing failed for {archive.archive_no}: {error}")


# =============================================================================
# SINGLETON
# =============================================================================

_indexing_queue: Optional[IndexingQueue] = None


def get_indexing_queue() -> IndexingQueue:
    """Get or create IndexingQueue singleton."""
    global _indexing_queue
    if _indexing_queue is None:
        _indexing_queue = IndexingQueue()
    return _indexing_queue
