"""
Unit tests for the background IndexingQueue
"""
import pytest

from app.models.database import ArchiveModel
from app.models.schemas import IndexResult
from app.services.background_tasks import IndexingQueue


class FakeIndexService:
    def __init__(self, fail_for=(), raise_for=()):
        self.fail_for = set(fail_for)
        self.raise_for = set(raise_for)
        self.indexed = []

    async def index_one(self, archive):
        if archive.archive_no in self.raise_for:
            raise RuntimeError("unexpected")
        if archive.archive_no in self.fail_for:
            return IndexResult(success=False, error="engine down")
        self.indexed.append(archive.archive_no)
        return IndexResult(success=True)


def make_archive(archive_no: str) -> ArchiveModel:
    return ArchiveModel(id=archive_no.lower(), archive_no=archive_no, file_url="/pdfs/x.pdf")


@pytest.mark.asyncio
async def test_indexes_in_enqueue_order():
    index_service = FakeIndexService()
    queue = IndexingQueue(index_service)
    queue.start()

    for archive_no in ("A-1", "A-2", "A-3"):
        queue.enqueue(make_archive(archive_no))
    await queue.join()
    await queue.stop()

    assert index_service.indexed == ["A-1", "A-2", "A-3"]
    assert queue.indexed_count == 3
    assert queue.failed_count == 0
    assert not queue.running


@pytest.mark.asyncio
async def test_failures_are_counted_not_raised():
    index_service = FakeIndexService(fail_for={"A-2"}, raise_for={"A-3"})
    queue = IndexingQueue(index_service)
    queue.start()

    for archive_no in ("A-1", "A-2", "A-3", "A-4"):
        queue.enqueue(make_archive(archive_no))
    await queue.join()

    assert index_service.indexed == ["A-1", "A-4"]
    assert queue.failed_count == 2
    assert queue.last_error == "unexpected"
    assert queue.running
    await queue.stop()


@pytest.mark.asyncio
async def test_stop_flushes_pending_work():
    index_service = FakeIndexService()
    queue = IndexingQueue(index_service)
    queue.start()
    queue.enqueue(make_archive("A-1"))

    await queue.stop()

    assert index_service.indexed == ["A-1"]
    assert queue.pending == 0
