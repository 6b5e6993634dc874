"""
Unit tests for CSV parsing, two-phase validation and commit
"""
import pytest
from sqlalchemy import delete

from app.core.exceptions import NotFoundError, ValidationError
from app.models.database import ArchiveModel
from app.models.import_job import JobStatus
from app.services.csv_import_service import CsvImportService
from app.services.csv_parser import build_field_columns, find_key_column, parse_csv, row_to_fields


class RecordingQueue:
    """Stands in for IndexingQueue; records what was enqueued."""

    def __init__(self):
        self.archives = []

    def enqueue(self, archive):
        self.archives.append(archive)


@pytest.fixture
def queue():
    return RecordingQueue()


@pytest.fixture
def service(archive_repo, job_repo, audit, queue):
    return CsvImportService(
        archive_repo=archive_repo,
        job_repo=job_repo,
        audit=audit,
        indexing_queue=queue,
    )


@pytest.fixture
def seed(archive_repo):
    def _seed(*archive_nos):
        for i, archive_no in enumerate(archive_nos):
            archive_repo.create_skeleton(f"id{i:04d}", archive_no, f"/pdfs/id{i:04d}.pdf")
    return _seed


# =============================================================================
# Parser
# =============================================================================

class TestParseCsv:

    def test_strips_bom_blank_lines_and_cells(self):
        text = '\ufeff档号,题名\n\n A-1 ,"Title, with comma"\n\n A-2 , plain \n'

        headers, rows = parse_csv(text)

        assert headers == ["档号", "题名"]
        assert rows == [["A-1", "Title, with comma"], ["A-2", "plain"]]

    @pytest.mark.parametrize("text", ["", "档号,题名\n", "\n\n"])
    def test_header_only_or_empty_is_malformed(self, text):
        with pytest.raises(ValidationError, match="empty or malformed"):
            parse_csv(text)

    def test_key_column_alias(self):
        assert find_key_column(["title", "archive_no"]) == 1

    def test_missing_key_column(self):
        with pytest.raises(ValidationError):
            find_key_column(["题名", "年度"])

    def test_first_listed_header_wins(self):
        columns = build_field_columns(["档号", "机构问题代码", "部门代码", "页号", "页数"])

        assert columns["dept_code"] == 2
        assert columns["page_no"] == 4

    def test_short_row_is_sparse(self):
        columns = build_field_columns(["档号", "题名", "年度"])

        assert row_to_fields(["A-1", "New"], columns) == {"title": "New"}


# =============================================================================
# Validation
# =============================================================================

class TestValidateFormat:

    def test_clean_file(self, service):
        result = service.validate_format("档号,题名\nA-1,x\nA-2,y\n")

        assert result.success
        assert result.step == "format"
        assert result.total_records == 2
        assert result.archive_nos == ["A-1", "A-2"]

    def test_reports_empty_and_duplicate_rows(self, service):
        text = "档号,题名\nA-1,x\n,y\nA-1,z\nA-2,w\n"

        result = service.validate_format(text)

        assert not result.success
        assert [(e.row, e.index) for e in result.empty_archive_nos] == [(3, 1)]
        assert len(result.duplicate_archive_nos) == 1
        assert result.duplicate_archive_nos[0].archive_no == "A-1"
        assert result.duplicate_archive_nos[0].rows == [2, 4]


class TestValidateExistence:

    def test_all_exist(self, service, seed):
        seed("A-1", "A-2")

        result = service.validate_existence(["A-1", "A-2"])

        assert result.success
        assert result.exist_count == 2
        assert result.not_exist_count == 0

    def test_missing_numbers_listed(self, service, seed):
        seed("A-1")

        result = service.validate_existence(["A-1", "A-9", "A-8"])

        assert not result.success
        assert result.total == 3
        assert result.exist_count == 1
        assert result.not_exist_archive_nos == ["A-9", "A-8"]


# =============================================================================
# Commit
# =============================================================================

class TestStartCommit:

    @pytest.mark.asyncio
    async def test_sparse_update_keeps_absent_columns(self, service, seed, archive_repo, job_repo, queue):
        seed("A-1", "A-2")
        archive_repo.update_fields("A-1", {"title": "Old", "year": "1999"})

        job = service.start_commit("档号,年度\nA-1,2024\nA-2,2023\n", "meta.csv", "alice", "10.0.0.1")
        await service.drain()

        a1 = archive_repo.get_by_archive_no("A-1")
        assert a1.title == "Old"
        assert a1.year == "2024"
        assert archive_repo.get_by_archive_no("A-2").year == "2023"

        stored = job_repo.get(job.id)
        assert stored.status == JobStatus.COMPLETED.value
        assert stored.total == 2
        assert stored.processed == 2
        assert stored.failed == 0
        assert [a.archive_no for a in queue.archives] == ["A-1", "A-2"]

    @pytest.mark.asyncio
    async def test_archive_removed_after_validation_fails_only_its_row(
        self, service, seed, archive_repo, session_factory, queue
    ):
        seed("A-1", "A-2", "A-3")

        job = service.start_commit("档号,题名\nA-1,x\nA-2,y\nA-3,z\n", "meta.csv", "alice")
        with session_factory.begin() as session:
            session.execute(delete(ArchiveModel).where(ArchiveModel.archive_no == "A-2"))
        await service.drain()

        progress = service.get_progress(job.id)
        assert progress.status == JobStatus.COMPLETED
        assert progress.processed == progress.total == 3
        assert progress.failed == 1
        assert len(progress.errors) == 1
        assert progress.errors[0].archive_no == "A-2"
        assert "does not exist" in progress.errors[0].reason

        assert archive_repo.get_by_archive_no("A-1").title == "x"
        assert archive_repo.get_by_archive_no("A-3").title == "z"
        assert [a.archive_no for a in queue.archives] == ["A-1", "A-3"]

    @pytest.mark.asyncio
    async def test_one_missing_key_blocks_whole_batch(self, service, seed, archive_repo, job_repo):
        seed("A-1")

        with pytest.raises(NotFoundError) as exc_info:
            service.start_commit("档号,题名\nA-1,New\nA-404,Ghost\n", "meta.csv", "alice")

        assert exc_info.value.details["not_exist_archive_nos"] == ["A-404"]
        assert archive_repo.get_by_archive_no("A-1").title == ""
        assert job_repo.list_active() == []

    def test_duplicate_keys_block_commit(self, service, seed, archive_repo):
        seed("A-1")

        with pytest.raises(ValidationError) as exc_info:
            service.start_commit("档号,题名\nA-1,x\nA-1,y\n", "meta.csv", "alice")

        assert exc_info.value.details["duplicate_archive_nos"][0]["rows"] == [2, 3]
        assert archive_repo.get_by_archive_no("A-1").title == ""

    @pytest.mark.asyncio
    async def test_audit_trail(self, service, seed, log_repo):
        seed("A-1")

        service.start_commit("档号,题名\nA-1,Annual report\n", "meta.csv", "alice")
        await service.drain()

        operations = {entry.operation for entry in log_repo.list_logs()}
        assert {"csv_import", "modify", "csv_import_complete"} <= operations
        modify = log_repo.list_logs(operation="modify")[0]
        assert "Annual report" in modify.target

    @pytest.mark.asyncio
    async def test_progress(self, service, seed):
        seed("A-1")

        job = service.start_commit("档号,题名\nA-1,x\n", "meta.csv", "alice")
        await service.drain()
        progress = service.get_progress(job.id)

        assert progress.status == JobStatus.COMPLETED
        assert progress.processed == progress.total == 1
        assert progress.errors == []

    def test_progress_unknown_job(self, service):
        with pytest.raises(NotFoundError):
            service.get_progress("missing")
