"""
Unit tests for ImportService (bulk PDF ingestion)

Uses an in-memory SQLite store and real files under tmp_path.
"""
import os

import pytest

from app.cache.config_cache import ConfigCache
from app.core.exceptions import CopyFailure, FolderScanError, NotFoundError
from app.models.import_job import JobStatus, JobType
from app.services.concurrency_limiter import ConcurrencyLimiter
from app.services.file_copier import FileCopier
from app.services.import_service import (
    SKIP_REASON_EXISTS,
    ImportService,
    derive_archive_no,
)


class FailingCopier(FileCopier):
    async def copy(self, source, dest, size=None):
        raise CopyFailure(f"Failed to copy {source}: disk full")


@pytest.fixture
def make_service(archive_repo, job_repo, audit, storage_dir):
    def _make(concurrency: int = 3, copier=None) -> ImportService:
        return ImportService(
            archive_repo=archive_repo,
            job_repo=job_repo,
            audit=audit,
            copier=copier or FileCopier(),
            limiter=ConcurrencyLimiter(concurrency),
            config_cache=ConfigCache(),
            storage_path=str(storage_dir),
            url_prefix="/pdfs",
        )
    return _make


class TestDeriveArchiveNo:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("A-001.pdf", "A-001"),
            ("A-001.PDF", "A-001"),
            ("report.v2.Pdf", "report.v2"),
            ("no-extension", "no-extension"),
        ],
    )
    def test_strips_pdf_extension_case_insensitively(self, name, expected):
        assert derive_archive_no(name) == expected


class TestScanFolder:

    @pytest.mark.asyncio
    async def test_lists_only_pdf_files(self, make_service, make_pdf, source_dir):
        make_pdf("b.pdf")
        make_pdf("a.PDF")
        (source_dir / "notes.txt").write_text("ignored")
        (source_dir / "sub.pdf").mkdir()

        files = await make_service().scan_folder(str(source_dir))

        assert [f.name for f in files] == ["a.PDF", "b.pdf"]
        assert all(f.size > 0 for f in files)

    @pytest.mark.asyncio
    async def test_missing_folder_raises(self, make_service, tmp_path):
        with pytest.raises(FolderScanError):
            await make_service().scan_folder(str(tmp_path / "missing"))


class TestProcessFile:

    @pytest.mark.asyncio
    async def test_new_file_creates_skeleton_record(
        self, make_service, make_pdf, job_repo, archive_repo, log_repo, storage_dir
    ):
        service = make_service()
        pdf = make_pdf("A-001.pdf")
        job = job_repo.create(JobType.PDF, "alice", total=1, file_name=pdf.name)

        status = await service.process_file(job.id, pdf, "alice", "10.0.0.1")

        assert status == JobStatus.COMPLETED
        archive = archive_repo.get_by_archive_no("A-001")
        assert archive is not None
        assert archive.title == ""
        assert archive.fonds_no == ""
        assert archive.file_url == f"/pdfs/{archive.id}.pdf"
        assert os.path.exists(storage_dir / f"{archive.id}.pdf")

        stored = job_repo.get(job.id)
        assert stored.status == JobStatus.COMPLETED.value
        assert stored.processed == 1
        assert stored.archive_id == archive.id

        entries = log_repo.list_logs(operation="import")
        assert entries[0].archive_id == archive.id
        assert entries[0].ip == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_existing_archive_no_is_skipped_without_copy(
        self, make_service, make_pdf, job_repo, archive_repo, log_repo, storage_dir
    ):
        archive_repo.create_skeleton("existing", "A-001", "/pdfs/existing.pdf")
        service = make_service()
        pdf = make_pdf("A-001.pdf")
        job = job_repo.create(JobType.PDF, "alice", total=1, file_name=pdf.name)

        status = await service.process_file(job.id, pdf, "alice")

        assert status == JobStatus.SKIPPED
        stored = job_repo.get(job.id)
        assert stored.skipped == 1
        assert stored.errors == [{"archive_no": "A-001", "reason": SKIP_REASON_EXISTS}]
        assert archive_repo.count() == 1
        assert not storage_dir.exists() or not any(storage_dir.iterdir())
        assert log_repo.list_logs(operation="import_skipped")

    @pytest.mark.asyncio
    async def test_copy_failure_marks_job_failed(
        self, make_service, make_pdf, job_repo, archive_repo, log_repo
    ):
        service = make_service(copier=FailingCopier())
        pdf = make_pdf("A-002.pdf")
        job = job_repo.create(JobType.PDF, "alice", total=1, file_name=pdf.name)

        status = await service.process_file(job.id, pdf, "alice")

        assert status == JobStatus.FAILED
        stored = job_repo.get(job.id)
        assert stored.failed == 1
        assert "disk full" in stored.errors[0]["reason"]
        assert archive_repo.count() == 0
        assert log_repo.list_logs(operation="import_failed")

    @pytest.mark.asyncio
    async def test_cancelled_job_is_not_processed(self, make_service, make_pdf, job_repo, archive_repo):
        service = make_service()
        pdf = make_pdf("A-003.pdf")
        job = job_repo.create(JobType.PDF, "alice", total=1, file_name=pdf.name)
        job_repo.cancel(job.id)

        status = await service.process_file(job.id, pdf, "alice")

        assert status == JobStatus.CANCELLED
        assert archive_repo.count() == 0


class TestStartImport:

    @pytest.mark.asyncio
    async def test_duplicate_file_in_same_batch(self, make_service, make_pdf, source_dir, job_repo, archive_repo):
        service = make_service(concurrency=2)
        a = make_pdf("a.pdf")
        b = make_pdf("b.pdf")
        # Same archive number from a second folder
        other = source_dir / "again"
        other.mkdir()
        (other / "a.pdf").write_bytes(b"%PDF duplicate")
        a_again = a.model_copy(update={"path": str(other / "a.pdf")})

        jobs = await service.start_import([a, b, a_again], "alice")
        assert len(jobs) == 3
        assert all(job.status == JobStatus.PENDING.value for job in jobs)

        await service.drain()

        statuses = sorted(job_repo.get(job.id).status for job in jobs)
        assert statuses == ["completed", "completed", "skipped"]
        assert archive_repo.count() == 2
        assert service.limiter.active == 0

    @pytest.mark.asyncio
    async def test_same_key_copied_concurrently_keeps_one_record(
        self, make_service, make_pdf, source_dir, storage_dir, job_repo, archive_repo
    ):
        service = make_service(concurrency=2)
        first = make_pdf("A-7.pdf")
        other = source_dir / "again"
        other.mkdir()
        (other / "A-7.pdf").write_bytes(b"%PDF second copy")
        second = first.model_copy(update={"path": str(other / "A-7.pdf")})

        # Both pass the existence check before either inserts
        jobs = await service.start_import([first, second], "alice")
        await service.drain()

        stored = [job_repo.get(job.id) for job in jobs]
        assert sorted(job.status for job in stored) == ["completed", "skipped"]
        skipped = next(job for job in stored if job.status == "skipped")
        assert skipped.errors == [{"archive_no": "A-7", "reason": SKIP_REASON_EXISTS}]
        assert archive_repo.count() == 1
        assert [p.name for p in storage_dir.iterdir()] == [f"{archive_repo.get_by_archive_no('A-7').id}.pdf"]

    @pytest.mark.asyncio
    async def test_all_jobs_created_before_processing(self, make_service, make_pdf, job_repo, log_repo):
        service = make_service(concurrency=1)
        files = [make_pdf(f"f{i}.pdf") for i in range(4)]

        jobs = await service.start_import(files, "bob")

        # Nothing has run yet; every job is visible and pending
        assert [job_repo.get(job.id).status for job in jobs] == ["pending"] * 4
        await service.drain()
        assert job_repo.count_by_status(JobStatus.COMPLETED) == 4

        # One batch entry, then one entry per imported file
        assert len(log_repo.list_logs(operation="import_batch")) == 1
        assert len(log_repo.list_logs(operation="import")) == 4


class TestJobQueries:

    @pytest.mark.asyncio
    async def test_get_job_unknown_raises(self, make_service):
        with pytest.raises(NotFoundError):
            make_service().get_job("missing")

    @pytest.mark.asyncio
    async def test_cancel_sets_flag_and_audits(self, make_service, job_repo, log_repo):
        service = make_service()
        job = job_repo.create(JobType.PDF, "alice", total=1, file_name="x.pdf")

        response = service.cancel_import(job.id, "carol", "10.0.0.9")

        assert response.status == JobStatus.CANCELLED
        assert log_repo.list_logs(operation="cancel_import")[0].operator == "carol"

    @pytest.mark.asyncio
    async def test_cancel_unknown_job_raises(self, make_service):
        with pytest.raises(NotFoundError):
            make_service().cancel_import("missing", "carol")

    @pytest.mark.asyncio
    async def test_history_filters_and_paginates(self, make_service, job_repo):
        service = make_service()
        for i in range(5):
            job_repo.create(JobType.PDF, "alice" if i % 2 == 0 else "bob", total=1, file_name=f"{i}.pdf")

        history = service.get_history(page=1, page_size=2, operator="alice")

        assert history.total == 3
        assert history.total_pages == 2
        assert len(history.items) == 2
        assert all(item.operator == "alice" for item in history.items)

    @pytest.mark.asyncio
    async def test_active_imports_excludes_terminal_jobs(self, make_service, job_repo):
        service = make_service()
        pending = job_repo.create(JobType.PDF, "alice", total=1, file_name="p.pdf")
        done = job_repo.create(JobType.PDF, "alice", total=1, file_name="d.pdf")
        job_repo.transition(done.id, JobStatus.COMPLETED, processed=1)

        active = service.get_active_imports()

        assert [job.id for job in active] == [pending.id]


class TestImportConfig:

    def test_set_concurrency_is_clamped_and_reported(self, make_service):
        service = make_service(concurrency=3)

        assert service.get_import_config().concurrency == 3
        assert service.set_concurrency(25).concurrency == 10
        assert service.limiter.capacity == 10
        assert service.set_concurrency(0).concurrency == 1
