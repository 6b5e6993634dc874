"""
Pytest Configuration and Fixtures for Archive Ingestion Service Tests
"""
import pytest
from hypothesis import settings
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import init_db
from app.models.schemas import PdfFile
from app.repositories.archive_repository import ArchiveRepository
from app.repositories.import_job_repository import ImportJobRepository
from app.repositories.operation_log_repository import OperationLogRepository
from app.services.audit_service import AuditService

# Configure Hypothesis profiles
settings.register_profile("ci", max_examples=100, deadline=None)
settings.register_profile("dev", max_examples=50, deadline=5000)
settings.load_profile("dev")


# =============================================================================
# Database
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def archive_repo(session_factory):
    return ArchiveRepository(session_factory)


@pytest.fixture
def job_repo(session_factory):
    return ImportJobRepository(session_factory)


@pytest.fixture
def log_repo(session_factory):
    return OperationLogRepository(session_factory)


@pytest.fixture
def audit(log_repo):
    return AuditService(log_repo)


# =============================================================================
# Files
# =============================================================================

@pytest.fixture
def source_dir(tmp_path):
    path = tmp_path / "incoming"
    path.mkdir()
    return path


@pytest.fixture
def storage_dir(tmp_path):
    return tmp_path / "storage"


@pytest.fixture
def make_pdf(source_dir):
    """Create a PDF file in the source folder and return its PdfFile."""
    def _make(name: str, content: bytes = b"%PDF-1.4 test document") -> PdfFile:
        path = source_dir / name
        path.write_bytes(content)
        return PdfFile(name=name, path=str(path), size=len(content))
    return _make
