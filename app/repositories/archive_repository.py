"""
Archive Repository - CRUD on archive records.

The archive number (business key) is unique; a concurrent insert of the
same key surfaces as DuplicateKeyError rather than a raw IntegrityError.
"""

import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from app.core.exceptions import DuplicateKeyError
from app.models.database import ARCHIVE_METADATA_FIELDS, ArchiveModel

logger = logging.getLogger(__name__)

# Fields searched by the relational fallback
FALLBACK_SEARCH_FIELDS = (
    ArchiveModel.title,
    ArchiveModel.archive_no,
    ArchiveModel.dept_issue,
    ArchiveModel.responsible,
    ArchiveModel.doc_no,
    ArchiveModel.remark,
)

# Keep IN (...) lists well below driver parameter limits
_IN_CHUNK_SIZE = 500


class ArchiveRepository:
    """Repository for archive records."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from app.core.database import get_shared_session_factory
            session_factory = get_shared_session_factory()
        self._session_factory = session_factory

    def get_by_archive_no(self, archive_no: str) -> Optional[ArchiveModel]:
        with self._session_factory() as session:
            return session.scalar(
                select(ArchiveModel).where(ArchiveModel.archive_no == archive_no)
            )

    def exists(self, archive_no: str) -> bool:
        with self._session_factory() as session:
            found = session.scalar(
                select(ArchiveModel.id).where(ArchiveModel.archive_no == archive_no)
            )
            return found is not None

    def find_existing_archive_nos(self, archive_nos: Iterable[str]) -> Set[str]:
        """Return the subset of archive_nos that exist in the store."""
        archive_nos = list(dict.fromkeys(archive_nos))
        existing: Set[str] = set()
        with self._session_factory() as session:
            for start in range(0, len(archive_nos), _IN_CHUNK_SIZE):
                chunk = archive_nos[start:start + _IN_CHUNK_SIZE]
                rows = session.scalars(
                    select(ArchiveModel.archive_no).where(ArchiveModel.archive_no.in_(chunk))
                )
                existing.update(rows)
        return existing

    def create_skeleton(
        self,
        archive_id: str,
        archive_no: str,
        file_url: str,
        import_job_id: Optional[str] = None,
    ) -> ArchiveModel:
        """
        Create a skeleton record: archive number and file pointer only.

        Raises:
            DuplicateKeyError: if the archive number was taken concurrently
        """
        archive = ArchiveModel(
            id=archive_id,
            archive_no=archive_no,
            file_url=file_url,
            import_job_id=import_job_id,
        )
        try:
            with self._session_factory.begin() as session:
                session.add(archive)
        except IntegrityError as e:
            logger.warning(f"Duplicate archive number on insert: {archive_no} ({e.orig})")
            raise DuplicateKeyError(archive_no) from e
        return archive

    def update_fields(self, archive_no: str, fields: Dict[str, Optional[str]]) -> Optional[ArchiveModel]:
        """
        Sparse update: only keys present in fields are written.

        Runs in one transaction. Returns None if the archive does not exist.
        """
        unknown = set(fields) - set(ARCHIVE_METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown archive fields: {sorted(unknown)}")

        with self._session_factory.begin() as session:
            archive = session.scalar(
                select(ArchiveModel).where(ArchiveModel.archive_no == archive_no)
            )
            if archive is None:
                return None
            for name, value in fields.items():
                setattr(archive, name, value)
        return archive

    def get_by_ids(self, ids: List[str]) -> List[ArchiveModel]:
        """Fetch archives by id. Order is NOT guaranteed."""
        if not ids:
            return []
        with self._session_factory() as session:
            return list(session.scalars(select(ArchiveModel).where(ArchiveModel.id.in_(ids))))

    def search_fallback(self, query: str, offset: int, limit: int) -> Tuple[List[ArchiveModel], int]:
        """
        Case-insensitive substring search over a fixed field set.

        Ordered newest first, then by id, so pagination is deterministic.
        """
        condition = or_(*(column.icontains(query, autoescape=True) for column in FALLBACK_SEARCH_FIELDS))
        with self._session_factory() as session:
            total = session.scalar(select(func.count()).select_from(ArchiveModel).where(condition)) or 0
            archives = list(session.scalars(
                select(ArchiveModel)
                .where(condition)
                .order_by(ArchiveModel.created_at.desc(), ArchiveModel.id.desc())
                .offset(offset)
                .limit(limit)
            ))
        return archives, total

    def list_all(self) -> List[ArchiveModel]:
        """All archives, newest first."""
        with self._session_factory() as session:
            return list(session.scalars(
                select(ArchiveModel).order_by(ArchiveModel.created_at.desc(), ArchiveModel.id.desc())
            ))

    def count(self) -> int:
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(ArchiveModel)) or 0


# =============================================================================
# SINGLETON
# =============================================================================

_archive_repository: Optional[ArchiveRepository] = None


def get_archive_repository() -> ArchiveRepository:
    """Get or create ArchiveRepository singleton."""
    global _archive_repository
    if _archive_repository is None:
        _archive_repository = ArchiveRepository()
    return _archive_repository
