"""
Operation Log Repository - audit trail persistence.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from app.models.database import OperationLogModel

logger = logging.getLogger(__name__)


class OperationLogRepository:
    """Repository for operation_logs."""

    def __init__(self, session_factory: Optional[sessionmaker] = None):
        if session_factory is None:
            from app.core.database import get_shared_session_factory
            session_factory = get_shared_session_factory()
        self._session_factory = session_factory

    def create(
        self,
        operator: str,
        operation: str,
        target: str,
        ip: str = "",
        archive_id: Optional[str] = None,
    ) -> OperationLogModel:
        entry = OperationLogModel(
            operator=operator,
            operation=operation,
            target=target,
            ip=ip or "",
            archive_id=archive_id,
        )
        with self._session_factory.begin() as session:
            session.add(entry)
        return entry

    def list_logs(self, operation: Optional[str] = None, limit: int = 100) -> List[OperationLogModel]:
        """Most recent entries first."""
        stmt = select(OperationLogModel)
        if operation:
            stmt = stmt.where(OperationLogModel.operation == operation)
        stmt = stmt.order_by(OperationLogModel.created_at.desc()).limit(limit)
        with self._session_factory() as session:
            return list(session.scalars(stmt))


# =============================================================================
# SINGLETON
# =============================================================================

_operation_log_repository: Optional[OperationLogRepository] = None


def get_operation_log_repository() -> OperationLogRepository:
    """Get or create OperationLogRepository singleton."""
    global _operation_log_repository
    if _operation_log_repository is None:
        _operation_log_repository = OperationLogRepository()
    return _operation_log_repository
