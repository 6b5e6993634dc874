"""
Audit Service - records every state-changing step.

A logging failure must never abort the operation it describes, so
record() logs and swallows storage errors.
"""

import logging
from typing import Optional

from app.repositories.operation_log_repository import (
    OperationLogRepository,
    get_operation_log_repository,
)

logger = logging.getLogger(__name__)


class AuditService:
    """Writes {operator, operation, target, ip, timestamp} entries."""

    def __init__(self, log_repo: Optional[OperationLogRepository] = None):
        self._log_repo = log_repo

    def _get_repo(self) -> OperationLogRepository:
        if self._log_repo is None:
            self._log_repo = get_operation_log_repository()
        return self._log_repo

    def record(
        self,
        operator: str,
        operation: str,
        target: str,
        ip: str = "",
        archive_id: Optional[str] = None,
    ) -> bool:
        """Write one audit entry. Returns False instead of raising on failure."""
        try:
            self._get_repo().create(
                operator=operator,
                operation=operation,
                target=target,
                ip=ip,
                archive_id=archive_id,
            )
            return True
        except Exception as e:
            logger.error(f"[AUDIT] Failed to write {operation} entry for {target!r}: {e}")
            return False


_audit_service: Optional[AuditService] = None


def get_audit_service() -> AuditService:
    """Get or create AuditService singleton."""
    global _audit_service
    if _audit_service is None:
        _audit_service = AuditService()
    return _audit_service
