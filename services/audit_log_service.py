"""
Audit trail for export and import operations.

Each operation writes a `started` row to export_import_logs and later marks
it `completed` or `failed`. Every write is best-effort: a broken audit table
never fails the operation it describes.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import uuid4

import structlog

from config import get_supabase_client
from utils.best_effort import best_effort

logger = structlog.get_logger(__name__)


class AuditLogService:
    """Writes export_import_logs rows."""

    def __init__(self, db=None):
        self.db = db or get_supabase_client()
        self.table = "export_import_logs"

    def start(
        self,
        team_id: str,
        user_id: str,
        operation_type: str,
        included_entities: Optional[dict[str, bool]] = None,
        file_format: str = "json",
    ) -> Optional[str]:
        """
        Record the start of an operation.

        Returns:
            The log id, or None if the row could not be written
        """
        log_id = str(uuid4())
        row = {
            "id": log_id,
            "team_id": team_id,
            "user_id": user_id,
            "operation_type": operation_type,
            "file_format": file_format,
            "included_entities": included_entities or {},
            "status": "started",
            "started_at": datetime.now(timezone.utc).isoformat(),
        }

        written = best_effort(
            "audit_log_start",
            lambda: self.db.table(self.table).insert(row).execute(),
        )
        if written is None:
            return None

        logger.debug("audit_log_started", log_id=log_id, operation=operation_type)
        return log_id

    def complete(
        self,
        log_id: Optional[str],
        status: str,
        record_counts: Optional[dict[str, Any]] = None,
        error_message: Optional[str] = None,
    ) -> None:
        """Mark an operation completed or failed; no-op without a log id."""
        if not log_id:
            return

        update = {
            "status": status,
            "completed_at": datetime.now(timezone.utc).isoformat(),
            "record_counts": record_counts,
            "error_message": error_message,
        }
        best_effort(
            "audit_log_complete",
            lambda: self.db.table(self.table).update(update).eq("id", log_id).execute(),
        )
