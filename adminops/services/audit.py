"""
Audit Logger - Append-only record of every administrative action.

Audit logging is a side channel, not a precondition for the mutation it
describes: ``record`` never raises. Failures are logged and counted, and the
caller gets a ``BestEffortResult`` back.

The logger is the only writer of the ``admin_logs`` collection.
"""

from datetime import datetime
from typing import Any

from structlog import get_logger

from adminops.db.store import DocumentStore
from adminops.models.domain import (
    ADMIN_LOGS,
    AdminAction,
    AuditEntry,
    BestEffortResult,
    Page,
    parse_timestamp,
)
from adminops.observability.metrics import metrics

logger = get_logger(__name__)


class AuditLogger:
    """Writes and reads the admin audit trail."""

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    async def record(
        self,
        admin_uid: str,
        action: AdminAction | str,
        data: dict[str, Any] | None = None,
    ) -> BestEffortResult:
        """
        Append one audit entry.

        The payload is stored as-is. ``ipAddress`` is lifted from the payload
        (or "unknown"); ``timestamp`` is assigned by the store.
        """
        payload = dict(data or {})
        action_name = action.value if isinstance(action, AdminAction) else action

        if not admin_uid:
            return self._failed(action_name, "admin_uid is required")
        if not isinstance(action_name, str) or not action_name:
            return self._failed(str(action_name), "action must be a non-empty string")

        try:
            entry = await self.store.add(
                ADMIN_LOGS,
                {
                    "adminUid": admin_uid,
                    "action": action_name,
                    "data": payload,
                    "ipAddress": payload.get("ipAddress") or "unknown",
                },
            )
        except Exception as e:
            logger.error(
                "audit_log_write_failed",
                admin_uid=admin_uid,
                action=action_name,
                error=str(e),
                exc_info=True,
            )
            metrics.record_audit_write(False)
            metrics.record_best_effort_failure("audit_log")
            return BestEffortResult.failure(str(e))

        metrics.record_audit_write(True)
        logger.info("audit_log_written", entry_id=entry.id, action=action_name)
        return BestEffortResult.success()

    def _failed(self, action: str, reason: str) -> BestEffortResult:
        logger.error("audit_log_rejected", action=action, reason=reason)
        metrics.record_audit_write(False)
        metrics.record_best_effort_failure("audit_log")
        return BestEffortResult.failure(reason)

    async def list_entries(self, limit: int, cursor: str | None = None) -> Page[AuditEntry]:
        """One page of entries, newest first."""
        docs = await self.store.list(ADMIN_LOGS, limit, cursor=cursor, newest_first=True)
        entries = [AuditEntry.from_document(doc.id, doc.data) for doc in docs]
        next_cursor = docs[-1].id if len(docs) == limit else None
        return Page(items=entries, next_cursor=next_cursor)

    async def purge_before(self, cutoff: datetime) -> int:
        """Delete every entry stamped strictly before ``cutoff``."""

        def is_older(data: dict[str, Any]) -> bool:
            stamped = parse_timestamp(data.get("timestamp"))
            return stamped is not None and stamped < cutoff

        return await self.store.delete_many(ADMIN_LOGS, is_older)
