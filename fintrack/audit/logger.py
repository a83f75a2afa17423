"""
Audit Logger

DESIGN DECISION: Every ledger mutation and every rejected operation is
logged. This provides:
1. Traceability next to the transaction log
2. Debugging capability
3. A record of operations that were refused

The audit logger:
- Is async to match the store interface
- Gracefully handles failures (auditing never fails a ledger operation)
"""

from typing import Optional

import structlog

from fintrack.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from fintrack.services.storage import Collections, DocumentStore


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The `audit_events` collection (when a store is attached)
    """

    def __init__(
        self,
        store: Optional[DocumentStore] = None,
    ):
        """
        Initialize audit logger.

        Args:
            store: Document store for persistence.
                   If None, only logs locally.
        """
        self._store = store
        self._logger = structlog.get_logger("fintrack.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to the store if available.

        Returns True if the store write succeeded (or no store configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._store:
            try:
                await self._store.add(Collections.AUDIT_EVENTS, event.to_document())
                return True
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_entity_change(
        self,
        event_type: AuditEventType,
        user_id: str,
        entity_type: str,
        entity_id: str,
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        """Log creation, update or deletion of an institution, account, template or due."""
        await self.log(AuditEventBuilder.entity_changed(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details,
        ))

    async def log_rejected(
        self,
        user_id: Optional[str],
        operation: str,
        error: Exception,
        entity_id: Optional[str] = None,
    ) -> None:
        """Log an operation refused by validation, ownership or consistency checks."""
        await self.log(AuditEventBuilder.operation_rejected(
            user_id=user_id,
            operation=operation,
            error=error,
            entity_id=entity_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
    ) -> None:
        """Log an unexpected error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            user_id=user_id,
        ))
