"""
Audit Models

Every ledger mutation and every rejected operation is recorded as an
audit event. This gives a readable history next to the transaction log,
and a trail for operations that never made it into the log.

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from fintrack.models.base import to_store_value, utcnow


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Entities
    INSTITUTION_CREATED = "institution_created"
    INSTITUTION_UPDATED = "institution_updated"
    INSTITUTION_DELETED = "institution_deleted"
    ACCOUNT_CREATED = "account_created"
    ACCOUNT_UPDATED = "account_updated"
    ACCOUNT_DELETED = "account_deleted"

    # Ledger
    TRANSFER_COMPLETED = "transfer_completed"
    FX_COMPLETED = "fx_completed"
    INCOME_RECORDED = "income_recorded"

    # Spending
    BILL_TEMPLATE_CREATED = "bill_template_created"
    BILL_TEMPLATE_UPDATED = "bill_template_updated"
    BILL_TEMPLATE_DELETED = "bill_template_deleted"
    DUES_GENERATED = "dues_generated"
    DUE_CREATED = "due_created"
    DUE_UPDATED = "due_updated"
    DUE_DELETED = "due_deleted"
    DUE_PAYMENT_APPLIED = "due_payment_applied"

    # Failures
    OPERATION_REJECTED = "operation_rejected"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    entity_id is a store document id, not a UUID.
    """

    event_id: UUID = Field(default_factory=uuid4)
    timestamp: datetime = Field(default_factory=utcnow)

    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    user_id: Optional[str] = Field(
        default=None,
        description="Owner the event belongs to",
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'account', 'bill_due')",
    )
    entity_id: Optional[str] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """Convert to a dictionary suitable for structured logging."""
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "description": self.description,
            "details": {k: str(v) if isinstance(v, Decimal) else v for k, v in self.details.items()},
            "error_code": self.error_code,
            "error_message": self.error_message,
        }

    def to_document(self) -> dict:
        """Convert to a document for the `audit_events` collection."""
        return to_store_value({
            "eventId": str(self.event_id),
            "timestamp": self.timestamp,
            "eventType": self.event_type.value,
            "severity": self.severity.value,
            "userId": self.user_id,
            "entityType": self.entity_type,
            "entityId": self.entity_id,
            "description": self.description,
            "details": self.details,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
        })


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transfer_completed(user_id, tx_id, ...)
        event = AuditEventBuilder.operation_rejected(user_id, "pay_due", exc)
    """

    @staticmethod
    def entity_changed(
        event_type: AuditEventType,
        user_id: str,
        entity_type: str,
        entity_id: str,
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def transfer_completed(
        user_id: str,
        transaction_id: str,
        from_account_id: str,
        to_account_id: str,
        amount: Decimal,
        currency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_COMPLETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Transferred {amount} {currency}",
            details={
                "from_account_id": from_account_id,
                "to_account_id": to_account_id,
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def fx_completed(
        user_id: str,
        transaction_id: str,
        sell_amount: Decimal,
        sell_currency: str,
        buy_amount: Decimal,
        buy_currency: str,
        rate: Decimal,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FX_COMPLETED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Exchanged {sell_amount} {sell_currency} for {buy_amount} {buy_currency}",
            details={
                "sell_amount": sell_amount,
                "sell_currency": sell_currency,
                "buy_amount": buy_amount,
                "buy_currency": buy_currency,
                "rate": rate,
            },
        )

    @staticmethod
    def income_recorded(
        user_id: str,
        transaction_id: str,
        account_id: str,
        amount: Decimal,
        currency: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INCOME_RECORDED,
            user_id=user_id,
            entity_type="transaction",
            entity_id=transaction_id,
            description=f"Income of {amount} {currency}",
            details={
                "account_id": account_id,
                "amount": amount,
                "currency": currency,
            },
        )

    @staticmethod
    def dues_generated(user_id: str, month: str, created: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUES_GENERATED,
            user_id=user_id,
            entity_type="bill_due",
            description=f"Generated {created} dues for {month}",
            details={
                "month": month,
                "created": created,
            },
        )

    @staticmethod
    def due_payment_applied(
        user_id: str,
        due_id: str,
        account_id: str,
        requested: Decimal,
        applied: Decimal,
        status: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUE_PAYMENT_APPLIED,
            user_id=user_id,
            entity_type="bill_due",
            entity_id=due_id,
            description=f"Paid {applied} against due (status: {status})",
            details={
                "account_id": account_id,
                "requested": requested,
                "applied": applied,
                "status": status,
            },
        )

    @staticmethod
    def operation_rejected(
        user_id: Optional[str],
        operation: str,
        error: Exception,
        entity_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OPERATION_REJECTED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_id=entity_id,
            description=f"Operation rejected: {operation}",
            error_code=type(error).__name__,
            error_message=str(error),
            details={"operation": operation},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
        )
