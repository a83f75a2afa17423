"""Tests for audit events and the audit logger."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from fintrack.audit import AuditLogger
from fintrack.ledger import InsufficientFundsError
from fintrack.models import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from fintrack.services.storage import Collections, StorageError

from conftest import run


class TestAuditModels:
    """Tests for audit models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            user_id="u",
            entity_type="account",
            entity_id="acc-1",
            description="Account created",
        )
        assert event.event_type == AuditEventType.ACCOUNT_CREATED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        event = AuditEventBuilder.transfer_completed(
            "u", "tx-1", "a", "b", Decimal("100.50"), "ARS",
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "transfer_completed"
        assert log_dict["details"]["amount"] == "100.50"
        assert "timestamp" in log_dict

    def test_audit_event_to_document(self):
        event = AuditEventBuilder.income_recorded("u", "tx-1", "a", Decimal("5"), "USD")
        doc = event.to_document()
        assert doc["eventType"] == "income_recorded"
        assert doc["entityId"] == "tx-1"
        assert doc["details"]["amount"] == 5.0

    def test_rejection_carries_error_class(self):
        error = InsufficientFundsError("acc", Decimal("1"), Decimal("2"))
        event = AuditEventBuilder.operation_rejected("u", "transfer", error, entity_id="acc")
        assert event.severity == AuditSeverity.WARNING
        assert event.error_code == "InsufficientFundsError"
        assert "Insufficient funds" in event.error_message
        assert event.details == {"operation": "transfer"}

    def test_dues_generated(self):
        event = AuditEventBuilder.dues_generated("u", "2024-02", 3)
        assert event.details == {"month": "2024-02", "created": 3}


class TestAuditLogger:
    """Tests for the audit logger."""

    def test_without_store_only_logs_locally(self):
        logger = AuditLogger()
        event = AuditEventBuilder.dues_generated("u", "2024-02", 0)
        assert run(logger.log(event)) is True

    def test_events_are_persisted(self, store):
        logger = AuditLogger(store)
        run(logger.log_entity_change(
            AuditEventType.INSTITUTION_CREATED, "u", "institution", "i-1", "Institution created",
        ))
        (doc,) = store.dump(Collections.AUDIT_EVENTS).values()
        assert doc["entityType"] == "institution"
        assert doc["userId"] == "u"

    def test_storage_failure_does_not_raise(self):
        failing = MagicMock()
        failing.add = AsyncMock(side_effect=StorageError("offline"))
        logger = AuditLogger(failing)

        ok = run(logger.log(AuditEventBuilder.dues_generated("u", "2024-02", 1)))

        assert ok is False
        failing.add.assert_awaited_once()

    def test_log_error(self, store):
        logger = AuditLogger(store)
        run(logger.log_error("ConnectionError", "Firestore unreachable", user_id="u"))
        (doc,) = store.dump(Collections.AUDIT_EVENTS).values()
        assert doc["eventType"] == "system_error"
        assert doc["severity"] == "error"
