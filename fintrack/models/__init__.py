"""
Data Models Package

This package contains all Pydantic models used in the finance tracker.
Everything read from or written to the document store goes through them.
"""

from fintrack.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from fintrack.models.base import DocumentModel, ensure_utc, utcnow
from fintrack.models.catalog import (
    AMOUNT_TYPE_LABELS,
    INSTITUTION_KIND_LABELS,
    SUPPORTED_CURRENCIES,
    AmountType,
    InstitutionKind,
    normalize_currency,
)
from fintrack.models.entities import Account, Institution
from fintrack.models.spending import (
    BillDue,
    DueStatus,
    Payment,
    PaymentReceipt,
    RecurringBill,
    derive_due_status,
    due_date_for_month,
    month_bounds,
    month_key,
    parse_month,
)
from fintrack.models.transactions import (
    ExpenseTransaction,
    FxTransaction,
    IncomeTransaction,
    Transaction,
    TransferTransaction,
    transaction_from_document,
)

__all__ = [
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
    # Base
    "DocumentModel",
    "ensure_utc",
    "utcnow",
    # Catalog
    "AMOUNT_TYPE_LABELS",
    "INSTITUTION_KIND_LABELS",
    "SUPPORTED_CURRENCIES",
    "AmountType",
    "InstitutionKind",
    "normalize_currency",
    # Entities
    "Account",
    "Institution",
    # Spending
    "BillDue",
    "DueStatus",
    "Payment",
    "PaymentReceipt",
    "RecurringBill",
    "derive_due_status",
    "due_date_for_month",
    "month_bounds",
    "month_key",
    "parse_month",
    # Transactions
    "ExpenseTransaction",
    "FxTransaction",
    "IncomeTransaction",
    "Transaction",
    "TransferTransaction",
    "transaction_from_document",
]
