"""
Ledger package: entity store, balance operations and the recurring-bill engine.
"""

from fintrack.ledger.entities import EntityStore
from fintrack.ledger.errors import (
    AccessDeniedError,
    AmountPrecisionError,
    AccountNotFoundError,
    ConsistencyError,
    CurrencyMismatchError,
    DueAlreadyPaidError,
    DueNotFoundError,
    EntityNotFoundError,
    InstitutionNotFoundError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidMonthError,
    InvalidRateError,
    LedgerError,
    LedgerValidationError,
    PlannedBelowPaidError,
    RecurringBillNotFoundError,
    SameAccountError,
    SameCurrencyError,
)
from fintrack.ledger.operations import LedgerOperations
from fintrack.ledger.spending import SpendingService

__all__ = [
    # Services
    "EntityStore",
    "LedgerOperations",
    "SpendingService",
    # Errors
    "AccessDeniedError",
    "AmountPrecisionError",
    "AccountNotFoundError",
    "ConsistencyError",
    "CurrencyMismatchError",
    "DueAlreadyPaidError",
    "DueNotFoundError",
    "EntityNotFoundError",
    "InstitutionNotFoundError",
    "InsufficientFundsError",
    "InvalidAmountError",
    "InvalidMonthError",
    "InvalidRateError",
    "LedgerError",
    "LedgerValidationError",
    "PlannedBelowPaidError",
    "RecurringBillNotFoundError",
    "SameAccountError",
    "SameCurrencyError",
]
