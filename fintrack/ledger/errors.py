"""
Ledger exceptions.

Four families, all raised synchronously to the caller and never retried:
- validation: the request itself is malformed
- access: the resource belongs to another user
- consistency: the request conflicts with the current ledger state
- not found: a referenced document does not exist

Atomic operations that raise leave every entity unchanged.
"""

from decimal import Decimal
from typing import Optional


class LedgerError(Exception):
    """Base exception for ledger operations."""
    pass


# Validation

class LedgerValidationError(LedgerError):
    """A required field is missing or invalid."""
    pass


class InvalidAmountError(LedgerValidationError):
    """Amount is missing, not a number, or not positive."""

    def __init__(self, amount: object, field: str = "amount"):
        self.amount = amount
        self.field = field
        super().__init__(f"Invalid {field}: {amount!r} (must be a positive number)")


class InvalidRateError(LedgerValidationError):
    """Exchange rate is not positive."""

    def __init__(self, rate: object):
        self.rate = rate
        super().__init__(f"Invalid exchange rate: {rate!r} (must be a positive number)")


class InvalidMonthError(LedgerValidationError):
    """Month key is not YYYY-MM."""
    pass


class SameAccountError(LedgerValidationError):
    """Source and destination accounts are the same."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__("Source and destination accounts must be different")


class AmountPrecisionError(LedgerValidationError):
    """A resulting amount cannot be stored without losing digits."""

    def __init__(self, value: Decimal):
        self.value = value
        super().__init__(f"Amount {value} has more digits than can be stored")


# Authorization

class AccessDeniedError(LedgerError):
    """The resource is owned by a different user."""

    def __init__(self, entity: str, entity_id: str):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"Access denied to {entity} {entity_id}")


# Consistency

class ConsistencyError(LedgerError):
    """The operation conflicts with current balances or currencies."""
    pass


class CurrencyMismatchError(ConsistencyError):

    def __init__(self, expected: str, actual: str, hint: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        message = f"Currency mismatch: expected {expected}, got {actual}"
        if hint:
            message = f"{message}. {hint}"
        super().__init__(message)


class SameCurrencyError(ConsistencyError):
    """An exchange was requested between two accounts of the same currency."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Exchange requires different currencies (both are {currency})")


class InsufficientFundsError(ConsistencyError):

    def __init__(self, account_id: str, balance: Decimal, requested: Decimal):
        self.account_id = account_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient funds in account {account_id}: balance {balance}, requested {requested}"
        )


class DueAlreadyPaidError(ConsistencyError):

    def __init__(self, due_id: str):
        self.due_id = due_id
        super().__init__(f"Due {due_id} is already fully paid")


class PlannedBelowPaidError(ConsistencyError):

    def __init__(self, due_id: str, planned: Decimal, paid: Decimal):
        self.due_id = due_id
        self.planned = planned
        self.paid = paid
        super().__init__(f"Due {due_id} already has {paid} paid, cannot plan {planned}")


# Not found

class EntityNotFoundError(LedgerError):
    """A referenced document does not exist."""

    entity = "entity"

    def __init__(self, entity_id: str):
        self.entity_id = entity_id
        super().__init__(f"{self.entity.capitalize()} not found: {entity_id}")


class InstitutionNotFoundError(EntityNotFoundError):
    entity = "institution"


class AccountNotFoundError(EntityNotFoundError):
    entity = "account"


class RecurringBillNotFoundError(EntityNotFoundError):
    entity = "recurring bill"


class DueNotFoundError(EntityNotFoundError):
    entity = "due"
