"""
Ledger transaction records.

Every balance-mutating action appends exactly one record to the
`transactions` collection. The log is append-only: records are frozen
once built and are never updated or deleted.

DESIGN DECISION: The four kinds share one collection but are separate
models joined in a discriminated union on `type`. Each variant carries only
its own fields instead of one record with many optional fields.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import ConfigDict, Field, TypeAdapter

from fintrack.models.base import DocumentModel, utcnow


class _TransactionBase(DocumentModel):
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    created_at: datetime = Field(default_factory=utcnow)


class TransferTransaction(_TransactionBase):
    """Same-currency move between two accounts."""

    type: Literal["transfer"] = "transfer"
    from_account_id: str
    to_account_id: str
    amount: Decimal = Field(..., gt=0)
    currency: str


class FxTransaction(_TransactionBase):
    """Currency conversion between two accounts at a given rate."""

    type: Literal["fx"] = "fx"
    from_account_id: str
    to_account_id: str
    sell_amount: Decimal = Field(..., gt=0)
    sell_currency: str
    buy_amount: Decimal = Field(..., gt=0)
    buy_currency: str
    rate: Decimal = Field(..., gt=0)


class IncomeTransaction(_TransactionBase):
    """Credit to a single account."""

    type: Literal["income"] = "income"
    account_id: str
    amount: Decimal = Field(..., gt=0)
    currency: str
    note: Optional[str] = Field(default=None, max_length=500)


class ExpenseTransaction(_TransactionBase):
    """Debit against a bill due."""

    type: Literal["expense"] = "expense"
    account_id: str
    amount: Decimal = Field(..., gt=0, description="Amount debited (positive)")
    currency: str
    title: Optional[str] = None
    due_id: Optional[str] = None


Transaction = Annotated[
    Union[TransferTransaction, FxTransaction, IncomeTransaction, ExpenseTransaction],
    Field(discriminator="type"),
]

_TRANSACTION_ADAPTER: TypeAdapter = TypeAdapter(Transaction)


def transaction_from_document(doc_id: str, data: dict[str, Any]) -> Transaction:
    """Rebuild the right transaction variant from a stored document."""
    return _TRANSACTION_ADAPTER.validate_python({**data, "id": doc_id})
