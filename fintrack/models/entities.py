"""
Institutions and accounts.

An Institution groups accounts (a bank, a wallet, a broker, cash).
An Account holds a balance in exactly one currency.

CRITICAL: Account.balance is only ever changed by ledger operations.
The entity store never writes it after creation.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator

from fintrack.models.base import DocumentModel, utcnow
from fintrack.models.catalog import (
    INSTITUTION_KIND_LABELS,
    InstitutionKind,
    normalize_currency,
)


class Institution(DocumentModel):
    """A financial entity owned by a user."""

    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=120)
    kind: InstitutionKind
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def kind_label(self) -> str:
        return INSTITUTION_KIND_LABELS[self.kind]


class Account(DocumentModel):
    """A balance-holding entry under an institution."""

    user_id: str = Field(..., min_length=1)
    institution_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=120)
    currency: str
    balance: Decimal = Field(
        default=Decimal("0"),
        ge=0,
        description="Current balance; never negative",
    )
    created_at: Optional[datetime] = Field(default_factory=utcnow)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)
