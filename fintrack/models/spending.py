"""
Spending Models: recurring bill templates, month dues, and payments

A RecurringBill is a monthly template. It never holds running state.
A BillDue is one month's concrete instance of an expected payment, either
generated from a template or entered ad hoc. Payments against a due are
kept in its `payments` sub-collection.

DESIGN DECISION: Due status is DERIVED from (amount_planned, amount_paid,
due_date). The stored value is a snapshot taken at the last write; read
paths call current_status() to get the live value.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator, model_validator

from fintrack.models.base import DocumentModel, ensure_utc, utcnow
from fintrack.models.catalog import AmountType, normalize_currency


MIN_DUE_DAY = 1
MAX_DUE_DAY = 28  # every month has a 28th

_MONTH_KEY = re.compile(r"^(\d{4})-(\d{2})$")


class DueStatus(str, Enum):
    """Payment status of a bill due."""
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"
    OVERDUE = "overdue"


# =============================================================================
# MONTH HELPERS
# =============================================================================

def parse_month(month: str) -> tuple[int, int]:
    """
    Parse a "YYYY-MM" month key into (year, month).

    Raises:
        ValueError: If the key is malformed or the month is out of range
    """
    match = _MONTH_KEY.match(month or "")
    if not match:
        raise ValueError(f"Invalid month key: {month!r} (expected YYYY-MM)")
    year, mon = int(match.group(1)), int(match.group(2))
    if not 1 <= mon <= 12:
        raise ValueError(f"Invalid month key: {month!r} (month out of range)")
    return year, mon


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """Half-open UTC interval [start, end) covering the month."""
    year, mon = parse_month(month)
    start = datetime(year, mon, 1, tzinfo=timezone.utc)
    if mon == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, mon + 1, 1, tzinfo=timezone.utc)
    return start, end


def month_key(moment: datetime) -> str:
    """The "YYYY-MM" key of the UTC month containing `moment`."""
    moment = ensure_utc(moment)
    return f"{moment.year:04d}-{moment.month:02d}"


def clamp_due_day(day: int) -> int:
    return min(max(day, MIN_DUE_DAY), MAX_DUE_DAY)


def due_date_for_month(day_of_month: int, month: str) -> datetime:
    """UTC midnight on the (clamped) day of the given month."""
    year, mon = parse_month(month)
    return datetime(year, mon, clamp_due_day(day_of_month), tzinfo=timezone.utc)


def derive_due_status(
    amount_planned: Decimal,
    amount_paid: Decimal,
    due_date: datetime,
    now: datetime,
) -> DueStatus:
    """
    Compute a due's status.

    Order matters: a fully paid due is PAID even after its due date.
    """
    if amount_planned > 0 and amount_paid >= amount_planned:
        return DueStatus.PAID
    if ensure_utc(due_date) < ensure_utc(now):
        return DueStatus.OVERDUE
    if amount_paid > 0:
        return DueStatus.PARTIAL
    return DueStatus.PENDING


# =============================================================================
# TEMPLATES
# =============================================================================

class RecurringBill(DocumentModel):
    """
    Monthly payment template.

    day_of_month is clamped into [1, 28] so every month has the day.
    """

    user_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1, max_length=200)
    currency: str
    amount_type: AmountType
    amount: Optional[Decimal] = Field(default=None, ge=0)
    day_of_month: int = Field(default=1)
    default_account_id: Optional[str] = None
    institution_id: Optional[str] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    active: bool = True
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)

    @field_validator("day_of_month")
    @classmethod
    def clamp_day(cls, v: int) -> int:
        return clamp_due_day(v)

    @field_validator("default_account_id", "institution_id", "notes")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def planned_amount(self) -> Decimal:
        """Amount a generated due expects. Variable bills start at zero."""
        if self.amount_type in (AmountType.FIXED, AmountType.ESTIMATE):
            return self.amount or Decimal("0")
        return Decimal("0")


# =============================================================================
# DUES AND PAYMENTS
# =============================================================================

class BillDue(DocumentModel):
    """
    One month's instance of an expected payment.

    title and currency are snapshotted from the template at creation and
    do not follow later template edits.
    """

    user_id: str = Field(..., min_length=1)
    bill_id: Optional[str] = Field(
        default=None,
        description="Originating template, absent for one-off dues",
    )
    title: str = Field(..., min_length=1, max_length=200)
    currency: str
    amount_planned: Decimal = Field(default=Decimal("0"), ge=0)
    amount_paid: Decimal = Field(default=Decimal("0"), ge=0)
    due_date: datetime
    status: DueStatus = DueStatus.PENDING
    plan_account_id: Optional[str] = Field(
        default=None,
        description="Suggested account to pay from",
    )
    account_id: Optional[str] = Field(
        default=None,
        description="Last account used to pay",
    )
    created_at: datetime = Field(default_factory=utcnow)

    @field_validator("currency")
    @classmethod
    def validate_currency(cls, v: str) -> str:
        return normalize_currency(v)

    @property
    def remaining(self) -> Decimal:
        return max(Decimal("0"), self.amount_planned - self.amount_paid)

    @property
    def is_settled(self) -> bool:
        """True when nothing remains to pay (dashboard grouping)."""
        return self.remaining <= 0

    def current_status(self, now: Optional[datetime] = None) -> DueStatus:
        """Live status at `now` (defaults to the current time)."""
        return derive_due_status(
            self.amount_planned,
            self.amount_paid,
            self.due_date,
            now or utcnow(),
        )


class Payment(DocumentModel):
    """A single payment event against a BillDue."""

    user_id: str = Field(..., min_length=1)
    due_id: str
    account_id: str
    transaction_id: str
    amount: Decimal = Field(..., gt=0)
    created_at: datetime = Field(default_factory=utcnow)


class PaymentReceipt(DocumentModel):
    """
    Outcome of pay_due, returned to the caller.

    Not persisted; `requested` and `applied` differ when the payment was
    clamped to the available balance or the remaining amount.
    """

    due_id: str
    account_id: str
    transaction_id: str
    payment_id: str
    requested: Decimal
    applied: Decimal
    amount_paid: Decimal
    status: DueStatus

    @model_validator(mode="after")
    def validate_applied(self) -> "PaymentReceipt":
        if self.applied > self.requested:
            raise ValueError("Applied amount cannot exceed the requested amount")
        return self

    @property
    def was_clamped(self) -> bool:
        return self.applied < self.requested
