"""
Dashboard Aggregation

Pure functions that turn accounts, institutions and dues into the numbers
the dashboard shows, plus DashboardService which loads everything for one
user and month.

Totals are never mixed across currencies: every sum is keyed by currency.
"""

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from fintrack.ledger import EntityStore, LedgerOperations, SpendingService
from fintrack.models.base import ensure_utc
from fintrack.models.catalog import INSTITUTION_KIND_LABELS, InstitutionKind
from fintrack.models.entities import Account, Institution
from fintrack.models.spending import BillDue
from fintrack.models.transactions import Transaction


class InstitutionSummary(BaseModel):
    """One institution card: per-currency totals of its accounts."""

    institution_id: str
    name: str
    kind: InstitutionKind
    kind_label: str
    per_currency: dict[str, Decimal] = Field(default_factory=dict)
    account_count: int = 0


class CurrencyTotals(BaseModel):
    planned: Decimal = Decimal("0")
    paid: Decimal = Decimal("0")

    @property
    def remaining(self) -> Decimal:
        return max(Decimal("0"), self.planned - self.paid)


class MonthSummary(BaseModel):
    """A month's dues split into settled and outstanding."""

    paid: list[BillDue] = Field(default_factory=list)
    unpaid: list[BillDue] = Field(default_factory=list)
    totals: dict[str, CurrencyTotals] = Field(default_factory=dict)
    due_soon: list[str] = Field(
        default_factory=list,
        description="Ids of unpaid dues falling due within the alert window",
    )


class DashboardSnapshot(BaseModel):
    month: str
    balances: dict[str, Decimal]
    institutions: list[InstitutionSummary]
    recent_transactions: list[Transaction]
    month_summary: MonthSummary


def balances_by_currency(accounts: Iterable[Account]) -> dict[str, Decimal]:
    """Sum of balances per currency, sorted by currency code."""
    totals: dict[str, Decimal] = defaultdict(lambda: Decimal("0"))
    for account in accounts:
        totals[account.currency] += account.balance
    return dict(sorted(totals.items()))


def summarize_institutions(
    institutions: Iterable[Institution],
    accounts: Iterable[Account],
) -> list[InstitutionSummary]:
    """One summary per institution, in name order. Institutions without accounts are kept."""
    by_institution: dict[str, list[Account]] = defaultdict(list)
    for account in accounts:
        by_institution[account.institution_id].append(account)

    summaries = []
    for institution in sorted(institutions, key=lambda i: i.name.lower()):
        owned = by_institution.get(institution.id, [])
        summaries.append(InstitutionSummary(
            institution_id=institution.id,
            name=institution.name,
            kind=institution.kind,
            kind_label=INSTITUTION_KIND_LABELS[institution.kind],
            per_currency=balances_by_currency(owned),
            account_count=len(owned),
        ))
    return summaries


def summarize_month(
    dues: Iterable[BillDue],
    now: datetime,
    due_soon_days: int = 3,
) -> MonthSummary:
    """
    Group dues by whether anything remains to pay.

    An unpaid due is "due soon" when its due date is at most
    `due_soon_days` days away (overdue ones included).
    """
    summary = MonthSummary()
    horizon = ensure_utc(now) + timedelta(days=due_soon_days)

    for due in sorted(dues, key=lambda d: d.due_date):
        totals = summary.totals.setdefault(due.currency, CurrencyTotals())
        totals.planned += due.amount_planned
        totals.paid += due.amount_paid

        if due.is_settled:
            summary.paid.append(due)
        else:
            summary.unpaid.append(due)
            if due.due_date <= horizon:
                summary.due_soon.append(due.id)

    summary.totals = dict(sorted(summary.totals.items()))
    return summary


class DashboardService:
    """Loads one user's dashboard in a single call."""

    def __init__(
        self,
        entities: EntityStore,
        ledger: LedgerOperations,
        spending: SpendingService,
        recent_limit: int = 10,
        due_soon_days: int = 3,
    ):
        self._entities = entities
        self._ledger = ledger
        self._spending = spending
        self._recent_limit = recent_limit
        self._due_soon_days = due_soon_days

    async def snapshot(self, user_id: str, month: str, now: Optional[datetime] = None) -> DashboardSnapshot:
        institutions = await self._entities.list_institutions(user_id)
        accounts = await self._entities.list_accounts(user_id)
        recent = await self._ledger.list_recent_transactions(user_id, self._recent_limit)
        dues = await self._spending.list_dues_for_month(user_id, month)

        return DashboardSnapshot(
            month=month,
            balances=balances_by_currency(accounts),
            institutions=summarize_institutions(institutions, accounts),
            recent_transactions=recent,
            month_summary=summarize_month(dues, now or self._spending.now(), self._due_soon_days),
        )
