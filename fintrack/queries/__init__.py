"""Dashboard aggregation package."""

from fintrack.queries.dashboard import (
    CurrencyTotals,
    DashboardService,
    DashboardSnapshot,
    InstitutionSummary,
    MonthSummary,
    balances_by_currency,
    summarize_institutions,
    summarize_month,
)

__all__ = [
    "CurrencyTotals",
    "DashboardService",
    "DashboardSnapshot",
    "InstitutionSummary",
    "MonthSummary",
    "balances_by_currency",
    "summarize_institutions",
    "summarize_month",
]
