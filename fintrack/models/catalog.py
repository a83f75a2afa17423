"""
Static catalogs consumed by forms and validators.

DESIGN DECISION: Currencies are free-form tickers on accounts (fiat or
crypto), so SUPPORTED_CURRENCIES is only the list offered by the UI.
Institution kinds and amount types are closed sets and live as enums.
"""

from enum import Enum


SUPPORTED_CURRENCIES: tuple[str, ...] = ("ARS", "USD", "EUR", "BTC", "ETH", "USDT")


class InstitutionKind(str, Enum):
    """Kind of financial institution grouping accounts."""
    BANK_PHYSICAL = "bank_physical"
    BANK_VIRTUAL = "bank_virtual"
    WALLET = "wallet"
    BROKER = "broker"
    CRYPTO_EXCHANGE = "crypto_exchange"
    CASH = "cash"


INSTITUTION_KIND_LABELS: dict[InstitutionKind, str] = {
    InstitutionKind.BANK_PHYSICAL: "Physical bank",
    InstitutionKind.BANK_VIRTUAL: "Virtual bank",
    InstitutionKind.WALLET: "Digital wallet",
    InstitutionKind.BROKER: "Broker",
    InstitutionKind.CRYPTO_EXCHANGE: "Crypto exchange",
    InstitutionKind.CASH: "Cash",
}


class AmountType(str, Enum):
    """
    How a recurring bill's amount is known in advance.

    FIXED and ESTIMATE carry an amount on the template.
    VARIABLE dues start at zero and are edited once the bill arrives.
    """
    FIXED = "fixed"
    ESTIMATE = "estimate"
    VARIABLE = "variable"


AMOUNT_TYPE_LABELS: dict[AmountType, str] = {
    AmountType.FIXED: "Fixed",
    AmountType.ESTIMATE: "Estimate",
    AmountType.VARIABLE: "Variable",
}


def normalize_currency(code: str) -> str:
    """Upper-case and strip a currency ticker. Empty codes are rejected."""
    normalized = (code or "").strip().upper()
    if not normalized:
        raise ValueError("Currency code is required")
    return normalized
