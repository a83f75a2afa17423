"""
Shared fixtures.

Services are async; tests stay synchronous and drive them through run(),
the same way the Streamlit app does. Everything runs against the
in-memory store with a fixed clock.
"""

import asyncio
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from fintrack.audit import AuditLogger
from fintrack.ledger import EntityStore, LedgerOperations, SpendingService
from fintrack.models import InstitutionKind
from fintrack.queries import DashboardService
from fintrack.services.storage import InMemoryDocumentStore


USER = "user-1"
OTHER_USER = "user-2"

# Mid-February 2024, UTC
NOW = datetime(2024, 2, 15, 12, 0, tzinfo=timezone.utc)


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


def fixed_clock():
    return NOW


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def audit_logger(store):
    return AuditLogger(store)


@pytest.fixture
def entities(store, audit_logger):
    return EntityStore(store, audit_logger, clock=fixed_clock)


@pytest.fixture
def ledger(store, audit_logger):
    return LedgerOperations(store, audit_logger, clock=fixed_clock)


@pytest.fixture
def spending(store, audit_logger):
    return SpendingService(store, audit_logger, clock=fixed_clock)


@pytest.fixture
def dashboard(entities, ledger, spending):
    return DashboardService(entities, ledger, spending)


@pytest.fixture
def bank(entities):
    """An institution owned by USER."""
    return run(entities.create_institution(USER, "Banco Nación", InstitutionKind.BANK_PHYSICAL))


@pytest.fixture
def make_account(entities, bank):
    """Factory for USER accounts under `bank`."""
    def _make(name: str, currency: str = "ARS", balance="0", institution_id=None) -> str:
        return run(entities.create_account(
            USER, institution_id or bank, name, currency, Decimal(str(balance))
        ))
    return _make


def balance(entities, account_id: str, user_id: str = USER) -> Decimal:
    return run(entities.get_account(user_id, account_id)).balance
