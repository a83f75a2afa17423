"""Tests for settings and application wiring."""

import pytest
from decimal import Decimal
from unittest.mock import patch

from pydantic import ValidationError

from fintrack.config import AppSettings
from fintrack.ledger import InsufficientFundsError
from fintrack.orchestrator import create_app_components, create_store
from fintrack.services.storage import ConnectionError, InMemoryDocumentStore

from conftest import USER, run


class TestSettings:
    """Application settings."""

    def test_defaults(self):
        settings = AppSettings(_env_file=None)
        assert settings.allow_partial_payments is True
        assert settings.cap_payments_at_planned is True
        assert settings.due_soon_days == 3

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "memory")
        monkeypatch.setenv("ALLOW_PARTIAL_PAYMENTS", "false")
        settings = AppSettings(_env_file=None)
        assert settings.storage_backend == "memory"
        assert settings.allow_partial_payments is False

    def test_unknown_backend_is_rejected(self):
        with pytest.raises(ValidationError):
            AppSettings(_env_file=None, storage_backend="sheets")


class TestWiring:
    """create_app_components."""

    def test_memory_backend(self):
        components = create_app_components(AppSettings(_env_file=None, storage_backend="memory"))
        assert components.backend == "memory"
        assert isinstance(components.store, InMemoryDocumentStore)

    def test_services_share_one_store(self):
        components = create_app_components(AppSettings(_env_file=None, storage_backend="memory"))
        bank = run(components.entities.create_institution(USER, "Bank", "bank_physical"))
        account = run(components.entities.create_account(USER, bank, "Savings", "ARS", Decimal("10")))
        run(components.ledger.record_income(USER, account, Decimal("5")))

        snapshot = run(components.dashboard.snapshot(USER, "2024-02"))
        assert snapshot.balances == {"ARS": Decimal("15")}

    def test_payment_policy_comes_from_settings(self):
        components = create_app_components(
            AppSettings(_env_file=None, storage_backend="memory", allow_partial_payments=False)
        )
        entities, spending = components.entities, components.spending
        bank = run(entities.create_institution(USER, "Bank", "bank_physical"))
        account = run(entities.create_account(USER, bank, "Savings", "ARS", Decimal("10")))
        due = run(spending.create_one_off_due(USER, "Fee", "ARS", spending.now(), Decimal("50")))

        with pytest.raises(InsufficientFundsError):
            run(spending.pay_due(USER, due, account, Decimal("50")))

    def test_firestore_failure_can_fall_back_to_memory(self):
        settings = AppSettings(_env_file=None, storage_backend="firestore")
        with patch("fintrack.orchestrator.create_store", side_effect=ConnectionError("no credentials")):
            components = create_app_components(settings, fallback_to_memory=True)
            assert components.backend == "memory"

            with pytest.raises(ConnectionError):
                create_app_components(settings)

    def test_create_store_rejects_unknown_backend(self):
        with pytest.raises(ValueError):
            create_store("sheets")
