"""
Application wiring

Builds the document store, audit logger and services from settings.
The Streamlit app and scripts get every component from
create_app_components() instead of constructing them by hand.
"""

from typing import NamedTuple, Optional

import structlog

from fintrack.audit import AuditLogger
from fintrack.config import get_settings
from fintrack.config.settings import AppSettings
from fintrack.ledger import EntityStore, LedgerOperations, SpendingService
from fintrack.queries import DashboardService
from fintrack.services.storage import DocumentStore, InMemoryDocumentStore, StorageError


logger = structlog.get_logger(__name__)


class AppComponents(NamedTuple):
    store: DocumentStore
    audit_logger: AuditLogger
    entities: EntityStore
    ledger: LedgerOperations
    spending: SpendingService
    dashboard: DashboardService
    backend: str


def create_store(backend: str) -> DocumentStore:
    """Instantiate the configured document store."""
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "firestore":
        from fintrack.services.storage.firestore import FirestoreClient, FirestoreDocumentStore

        client = FirestoreClient()
        client.connect()
        return FirestoreDocumentStore(client)
    raise ValueError(f"Unknown storage backend: {backend}")


def create_app_components(
    app_settings: Optional[AppSettings] = None,
    store: Optional[DocumentStore] = None,
    fallback_to_memory: bool = False,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        app_settings: Settings to use (defaults to the cached settings)
        store: Pre-built store (tests pass an InMemoryDocumentStore)
        fallback_to_memory: Use an in-memory store if Firestore can't be reached

    Returns:
        AppComponents with every service wired to the same store
    """
    app_settings = app_settings or get_settings().app
    backend = app_settings.storage_backend

    if store is None:
        try:
            store = create_store(backend)
        except (StorageError, ValueError) as e:
            if not fallback_to_memory:
                raise
            # Storage not configured - continue in memory
            logger.warning("storage_unavailable", backend=backend, error=str(e))
            store = InMemoryDocumentStore()
            backend = "memory"
    else:
        backend = "memory" if isinstance(store, InMemoryDocumentStore) else backend

    audit_logger = AuditLogger(store)
    entities = EntityStore(store, audit_logger)
    ledger = LedgerOperations(store, audit_logger)
    spending = SpendingService(
        store,
        audit_logger,
        allow_partial_payments=app_settings.allow_partial_payments,
        cap_payments_at_planned=app_settings.cap_payments_at_planned,
    )
    dashboard = DashboardService(
        entities,
        ledger,
        spending,
        recent_limit=app_settings.recent_transactions_limit,
        due_soon_days=app_settings.due_soon_days,
    )

    return AppComponents(
        store=store,
        audit_logger=audit_logger,
        entities=entities,
        ledger=ledger,
        spending=spending,
        dashboard=dashboard,
        backend=backend,
    )
