"""
Storage Services Package

Provides the abstract document store interface and its implementations.
Cloud Firestore is the production backend; the in-memory store backs tests
and local runs. The Firestore module is imported lazily so the Firebase SDK
is only needed when that backend is selected.
"""

from fintrack.services.storage.interface import (
    Collections,
    ConnectionError,
    DocumentQuery,
    DocumentSnapshot,
    DocumentStore,
    FieldFilter,
    NotFoundError,
    StorageError,
    StoreTransaction,
    Subscription,
    TransactionAbortedError,
)
from fintrack.services.storage.memory import InMemoryDocumentStore

__all__ = [
    # Interfaces
    "Collections",
    "DocumentQuery",
    "DocumentSnapshot",
    "DocumentStore",
    "FieldFilter",
    "StoreTransaction",
    "Subscription",
    # Exceptions
    "ConnectionError",
    "NotFoundError",
    "StorageError",
    "TransactionAbortedError",
    # In-memory implementation
    "InMemoryDocumentStore",
]
