"""Services package."""

from fintrack.services.auth import (
    AuthenticationError,
    AuthSession,
    FirebaseAuthService,
)
from fintrack.services.storage import (
    Collections,
    ConnectionError,
    DocumentQuery,
    DocumentSnapshot,
    DocumentStore,
    InMemoryDocumentStore,
    NotFoundError,
    StorageError,
    StoreTransaction,
    Subscription,
    TransactionAbortedError,
)

__all__ = [
    # Auth services
    "AuthenticationError",
    "AuthSession",
    "FirebaseAuthService",
    # Storage services
    "Collections",
    "ConnectionError",
    "DocumentQuery",
    "DocumentSnapshot",
    "DocumentStore",
    "InMemoryDocumentStore",
    "NotFoundError",
    "StorageError",
    "StoreTransaction",
    "Subscription",
    "TransactionAbortedError",
]
