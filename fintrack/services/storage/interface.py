"""
Abstract Document Store Interface

DESIGN DECISION: Business logic talks to an abstract document store.
This allows us to:
1. Run against Cloud Firestore in production
2. Use an in-memory store for testing
3. Keep ledger logic decoupled from the vendor client

The interface is intentionally small - collections of schemaless documents,
filtered queries, single-store transactions and live subscriptions.
Nothing more than the ledger needs.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Literal, Optional, TypeVar

from pydantic import BaseModel, Field


T = TypeVar("T")

FilterOp = Literal["==", "!=", "<", "<=", ">", ">="]


class Collections:
    """Collection names shared by every backend."""
    INSTITUTIONS = "institutions"
    ACCOUNTS = "accounts"
    TRANSACTIONS = "transactions"
    RECURRING_BILLS = "recurring_bills"
    BILL_DUES = "bill_dues"
    AUDIT_EVENTS = "audit_events"

    @staticmethod
    def payments(due_id: str) -> str:
        """Path of a due's payments sub-collection."""
        return f"{Collections.BILL_DUES}/{due_id}/payments"


class FieldFilter(BaseModel):
    """A single `field <op> value` condition."""

    field: str
    op: FilterOp
    value: Any


class DocumentQuery(BaseModel):
    """
    A filtered, ordered view over one collection.

    Build with the fluent helpers:
        DocumentQuery(collection="accounts").where("userId", "==", uid)
    """

    collection: str
    filters: list[FieldFilter] = Field(default_factory=list)
    order_by: Optional[str] = None
    descending: bool = False
    limit: Optional[int] = Field(default=None, ge=1)

    def where(self, field: str, op: FilterOp, value: Any) -> "DocumentQuery":
        return self.model_copy(
            update={"filters": [*self.filters, FieldFilter(field=field, op=op, value=value)]}
        )

    def ordered(self, field: str, descending: bool = False) -> "DocumentQuery":
        return self.model_copy(update={"order_by": field, "descending": descending})

    def limited(self, limit: int) -> "DocumentQuery":
        return self.model_copy(update={"limit": limit})


class DocumentSnapshot(BaseModel):
    """A document id together with its data at read time."""

    id: str
    data: dict[str, Any]


SnapshotCallback = Callable[[list[DocumentSnapshot]], None]
ErrorCallback = Callable[[Exception], None]


class Subscription(ABC):
    """Handle to a live query. Unsubscribing stops further callbacks."""

    @abstractmethod
    def unsubscribe(self) -> None:
        pass


class StoreTransaction(ABC):
    """
    Read-modify-write unit handed to DocumentStore.run_transaction.

    All reads must happen before the first write. Writes are buffered and
    applied together when the transaction function returns; if it raises,
    nothing is applied.
    """

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Read a document, or None if it does not exist."""
        pass

    @abstractmethod
    def create(self, collection: str, data: dict[str, Any]) -> str:
        """Queue creation of a new document and return its id."""
        pass

    @abstractmethod
    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        """Queue a partial update of an existing document."""
        pass

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Queue deletion of a document."""
        pass


class DocumentStore(ABC):
    """
    Abstract interface for the hosted document database.

    Any backend (Firestore, in-memory) must implement these methods.
    """

    @abstractmethod
    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        """
        Read one document.

        Returns:
            The document data, or None if it does not exist
        """
        pass

    @abstractmethod
    async def add(self, collection: str, data: dict[str, Any]) -> str:
        """
        Create a document with a generated id.

        Returns:
            The new document id
        """
        pass

    @abstractmethod
    async def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        """
        Merge changes into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
        """
        pass

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted
        """
        pass

    @abstractmethod
    async def query(self, query: DocumentQuery) -> list[DocumentSnapshot]:
        """Run a query once and return the matching documents."""
        pass

    @abstractmethod
    async def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        """
        Run `fn` as one atomic read-modify-write.

        Either every write queued by `fn` is applied or none is. Exceptions
        raised by `fn` propagate unchanged.
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        query: DocumentQuery,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        """
        Watch a query.

        `on_next` receives the full result set once immediately and again
        after every change that affects the queried collection.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class TransactionAbortedError(StorageError):
    """The backend gave up on a transaction (contention or misuse)."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
