"""
In-Memory Document Store

A process-local implementation of DocumentStore with the same semantics as
the Firestore backend: filtered queries, atomic transactions with buffered
writes, and push-based subscriptions.

Used by the test-suite and by the app when STORAGE_BACKEND=memory.
"""

import copy
import operator
import threading
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog

from fintrack.services.storage.interface import (
    DocumentQuery,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    FieldFilter,
    NotFoundError,
    SnapshotCallback,
    StoreTransaction,
    Subscription,
    T,
    TransactionAbortedError,
)


logger = structlog.get_logger(__name__)

_OPS: dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


def _new_id() -> str:
    return uuid4().hex[:20]


def _matches(data: dict[str, Any], flt: FieldFilter) -> bool:
    # Documents without the field never match, as in Firestore
    if flt.field not in data:
        return False
    try:
        return _OPS[flt.op](data[flt.field], flt.value)
    except TypeError:
        return False


class _MemorySubscription(Subscription):

    def __init__(self, store: "InMemoryDocumentStore", query: DocumentQuery,
                 on_next: SnapshotCallback, on_error: Optional[ErrorCallback]):
        self._store = store
        self.query = query
        self.on_next = on_next
        self.on_error = on_error
        self.active = True

    def unsubscribe(self) -> None:
        self.active = False
        self._store._remove_subscription(self)


class _MemoryTransaction(StoreTransaction):
    """Buffers writes until the store commits them."""

    def __init__(self, store: "InMemoryDocumentStore"):
        self._store = store
        self._writes: list[tuple[str, str, str, Optional[dict[str, Any]]]] = []

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        if self._writes:
            raise TransactionAbortedError("All reads must happen before any write in a transaction")
        return self._store._read(collection, doc_id)

    def create(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = _new_id()
        self._writes.append(("set", collection, doc_id, copy.deepcopy(data)))
        return doc_id

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        self._writes.append(("update", collection, doc_id, copy.deepcopy(changes)))

    def delete(self, collection: str, doc_id: str) -> None:
        self._writes.append(("delete", collection, doc_id, None))

    def validate(self) -> None:
        """Check queued updates target existing documents before anything is applied."""
        created = set()
        for kind, collection, doc_id, _ in self._writes:
            if kind == "set":
                created.add((collection, doc_id))
            elif kind == "update" and (collection, doc_id) not in created:
                if self._store._read(collection, doc_id) is None:
                    raise NotFoundError(f"Document not found: {collection}/{doc_id}")

    @property
    def writes(self) -> list[tuple[str, str, str, Optional[dict[str, Any]]]]:
        return self._writes


class InMemoryDocumentStore(DocumentStore):
    """
    Dict-backed document store.

    Transactions are serialized with a process-wide lock; transaction
    functions are synchronous so nothing else runs while one is open.
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._subscriptions: list[_MemorySubscription] = []
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Internal helpers (callers hold the lock)
    # ------------------------------------------------------------------

    def _read(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        doc = self._collections.get(collection, {}).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _apply(self, kind: str, collection: str, doc_id: str, data: Optional[dict[str, Any]]) -> None:
        docs = self._collections.setdefault(collection, {})
        if kind == "set":
            docs[doc_id] = data
        elif kind == "update":
            if doc_id not in docs:
                raise NotFoundError(f"Document not found: {collection}/{doc_id}")
            docs[doc_id].update(data)
        elif kind == "delete":
            docs.pop(doc_id, None)

    def _run_query(self, query: DocumentQuery) -> list[DocumentSnapshot]:
        docs = self._collections.get(query.collection, {})
        rows = [
            (doc_id, data) for doc_id, data in docs.items()
            if all(_matches(data, f) for f in query.filters)
        ]
        if query.order_by:
            rows = [r for r in rows if query.order_by in r[1]]
            rows.sort(key=lambda r: r[1][query.order_by], reverse=query.descending)
        if query.limit is not None:
            rows = rows[:query.limit]
        return [DocumentSnapshot(id=doc_id, data=copy.deepcopy(data)) for doc_id, data in rows]

    def _remove_subscription(self, sub: _MemorySubscription) -> None:
        with self._lock:
            if sub in self._subscriptions:
                self._subscriptions.remove(sub)

    def _deliver(self, sub: _MemorySubscription) -> None:
        with self._lock:
            snapshot = self._run_query(sub.query)
        try:
            sub.on_next(snapshot)
        except Exception as e:
            logger.error(
                "subscription_callback_failed",
                collection=sub.query.collection,
                error=str(e),
            )
            if sub.on_error:
                sub.on_error(e)

    def _notify(self, collections: set[str]) -> None:
        with self._lock:
            targets = [s for s in self._subscriptions if s.query.collection in collections]
        for sub in targets:
            if sub.active:
                self._deliver(sub)

    # ------------------------------------------------------------------
    # DocumentStore
    # ------------------------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        with self._lock:
            return self._read(collection, doc_id)

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = _new_id()
        with self._lock:
            self._apply("set", collection, doc_id, copy.deepcopy(data))
        self._notify({collection})
        return doc_id

    async def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        with self._lock:
            self._apply("update", collection, doc_id, copy.deepcopy(changes))
        self._notify({collection})

    async def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            existed = doc_id in self._collections.get(collection, {})
            self._apply("delete", collection, doc_id, None)
        if existed:
            self._notify({collection})
        return existed

    async def query(self, query: DocumentQuery) -> list[DocumentSnapshot]:
        with self._lock:
            return self._run_query(query)

    async def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        with self._lock:
            txn = _MemoryTransaction(self)
            result = fn(txn)
            txn.validate()
            for kind, collection, doc_id, data in txn.writes:
                self._apply(kind, collection, doc_id, data)
            touched = {collection for _, collection, _, _ in txn.writes}
        if touched:
            self._notify(touched)
        return result

    def subscribe(
        self,
        query: DocumentQuery,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        sub = _MemorySubscription(self, query, on_next, on_error)
        with self._lock:
            self._subscriptions.append(sub)
        self._deliver(sub)
        return sub

    # ------------------------------------------------------------------
    # Test helpers
    # ------------------------------------------------------------------

    def dump(self, collection: str) -> dict[str, dict[str, Any]]:
        """Copy of every document in a collection, keyed by id."""
        with self._lock:
            return copy.deepcopy(self._collections.get(collection, {}))
