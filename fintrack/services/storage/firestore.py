"""
Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is the production backend because:
1. Per-document transactions give all-or-nothing balance updates
2. Snapshot listeners give live views without polling
3. No database server to run for a personal app

The implementation follows the abstract interface, so business logic
and tests never import the Firebase SDK.

Only the initial connection is retried. Individual operations surface
their errors immediately; Firestore itself re-runs transaction functions
on contention.
"""

from typing import Any, Callable, Optional

import firebase_admin
import structlog
from firebase_admin import credentials, firestore
from google.api_core import exceptions as gcp_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter as FirestoreFieldFilter
from tenacity import retry, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from fintrack.config import get_settings
from fintrack.config.settings import FirebaseSettings
from fintrack.services.storage.interface import (
    ConnectionError,
    DocumentQuery,
    DocumentSnapshot,
    DocumentStore,
    ErrorCallback,
    NotFoundError,
    SnapshotCallback,
    StorageError,
    StoreTransaction,
    Subscription,
    T,
)


logger = structlog.get_logger(__name__)


class MissingCredentialsError(ConnectionError):
    """The service account file does not exist."""
    pass


class FirestoreClient:
    """
    Low-level Firestore client wrapper.

    Handles Firebase app initialization and retries the connection.
    """

    def __init__(self, settings: Optional[FirebaseSettings] = None):
        self._db = None
        self._settings = settings or get_settings().firebase

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        retry=retry_if_not_exception_type(MissingCredentialsError),
        reraise=True,
    )
    def connect(self):
        """
        Initialize the Firebase app (once per process) and open a client.

        Uses service account credentials for authentication.
        """
        if self._db is None:
            try:
                try:
                    app = firebase_admin.get_app()
                except ValueError:
                    cred = credentials.Certificate(self._settings.credentials_path)
                    options = {}
                    if self._settings.project_id:
                        options["projectId"] = self._settings.project_id
                    app = firebase_admin.initialize_app(cred, options)
                self._db = firestore.client(app)
            except FileNotFoundError:
                raise MissingCredentialsError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Firestore: {e}")

        return self._db


class _FirestoreSubscription(Subscription):

    def __init__(self, watch):
        self._watch = watch

    def unsubscribe(self) -> None:
        self._watch.unsubscribe()


class _FirestoreTransaction(StoreTransaction):
    """Adapter from the Firestore transaction object to StoreTransaction."""

    def __init__(self, db, transaction):
        self._db = db
        self._txn = transaction

    def _ref(self, collection: str, doc_id: Optional[str] = None):
        col = self._db.collection(collection)
        return col.document(doc_id) if doc_id else col.document()

    def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        snap = self._ref(collection, doc_id).get(transaction=self._txn)
        return snap.to_dict() if snap.exists else None

    def create(self, collection: str, data: dict[str, Any]) -> str:
        ref = self._ref(collection)
        self._txn.set(ref, data)
        return ref.id

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        self._txn.update(self._ref(collection, doc_id), changes)

    def delete(self, collection: str, doc_id: str) -> None:
        self._txn.delete(self._ref(collection, doc_id))


class FirestoreDocumentStore(DocumentStore):
    """
    Firestore implementation of the document store.

    Collection paths may name sub-collections ("bill_dues/<id>/payments").
    """

    def __init__(self, client: Optional[FirestoreClient] = None):
        self._client = client or FirestoreClient()

    @property
    def _db(self):
        return self._client.connect()

    def _build_query(self, query: DocumentQuery):
        q = self._db.collection(query.collection)
        for f in query.filters:
            q = q.where(filter=FirestoreFieldFilter(f.field, f.op, f.value))
        if query.order_by:
            direction = (
                firestore.Query.DESCENDING if query.descending else firestore.Query.ASCENDING
            )
            q = q.order_by(query.order_by, direction=direction)
        if query.limit is not None:
            q = q.limit(query.limit)
        return q

    async def get(self, collection: str, doc_id: str) -> Optional[dict[str, Any]]:
        try:
            snap = self._db.collection(collection).document(doc_id).get()
            return snap.to_dict() if snap.exists else None
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to read {collection}/{doc_id}: {e}")

    async def add(self, collection: str, data: dict[str, Any]) -> str:
        try:
            ref = self._db.collection(collection).document()
            ref.set(data)
            return ref.id
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to add to {collection}: {e}")

    async def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> None:
        try:
            self._db.collection(collection).document(doc_id).update(changes)
        except gcp_exceptions.NotFound:
            raise NotFoundError(f"Document not found: {collection}/{doc_id}")
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to update {collection}/{doc_id}: {e}")

    async def delete(self, collection: str, doc_id: str) -> bool:
        try:
            ref = self._db.collection(collection).document(doc_id)
            if not ref.get().exists:
                return False
            ref.delete()
            return True
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to delete {collection}/{doc_id}: {e}")

    async def query(self, query: DocumentQuery) -> list[DocumentSnapshot]:
        try:
            return [
                DocumentSnapshot(id=doc.id, data=doc.to_dict())
                for doc in self._build_query(query).stream()
            ]
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Failed to query {query.collection}: {e}")

    async def run_transaction(self, fn: Callable[[StoreTransaction], T]) -> T:
        db = self._db

        @firestore.transactional
        def _run(transaction):
            return fn(_FirestoreTransaction(db, transaction))

        try:
            return _run(db.transaction())
        except gcp_exceptions.NotFound as e:
            raise NotFoundError(str(e))
        except gcp_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Transaction failed: {e}")

    def subscribe(
        self,
        query: DocumentQuery,
        on_next: SnapshotCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Subscription:
        def _on_snapshot(docs, changes, read_time):
            try:
                on_next([DocumentSnapshot(id=d.id, data=d.to_dict()) for d in docs])
            except Exception as e:
                logger.error(
                    "subscription_callback_failed",
                    collection=query.collection,
                    error=str(e),
                )
                if on_error:
                    on_error(e)

        watch = self._build_query(query).on_snapshot(_on_snapshot)
        return _FirestoreSubscription(watch)
