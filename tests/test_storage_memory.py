"""Tests for the in-memory document store."""

import pytest

from fintrack.services.storage import (
    DocumentQuery,
    InMemoryDocumentStore,
    NotFoundError,
    TransactionAbortedError,
)

from conftest import run


class TestDocuments:
    """Basic document operations."""

    def test_add_and_get(self, store):
        doc_id = run(store.add("things", {"name": "a"}))
        assert run(store.get("things", doc_id)) == {"name": "a"}

    def test_get_missing_returns_none(self, store):
        assert run(store.get("things", "nope")) is None

    def test_reads_are_copies(self, store):
        doc_id = run(store.add("things", {"tags": ["x"]}))
        run(store.get("things", doc_id))["tags"].append("y")
        assert run(store.get("things", doc_id)) == {"tags": ["x"]}

    def test_update_merges(self, store):
        doc_id = run(store.add("things", {"a": 1, "b": 2}))
        run(store.update("things", doc_id, {"b": 3}))
        assert run(store.get("things", doc_id)) == {"a": 1, "b": 3}

    def test_update_missing_raises(self, store):
        with pytest.raises(NotFoundError):
            run(store.update("things", "nope", {"a": 1}))

    def test_delete_reports_existence(self, store):
        doc_id = run(store.add("things", {}))
        assert run(store.delete("things", doc_id)) is True
        assert run(store.delete("things", doc_id)) is False


class TestQueries:
    """Filtering, ordering and limits."""

    @pytest.fixture
    def seeded(self, store):
        for owner, day in (("u1", 3), ("u1", 1), ("u2", 2), ("u1", 2)):
            run(store.add("rows", {"owner": owner, "day": day}))
        run(store.add("rows", {"owner": "u1"}))  # no "day"
        return store

    def test_equality_filter(self, seeded):
        rows = run(seeded.query(DocumentQuery(collection="rows").where("owner", "==", "u2")))
        assert [r.data["day"] for r in rows] == [2]

    def test_missing_field_never_matches(self, seeded):
        rows = run(seeded.query(DocumentQuery(collection="rows").where("day", ">=", 0)))
        assert len(rows) == 4

    def test_ordering_and_limit(self, seeded):
        query = (
            DocumentQuery(collection="rows")
            .where("owner", "==", "u1")
            .ordered("day", descending=True)
            .limited(2)
        )
        assert [r.data["day"] for r in run(seeded.query(query))] == [3, 2]

    def test_range_filters_combine(self, seeded):
        query = DocumentQuery(collection="rows").where("day", ">=", 2).where("day", "<", 3)
        assert sorted(r.data["owner"] for r in run(seeded.query(query))) == ["u1", "u2"]


class TestTransactions:
    """Atomic read-modify-write."""

    def test_writes_apply_together(self, store):
        a = run(store.add("acc", {"balance": 10}))
        b = run(store.add("acc", {"balance": 0}))

        def move(txn):
            src = txn.get("acc", a)
            dst = txn.get("acc", b)
            txn.update("acc", a, {"balance": src["balance"] - 4})
            txn.update("acc", b, {"balance": dst["balance"] + 4})
            return txn.create("log", {"amount": 4})

        log_id = run(store.run_transaction(move))
        assert run(store.get("acc", a))["balance"] == 6
        assert run(store.get("acc", b))["balance"] == 4
        assert run(store.get("log", log_id)) == {"amount": 4}

    def test_exception_discards_every_write(self, store):
        a = run(store.add("acc", {"balance": 10}))

        def failing(txn):
            txn.get("acc", a)
            txn.update("acc", a, {"balance": 0})
            txn.create("log", {})
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run(store.run_transaction(failing))
        assert run(store.get("acc", a))["balance"] == 10
        assert store.dump("log") == {}

    def test_update_of_missing_document_aborts_everything(self, store):
        a = run(store.add("acc", {"balance": 10}))

        def partial(txn):
            txn.update("acc", a, {"balance": 0})
            txn.update("acc", "ghost", {"balance": 1})

        with pytest.raises(NotFoundError):
            run(store.run_transaction(partial))
        assert run(store.get("acc", a))["balance"] == 10

    def test_read_after_write_is_rejected(self, store):
        a = run(store.add("acc", {"balance": 10}))

        def misordered(txn):
            txn.update("acc", a, {"balance": 0})
            txn.get("acc", a)

        with pytest.raises(TransactionAbortedError):
            run(store.run_transaction(misordered))
        assert run(store.get("acc", a))["balance"] == 10


class TestSubscriptions:
    """Push-based live queries."""

    def test_initial_snapshot_then_updates(self, store):
        seen = []
        store.subscribe(
            DocumentQuery(collection="rows").where("owner", "==", "u1"),
            lambda snaps: seen.append(sorted(s.data["n"] for s in snaps)),
        )
        run(store.add("rows", {"owner": "u1", "n": 1}))
        run(store.add("rows", {"owner": "u1", "n": 2}))
        assert seen == [[], [1], [1, 2]]

    def test_unsubscribe_stops_delivery(self, store):
        seen = []
        sub = store.subscribe(DocumentQuery(collection="rows"), lambda snaps: seen.append(len(snaps)))
        sub.unsubscribe()
        run(store.add("rows", {}))
        assert seen == [0]

    def test_other_collections_do_not_notify(self, store):
        seen = []
        store.subscribe(DocumentQuery(collection="rows"), lambda snaps: seen.append(len(snaps)))
        run(store.add("other", {}))
        assert seen == [0]

    def test_transaction_commit_notifies_once_per_collection(self, store):
        seen = []
        store.subscribe(DocumentQuery(collection="rows"), lambda snaps: seen.append(len(snaps)))

        def two_rows(txn):
            txn.create("rows", {})
            txn.create("rows", {})

        run(store.run_transaction(two_rows))
        assert seen == [0, 2]

    def test_callback_errors_go_to_on_error(self):
        store = InMemoryDocumentStore()
        errors = []

        def explode(_):
            raise ValueError("bad render")

        store.subscribe(DocumentQuery(collection="rows"), explode, errors.append)
        assert len(errors) == 1
        assert isinstance(errors[0], ValueError)
