"""
Tests for the document store: CRUD, batch writes and snapshot subscriptions.
"""

from unittest import mock

import pytest
from bson import ObjectId
from pymongo.errors import BulkWriteError, PyMongoError

from painel_dss import config
from painel_dss.database import DocumentStore
from painel_dss.errors import NotFound, StoreUnavailable


def test_create_and_get(store):
    doc = store.create_document("employee", {"name": "ANA"})
    assert isinstance(doc["_id"], str)
    assert "created_at" in doc and "updated_at" in doc
    assert store.get_by_id("employee", doc["_id"])["name"] == "ANA"


def test_get_documents_sorted(store):
    for name in ["CARLOS", "ANA", "BRUNO"]:
        store.create_document("employee", {"name": name})
    docs = store.get_documents("employee", sort=[("name", 1)])
    assert [d["name"] for d in docs] == ["ANA", "BRUNO", "CARLOS"]
    assert len(store.get_documents("employee", limit=2)) == 2


def test_update_returns_new_document(store):
    doc = store.create_document("employee", {"name": "ANA", "bem": False})
    updated = store.update_document("employee", doc["_id"], {"bem": True})
    assert updated["bem"] is True
    assert updated["name"] == "ANA"


@pytest.mark.parametrize("doc_id", ["000000000000000000000000", "not-an-object-id"])
def test_missing_documents(store, doc_id):
    with pytest.raises(NotFound):
        store.get_by_id("employee", doc_id)
    with pytest.raises(NotFound):
        store.update_document("employee", doc_id, {"bem": True})
    with pytest.raises(NotFound):
        store.delete_document("employee", doc_id)


def test_delete(store):
    doc = store.create_document("employee", {"name": "ANA"})
    store.delete_document("employee", doc["_id"])
    assert store.get_documents("employee") == []


def test_batch_update(store):
    ids = [store.create_document("employee", {"name": n, "bem": True})["_id"] for n in "ABC"]
    matched = store.batch_update("employee", {i: {"bem": False} for i in ids})
    assert matched == 3
    assert all(d["bem"] is False for d in store.get_documents("employee"))


def test_batch_update_empty(store):
    assert store.batch_update("employee", {}) == 0


def test_batch_failure_is_store_unavailable(store):
    doc = store.create_document("employee", {"name": "ANA"})
    with mock.patch.object(store.db["employee"].__class__, "bulk_write", side_effect=BulkWriteError({})):
        with pytest.raises(StoreUnavailable):
            store.batch_update("employee", {doc["_id"]: {"bem": False}})


def test_failed_batch_still_publishes(store):
    doc = store.create_document("employee", {"name": "ANA"})
    received = []
    store.subscribe("employee", received.append)
    with mock.patch.object(store.db["employee"].__class__, "bulk_write", side_effect=BulkWriteError({})):
        with pytest.raises(StoreUnavailable):
            store.batch_update("employee", {doc["_id"]: {"bem": False}})
    assert len(received) == 2


def test_batch_update_in_transaction(monkeypatch):
    monkeypatch.setattr(config, "MONGO_TRANSACTIONS", True)
    db = mock.MagicMock()
    session = db.client.start_session.return_value.__enter__.return_value
    session.with_transaction.side_effect = lambda callback: callback(session)
    db.__getitem__.return_value.bulk_write.return_value.matched_count = 2

    ids = [str(ObjectId()), str(ObjectId())]
    assert DocumentStore(db).batch_update("employee", {i: {"bem": False} for i in ids}) == 2
    ops = db.__getitem__.return_value.bulk_write.call_args
    assert len(ops.args[0]) == 2
    assert ops.kwargs == {"ordered": True, "session": session}


def test_driver_errors_become_store_unavailable():
    db = mock.MagicMock()
    db.__getitem__.return_value.find.side_effect = PyMongoError("connection refused")
    db.list_collection_names.side_effect = PyMongoError("connection refused")
    broken = DocumentStore(db)
    with pytest.raises(StoreUnavailable):
        broken.get_documents("employee")
    with pytest.raises(StoreUnavailable):
        broken.collection_names()


class TestSubscribe:

    def test_initial_snapshot(self, store):
        store.create_document("employee", {"name": "ANA"})
        received = []
        store.subscribe("employee", received.append)
        assert len(received) == 1
        assert received[0][0]["name"] == "ANA"

    def test_pushes_after_each_write(self, store):
        received = []
        store.subscribe("employee", received.append, sort=[("name", 1)])
        doc = store.create_document("employee", {"name": "BRUNO"})
        store.create_document("employee", {"name": "ANA"})
        store.update_document("employee", doc["_id"], {"bem": True})
        store.delete_document("employee", doc["_id"])

        assert [len(snap) for snap in received] == [0, 1, 2, 2, 1]
        assert [d["name"] for d in received[3]] == ["ANA", "BRUNO"]

    def test_snapshots_are_read_only(self, store):
        store.create_document("employee", {"name": "ANA"})
        received = []
        store.subscribe("employee", received.append)
        with pytest.raises(TypeError):
            received[0][0]["name"] = "X"

    def test_only_matching_collection(self, store):
        received = []
        store.subscribe("registration", received.append)
        store.create_document("employee", {"name": "ANA"})
        assert len(received) == 1

    def test_unsubscribe(self, store):
        received = []
        unsubscribe = store.subscribe("employee", received.append)
        unsubscribe()
        store.create_document("employee", {"name": "ANA"})
        assert len(received) == 1

    def test_failing_listener_does_not_break_writes(self, store):
        calls = []

        def listener(snapshot):
            calls.append(snapshot)
            if len(calls) > 1:
                raise RuntimeError("boom")

        store.subscribe("employee", listener)
        doc = store.create_document("employee", {"name": "ANA"})
        assert store.get_by_id("employee", doc["_id"])["name"] == "ANA"
        assert len(calls) == 2
