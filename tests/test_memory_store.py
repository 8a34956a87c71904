from __future__ import annotations

import threading

import pytest

from app.errors import CorruptDocument, DocumentExists
from app.parties.model import Party
from app.store.base import check_field, decode, matches
from app.store.factory import build_store
from app.store.memory import MemoryDocumentStore
from settings import Settings


def test_create_rejects_existing_id():
    store = MemoryDocumentStore()
    store.create("parties", "p1", {"title": "a"})

    with pytest.raises(DocumentExists):
        store.create("parties", "p1", {"title": "b"})

    assert store.get("parties", "p1") == {"title": "a"}


def test_append_assigns_id():
    store = MemoryDocumentStore()

    doc_id = store.append("admin_alerts", {"code": "X"})

    assert store.get("admin_alerts", doc_id) == {"code": "X", "id": doc_id}


def test_get_returns_a_copy():
    store = MemoryDocumentStore()
    store.create("parties", "p1", {"active_users": []})

    store.get("parties", "p1")["active_users"].append("u1")

    assert store.get("parties", "p1") == {"active_users": []}


def test_find_filters_and_orders():
    store = MemoryDocumentStore()
    store.create("earnings", "a", {"host_id": "a", "pending": 500, "tags": ["x"]})
    store.create("earnings", "b", {"host_id": "b", "pending": 2500, "tags": ["x", "y"]})
    store.create("earnings", "c", {"host_id": "c", "pending": 1500, "tags": ["y"]})
    store.create("other", "d", {"host_id": "d", "pending": 9999})

    assert [d["host_id"] for d in store.find("earnings", gte=("pending", 1000), order_by="pending")] == ["c", "b"]
    assert [d["host_id"] for d in store.find("earnings", contains={"tags": ["y"]}, order_by="host_id")] == ["b", "c"]
    assert [d["host_id"] for d in store.find("earnings", order_by="pending", descending=True, limit=1)] == ["b"]


def test_find_rejects_unsafe_field_names():
    store = MemoryDocumentStore()

    with pytest.raises(ValueError):
        store.find("earnings", order_by="pending; drop table")

    assert check_field("pending_earnings_cents") == "pending_earnings_cents"


def test_transaction_without_write_leaves_document():
    store = MemoryDocumentStore()

    result = store.run_transaction("parties", "p1", lambda current: (None, current))

    assert result is None
    assert store.get("parties", "p1") is None


def test_transaction_writes_new_document():
    store = MemoryDocumentStore()
    store.create("counters", "c", {"n": 1})

    result = store.run_transaction("counters", "c", lambda cur: ({"n": cur["n"] + 1}, cur["n"] + 1))

    assert result == 2
    assert store.get("counters", "c") == {"n": 2}


def test_transaction_locks_are_released():
    store = MemoryDocumentStore()
    store.create("counters", "c", {"n": 0})

    for _ in range(3):
        store.run_transaction("counters", "c", lambda cur: ({"n": cur["n"] + 1}, None))
    for i in range(50):
        store.run_transaction("parties", f"p{i}", lambda cur: (None, None))

    def _fail(cur):
        raise ValueError("boom")

    with pytest.raises(ValueError):
        store.run_transaction("counters", "c", _fail)

    assert store._locks == {}
    assert store.get("counters", "c") == {"n": 3}


def test_concurrent_transactions_on_one_document_serialize():
    store = MemoryDocumentStore()
    store.create("counters", "c", {"n": 0})

    def _bump():
        for _ in range(100):
            store.run_transaction("counters", "c", lambda cur: ({"n": cur["n"] + 1}, None))

    threads = [threading.Thread(target=_bump) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert store.get("counters", "c") == {"n": 800}
    assert store._locks == {}


def test_matches_nested_containment():
    doc = {"guest_requests": [{"user_id": "u1", "payment_id": "pay_1"}, {"user_id": "u2"}]}

    assert matches(doc, {"guest_requests": [{"payment_id": "pay_1"}]})
    assert not matches(doc, {"guest_requests": [{"payment_id": "pay_2"}]})
    assert not matches({"a": 1}, {"b": 1})


def test_decode_raises_corrupt_document():
    with pytest.raises(CorruptDocument):
        decode(Party, {"id": "p1", "max_guest_count": "lots"}, collection="parties", doc_id="p1")


def test_factory_builds_memory_store():
    s = Settings(_env_file=None, STORE_BACKEND="memory")

    assert isinstance(build_store(s), MemoryDocumentStore)
