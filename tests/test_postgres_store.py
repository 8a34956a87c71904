from __future__ import annotations

import os
import threading
import uuid

import pytest

from app.errors import DocumentExists

DATABASE_URL = os.getenv("TEST_DATABASE_URL", "").strip()

pytestmark = pytest.mark.skipif(not DATABASE_URL, reason="TEST_DATABASE_URL not set")


@pytest.fixture()
def pg_store():
    from app.store.postgres import PostgresDocumentStore
    from db import Database

    db = Database(DATABASE_URL, maxconn=20)
    with db.get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("CREATE SCHEMA IF NOT EXISTS app;")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS app.documents (
                  collection text NOT NULL,
                  id text NOT NULL,
                  doc jsonb NOT NULL,
                  version integer NOT NULL DEFAULT 1,
                  created_at timestamptz NOT NULL DEFAULT now(),
                  updated_at timestamptz NOT NULL DEFAULT now(),
                  PRIMARY KEY (collection, id)
                );
                """
            )
    yield PostgresDocumentStore(db)
    db.close_pool()


@pytest.fixture()
def collection(pg_store):
    name = f"test_{uuid.uuid4().hex[:10]}"
    yield name
    with pg_store.db.get_conn() as conn:
        with conn.cursor() as cur:
            cur.execute("DELETE FROM app.documents WHERE collection = %s", (name,))


def test_create_get_and_duplicate(pg_store, collection):
    pg_store.create(collection, "p1", {"title": "Rooftop", "active_users": []})

    assert pg_store.get(collection, "p1") == {"title": "Rooftop", "active_users": []}
    with pytest.raises(DocumentExists):
        pg_store.create(collection, "p1", {"title": "again"})


def test_find_contains_gte_order(pg_store, collection):
    pg_store.create(collection, "a", {"host_id": "a", "pending_earnings_cents": 500})
    pg_store.create(collection, "b", {"host_id": "b", "pending_earnings_cents": 2500, "tags": ["x"]})
    pg_store.create(collection, "c", {"host_id": "c", "pending_earnings_cents": 1500, "tags": ["x"]})

    found = pg_store.find(collection, gte=("pending_earnings_cents", 1000), order_by="host_id")
    assert [d["host_id"] for d in found] == ["b", "c"]

    found = pg_store.find(collection, contains={"tags": ["x"]}, order_by="host_id", descending=True, limit=1)
    assert [d["host_id"] for d in found] == ["c"]


def test_failed_mutate_leaves_document(pg_store, collection):
    pg_store.create(collection, "c", {"n": 1})

    def boom(current):
        raise ValueError("no")

    with pytest.raises(ValueError):
        pg_store.run_transaction(collection, "c", boom)

    assert pg_store.get(collection, "c") == {"n": 1}


def test_concurrent_increments_lose_nothing(pg_store, collection):
    pg_store.create(collection, "counter", {"n": 0})

    def bump(current):
        return {"n": current["n"] + 1}, None

    threads = [
        threading.Thread(target=pg_store.run_transaction, args=(collection, "counter", bump)) for _ in range(10)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert pg_store.get(collection, "counter") == {"n": 10}
