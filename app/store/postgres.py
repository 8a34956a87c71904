# app/store/postgres.py
from __future__ import annotations

import copy
import logging
import uuid
from typing import Optional

import psycopg2
from psycopg2.extras import Json

from app.errors import DocumentExists, TransientStoreError
from app.store.base import Doc, Mutator, T, check_field
from db import Database
from services.retry import call_with_retry

logger = logging.getLogger("bondfyr.store")

# SerializationFailure, DeadlockDetected, LockNotAvailable and QueryCanceled
# are all OperationalError subclasses in psycopg2.
RETRYABLE_ERRORS = (TransientStoreError, psycopg2.OperationalError)


class PostgresDocumentStore:
    """
    JSONB documents in app.documents, one row per (collection, id).
    run_transaction locks the row with SELECT ... FOR UPDATE for the whole mutate call.
    """

    def __init__(self, db: Database, *, retry_attempts: int = 4, retry_base_delay_s: float = 0.05):
        self.db = db
        self.retry_attempts = retry_attempts
        self.retry_base_delay_s = retry_base_delay_s

    def _retry(self, fn, label: str):
        return call_with_retry(
            fn,
            retry_on=RETRYABLE_ERRORS,
            attempts=self.retry_attempts,
            base_delay_s=self.retry_base_delay_s,
            label=label,
        )

    def get(self, collection: str, doc_id: str) -> Optional[Doc]:
        def _get():
            with self.db.get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        "SELECT doc FROM app.documents WHERE collection = %s AND id = %s",
                        (collection, doc_id),
                    )
                    row = cur.fetchone()
            return row[0] if row else None

        return self._retry(_get, f"get:{collection}")

    def create(self, collection: str, doc_id: str, doc: Doc) -> None:
        def _create():
            with self.db.get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute(
                        """
                        INSERT INTO app.documents (collection, id, doc)
                        VALUES (%s, %s, %s::jsonb)
                        ON CONFLICT (collection, id) DO NOTHING
                        """,
                        (collection, doc_id, Json(doc)),
                    )
                    if cur.rowcount == 0:
                        raise DocumentExists(collection=collection, doc_id=doc_id)

        self._retry(_create, f"create:{collection}")

    def append(self, collection: str, doc: Doc) -> str:
        doc_id = str(doc.get("id") or uuid.uuid4())
        self.create(collection, doc_id, {**doc, "id": doc_id})
        return doc_id

    def find(
        self,
        collection: str,
        *,
        contains: Optional[Doc] = None,
        gte: Optional[tuple[str, float]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Doc]:
        sql = ["SELECT doc FROM app.documents WHERE collection = %s"]
        params: list = [collection]

        if contains:
            sql.append("AND doc @> %s::jsonb")
            params.append(Json(contains))
        if gte:
            field, floor = gte
            sql.append("AND (doc->>%s)::numeric >= %s")
            params.extend([check_field(field), floor])
        if order_by:
            sql.append(f"ORDER BY doc->>%s {'DESC' if descending else 'ASC'} NULLS LAST")
            params.append(check_field(order_by))
        if limit is not None:
            sql.append("LIMIT %s")
            params.append(int(limit))

        def _find():
            with self.db.get_conn() as conn:
                with conn.cursor() as cur:
                    cur.execute("\n".join(sql), tuple(params))
                    return [r[0] for r in cur.fetchall()]

        return self._retry(_find, f"find:{collection}")

    def run_transaction(self, collection: str, doc_id: str, mutate: Mutator[T]) -> T:
        return self._retry(lambda: self._run_transaction_once(collection, doc_id, mutate), f"txn:{collection}")

    def _run_transaction_once(self, collection: str, doc_id: str, mutate: Mutator[T]) -> T:
        with self.db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT doc, version
                    FROM app.documents
                    WHERE collection = %s AND id = %s
                    FOR UPDATE
                    """,
                    (collection, doc_id),
                )
                row = cur.fetchone()
                current = row[0] if row else None

                new_doc, result = mutate(copy.deepcopy(current))

                if new_doc is None:
                    return result

                if row:
                    cur.execute(
                        """
                        UPDATE app.documents
                        SET doc = %s::jsonb, version = version + 1, updated_at = now()
                        WHERE collection = %s AND id = %s AND version = %s
                        """,
                        (Json(new_doc), collection, doc_id, row[1]),
                    )
                else:
                    cur.execute(
                        """
                        INSERT INTO app.documents (collection, id, doc)
                        VALUES (%s, %s, %s::jsonb)
                        ON CONFLICT (collection, id) DO NOTHING
                        """,
                        (collection, doc_id, Json(new_doc)),
                    )

                if cur.rowcount != 1:
                    # another transaction created the row first; retry will lock it
                    logger.info("txn conflict collection=%s id=%s", collection, doc_id)
                    raise TransientStoreError(collection=collection, doc_id=doc_id)

        return result

    def ping(self) -> bool:
        with self.db.get_conn() as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1;")
                cur.fetchone()
        return True
