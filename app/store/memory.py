# app/store/memory.py
from __future__ import annotations

import copy
import threading
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from app.errors import DocumentExists
from app.store.base import Doc, Mutator, T, check_field, matches


class MemoryDocumentStore:
    """
    In-process store for local dev and tests.
    One lock per document so transactions on different documents never serialize.
    A document's lock lives only while some transaction holds or waits on it.
    """

    def __init__(self):
        self._docs: dict[tuple[str, str], Doc] = {}
        # key -> (lock, holders + waiters)
        self._locks: dict[tuple[str, str], tuple[threading.Lock, int]] = {}
        self._guard = threading.Lock()

    @contextmanager
    def _locked(self, key: tuple[str, str]) -> Iterator[None]:
        with self._guard:
            lock, users = self._locks.get(key) or (threading.Lock(), 0)
            self._locks[key] = (lock, users + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, users = self._locks[key]
                if users <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, users - 1)

    def get(self, collection: str, doc_id: str) -> Optional[Doc]:
        with self._guard:
            doc = self._docs.get((collection, doc_id))
            return copy.deepcopy(doc) if doc is not None else None

    def create(self, collection: str, doc_id: str, doc: Doc) -> None:
        with self._guard:
            key = (collection, doc_id)
            if key in self._docs:
                raise DocumentExists(collection=collection, doc_id=doc_id)
            self._docs[key] = copy.deepcopy(doc)

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
        with self._guard:
            docs = [copy.deepcopy(d) for (c, _), d in self._docs.items() if c == collection]

        if contains:
            docs = [d for d in docs if matches(d, contains)]
        if gte:
            field, floor = gte
            check_field(field)
            docs = [d for d in docs if isinstance(d.get(field), (int, float)) and d[field] >= floor]
        if order_by:
            check_field(order_by)
            docs.sort(key=lambda d: (d.get(order_by) is None, d.get(order_by) or ""), reverse=descending)
        if limit is not None:
            docs = docs[:limit]
        return docs

    def run_transaction(self, collection: str, doc_id: str, mutate: Mutator[T]) -> T:
        key = (collection, doc_id)
        with self._locked(key):
            with self._guard:
                current = copy.deepcopy(self._docs.get(key))
            new_doc, result = mutate(current)
            if new_doc is not None:
                with self._guard:
                    self._docs[key] = copy.deepcopy(new_doc)
            return result

    def ping(self) -> bool:
        return True
