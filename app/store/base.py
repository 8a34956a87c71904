# app/store/base.py
from __future__ import annotations

import re
from typing import Any, Callable, Optional, Protocol, Tuple, Type, TypeVar

from pydantic import BaseModel, ValidationError

from app.errors import CorruptDocument

Doc = dict[str, Any]
T = TypeVar("T")
M = TypeVar("M", bound=BaseModel)

# mutate(current_or_None) -> (new_doc_or_None, result); None means "no write"
Mutator = Callable[[Optional[Doc]], Tuple[Optional[Doc], T]]

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def check_field(name: str) -> str:
    if not _FIELD_RE.match(name or ""):
        raise ValueError(f"Invalid document field name: {name!r}")
    return name


class DocumentStore(Protocol):
    """
    Document store with per-document atomic read-modify-write.

    Documents are JSON-compatible dicts keyed by (collection, id).
    """

    def get(self, collection: str, doc_id: str) -> Optional[Doc]: ...

    def create(self, collection: str, doc_id: str, doc: Doc) -> None: ...

    def append(self, collection: str, doc: Doc) -> str: ...

    def find(
        self,
        collection: str,
        *,
        contains: Optional[Doc] = None,
        gte: Optional[tuple[str, float]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Doc]: ...

    def run_transaction(self, collection: str, doc_id: str, mutate: Mutator[T]) -> T: ...

    def ping(self) -> bool: ...


def decode(model: Type[M], doc: Doc, *, collection: str = "", doc_id: str = "") -> M:
    """Strict decode of a stored document. Never falls back to defaults on bad data."""
    try:
        return model.model_validate(doc)
    except ValidationError as exc:
        raise CorruptDocument(
            f"{model.__name__} failed validation ({exc.error_count()} errors)",
            collection=collection,
            doc_id=doc_id,
        ) from exc


def encode(obj: BaseModel) -> Doc:
    return obj.model_dump(mode="json")


def matches(doc: Any, pattern: Any) -> bool:
    """JSON containment with jsonb @> semantics."""
    if isinstance(pattern, dict):
        if not isinstance(doc, dict):
            return False
        return all(k in doc and matches(doc[k], v) for k, v in pattern.items())
    if isinstance(pattern, list):
        if not isinstance(doc, list):
            return False
        return all(any(matches(item, p) for item in doc) for p in pattern)
    return doc == pattern
