from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional


# Tags every log line with the HTTP request or payout run it belongs to.
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


@contextmanager
def correlation_scope(value: Optional[str] = None, *, prefix: str = "") -> Iterator[str]:
    cid = value or f"{prefix}{uuid.uuid4().hex[:12]}"
    token = _correlation_id.set(cid)
    try:
        yield cid
    finally:
        _correlation_id.reset(token)
