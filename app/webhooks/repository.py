#app/webhooks/repository.py
from __future__ import annotations

from datetime import datetime
from typing import Any

from app.store.base import DocumentStore
from services.redaction import redact_dict

WEBHOOK_EVENTS = "webhook_events"


def insert_webhook_event(
    store: DocumentStore,
    *,
    source: str,
    received_at: datetime,
    request_id: str | None = None,
    headers: dict[str, Any] | None = None,
    body: dict[str, Any] | None = None,
    body_raw: str | None = None,
    signature_valid: bool | None = None,
    signature_error: str | None = None,
    event_id: str | None = None,
    event_type: str | None = None,
    payment_id: str | None = None,
    update_applied: bool | None = None,
    ignored: bool | None = None,
    ignore_reason: str | None = None,
    error: str | None = None,
) -> str:
    """
    Insert a webhook delivery for audit/debugging.
    Every delivery lands here, signed or not. Headers and body are redacted.
    """
    doc = {
        "source": source,
        "received_at": received_at.isoformat(),
        "request_id": request_id,
        "headers": redact_dict(headers or {}),
        "body": redact_dict(body) if body is not None else None,
        "body_raw": body_raw if body is None else None,
        "signature_valid": signature_valid,
        "signature_error": signature_error,
        "event_id": event_id,
        "event_type": event_type,
        "payment_id": payment_id,
        "update_applied": update_applied,
        "ignored": ignored,
        "ignore_reason": ignore_reason,
        "error": error,
    }
    return store.append(WEBHOOK_EVENTS, doc)


def list_webhook_events(
    store: DocumentStore,
    *,
    source: str | None = None,
    payment_id: str | None = None,
    limit: int = 50,
) -> list[dict[str, Any]]:
    limit = max(1, min(int(limit or 50), 200))

    contains: dict[str, Any] = {}
    if source:
        contains["source"] = source
    if payment_id:
        contains["payment_id"] = payment_id

    return store.find(
        WEBHOOK_EVENTS,
        contains=contains or None,
        order_by="received_at",
        descending=True,
        limit=limit,
    )


def get_webhook_event(store: DocumentStore, *, event_id: str) -> dict[str, Any] | None:
    return store.get(WEBHOOK_EVENTS, event_id)
