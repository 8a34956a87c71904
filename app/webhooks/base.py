# app/webhooks/base.py
from __future__ import annotations

import hashlib
import hmac
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from app.clock import Clock, utc_now
from app.errors import DocumentExists, InvalidPayload, Unauthorized
from app.store.base import DocumentStore
from app.webhooks.repository import insert_webhook_event
from services.metrics import increment_webhook_event
from services.redaction import redact_text

logger = logging.getLogger("bondfyr.webhooks")

SECRET_NOT_CONFIGURED = "WEBHOOK_SECRET_NOT_CONFIGURED"


def verify_signature(*, raw: bytes, signature_header: str | None, secret: str | None) -> tuple[bool, str | None]:
    if not secret or not secret.strip():
        return False, SECRET_NOT_CONFIGURED

    if not signature_header or not signature_header.strip():
        return False, "MISSING_SIGNATURE"

    sig = signature_header.strip()
    if sig.lower().startswith("sha256="):
        sig = sig.split("=", 1)[1].strip()

    expected = hmac.new(secret.encode("utf-8"), raw, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, sig):
        return False, "INVALID_SIGNATURE"

    return True, None


def first_dict(*candidates: Any) -> dict[str, Any]:
    for c in candidates:
        if isinstance(c, dict) and c:
            return c
    return {}


def first_str(*candidates: Any) -> Optional[str]:
    for c in candidates:
        if c is None:
            continue
        s = str(c).strip()
        if s:
            return s
    return None


def to_cents(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        cents = int(value)
    except (TypeError, ValueError):
        return None
    return cents if cents >= 0 else None


@dataclass(frozen=True)
class WebhookEvent:
    event_id: str
    event_type: str
    payload: dict[str, Any]
    payment_id: Optional[str] = None


class SignedWebhookIngestor:
    """
    Shared delivery pipeline: verify -> parse -> dedupe -> handle -> mark processed.

    A delivery is only recorded as processed after its handler returned, so a
    failure part way through is redelivered by the provider and re-applied
    idempotently.
    """

    source = "webhook"
    handled_types: frozenset[str] = frozenset()
    processed_collection = "processed_events"

    def __init__(self, store: DocumentStore, *, secret: str, clock: Clock = utc_now):
        self.store = store
        self.secret = secret
        self.clock = clock

    def parse(self, payload: dict[str, Any], headers: Mapping[str, str]) -> WebhookEvent:
        raise NotImplementedError

    def handle(self, event: WebhookEvent) -> dict[str, Any]:
        raise NotImplementedError

    def ingest(self, raw: bytes, headers: Mapping[str, str], *, request_id: str | None = None) -> dict[str, Any]:
        headers = {k.lower(): v for k, v in headers.items()}
        received_at = self.clock()
        body_raw = raw.decode("utf-8", errors="replace")

        payload: dict[str, Any] | None = None
        try:
            parsed = json.loads(body_raw) if body_raw else None
            if isinstance(parsed, dict):
                payload = parsed
        except ValueError:
            payload = None

        audit = {
            "source": self.source,
            "received_at": received_at,
            "request_id": request_id,
            "headers": headers,
            "body": payload,
            "body_raw": body_raw,
        }

        sig_ok, sig_err = verify_signature(raw=raw, signature_header=headers.get("x-signature"), secret=self.secret)
        if not sig_ok:
            logger.warning("webhook rejected source=%s request_id=%s reason=%s", self.source, request_id, sig_err)
            insert_webhook_event(
                self.store, **audit, signature_valid=False, signature_error=sig_err, ignored=True, ignore_reason=sig_err
            )
            increment_webhook_event("unverified", False, False)
            raise Unauthorized(sig_err)

        if payload is None:
            insert_webhook_event(
                self.store, **audit, signature_valid=True, ignored=True, ignore_reason="INVALID_JSON"
            )
            increment_webhook_event("invalid", True, False)
            raise InvalidPayload("Body must be a JSON object")

        event = self.parse(payload, headers)
        audit.update(event_id=event.event_id, event_type=event.event_type, payment_id=event.payment_id)

        def _log(applied: bool, reason: str | None) -> None:
            logger.info(
                "webhook_received source=%s request_id=%s event_id=%s event_type=%s payment_id=%s applied=%s reason=%s",
                self.source,
                request_id,
                event.event_id,
                event.event_type,
                redact_text(event.payment_id or ""),
                applied,
                reason,
            )

        if event.event_type not in self.handled_types:
            _log(False, "UNSUPPORTED_EVENT")
            insert_webhook_event(
                self.store, **audit, signature_valid=True, ignored=True, ignore_reason="UNSUPPORTED_EVENT"
            )
            increment_webhook_event(event.event_type or "unknown", True, False)
            return {"ok": True, "ignored": True, "reason": "UNSUPPORTED_EVENT", "event_type": event.event_type}

        if self.store.get(self.processed_collection, event.event_id) is not None:
            _log(False, "DUPLICATE_EVENT")
            insert_webhook_event(
                self.store, **audit, signature_valid=True, ignored=True, ignore_reason="DUPLICATE_EVENT"
            )
            increment_webhook_event(event.event_type, True, False)
            return {"ok": True, "ignored": True, "reason": "DUPLICATE_EVENT", "event_id": event.event_id}

        try:
            outcome = self.handle(event)
        except Exception as exc:
            logger.exception(
                "webhook handler failed source=%s event_id=%s event_type=%s", self.source, event.event_id, event.event_type
            )
            insert_webhook_event(
                self.store, **audit, signature_valid=True, update_applied=False, error=type(exc).__name__
            )
            increment_webhook_event(event.event_type, True, False)
            raise

        try:
            self.store.create(
                self.processed_collection,
                event.event_id,
                {
                    "id": event.event_id,
                    "event_type": event.event_type,
                    "payment_id": event.payment_id,
                    "processed_at": self.clock().isoformat(),
                    "outcome": outcome,
                },
            )
        except DocumentExists:
            # concurrent redelivery finished first; handlers are idempotent
            logger.info("event already marked processed event_id=%s", event.event_id)

        applied = bool(outcome.get("applied"))
        reason = outcome.get("reason")
        _log(applied, reason)
        insert_webhook_event(
            self.store,
            **audit,
            signature_valid=True,
            update_applied=applied,
            ignored=bool(outcome.get("ignored")),
            ignore_reason=reason if outcome.get("ignored") else None,
        )
        increment_webhook_event(event.event_type, True, applied)
        return {"ok": True, "event_id": event.event_id, "event_type": event.event_type, **outcome}
