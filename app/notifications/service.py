# app/notifications/service.py
from __future__ import annotations

import logging
from typing import Any, Optional, Protocol

import httpx

from app.clock import Clock, utc_now
from app.store.base import DocumentStore
from services.metrics import increment_notification, increment_operator_alert
from services.redaction import redact_dict

logger = logging.getLogger("bondfyr.notifications")

NOTIFICATIONS = "notifications"
ADMIN_ALERTS = "admin_alerts"


class Notifier(Protocol):
    def notify(self, user_id: str, title: str, message: str, *, kind: str, data: Optional[dict[str, Any]] = None) -> None: ...

    def alert_operator(self, code: str, message: str, *, severity: str = "error", **context: Any) -> None: ...


class PushGateway:
    """Thin httpx client for the push-delivery service. Delivery itself lives elsewhere."""

    def __init__(self, url: str, api_key: str, timeout_s: float = 5.0):
        self.url = url
        self._client = httpx.Client(timeout=timeout_s)
        self._headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

    def send(self, payload: dict[str, Any]) -> int:
        r = self._client.post(self.url, headers=self._headers, json=payload)
        return r.status_code


class OutboxNotifier:
    """
    Fire-and-forget notifications.

    Every notification is written to the outbox collection first and then
    pushed best-effort. Nothing here raises: a failed notification must never
    undo an admission or ledger change that already committed.
    """

    def __init__(self, store: DocumentStore, *, push: Optional[PushGateway] = None, clock: Clock = utc_now):
        self.store = store
        self.push = push
        self.clock = clock

    def notify(self, user_id: str, title: str, message: str, *, kind: str, data: Optional[dict[str, Any]] = None) -> None:
        doc = {
            "user_id": user_id,
            "title": title,
            "message": message,
            "kind": kind,
            "data": data or {},
            "created_at": self.clock().isoformat(),
            "delivered": False,
        }
        try:
            doc_id = self.store.append(NOTIFICATIONS, doc)
        except Exception:
            logger.exception("notification outbox write failed user_id=%s kind=%s", user_id, kind)
            increment_notification(kind, "outbox_failed")
            return

        if self.push is None:
            increment_notification(kind, "queued")
            return

        try:
            status = self.push.send({"id": doc_id, **doc})
        except httpx.HTTPError as exc:
            logger.warning("push failed id=%s user_id=%s kind=%s error=%s", doc_id, user_id, kind, type(exc).__name__)
            increment_notification(kind, "push_failed")
            return

        result = "pushed" if 200 <= status < 300 else "push_rejected"
        if result != "pushed":
            logger.warning("push rejected id=%s status=%s", doc_id, status)
        increment_notification(kind, result)

    def alert_operator(self, code: str, message: str, *, severity: str = "error", **context: Any) -> None:
        safe_context = redact_dict(context)
        logger.error("operator_alert code=%s severity=%s message=%s context=%s", code, severity, message, safe_context)
        increment_operator_alert(code)
        try:
            self.store.append(
                ADMIN_ALERTS,
                {
                    "code": code,
                    "severity": severity,
                    "message": message,
                    "context": safe_context,
                    "created_at": self.clock().isoformat(),
                    "acknowledged": False,
                },
            )
        except Exception:
            logger.exception("operator alert write failed code=%s", code)
