# app/webhooks/transfers.py
from __future__ import annotations

from typing import Any, Mapping

from app.clock import Clock, utc_now
from app.errors import EarningsNotFound, InvalidPayoutTransition, PayoutNotFound
from app.notifications.service import Notifier
from app.payouts.processor import PayoutProcessor
from app.store.base import DocumentStore
from app.webhooks.base import SignedWebhookIngestor, WebhookEvent, first_dict, first_str

TRANSFER_SUCCEEDED = "transfer.succeeded"
TRANSFER_FAILED = "transfer.failed"


def _status_to_type(status: str) -> str:
    s = (status or "").strip().lower()
    if s in ("succeeded", "success", "completed", "paid", "settled"):
        return TRANSFER_SUCCEEDED
    if s in ("failed", "returned", "rejected", "cancelled", "canceled"):
        return TRANSFER_FAILED
    return s


class TransferResultIngestor(SignedWebhookIngestor):
    """Bank-transfer results: settle processing payouts as completed or failed."""

    source = "transfers"
    handled_types = frozenset({TRANSFER_SUCCEEDED, TRANSFER_FAILED})
    processed_collection = "transfer_events"

    def __init__(
        self,
        store: DocumentStore,
        processor: PayoutProcessor,
        notifier: Notifier,
        *,
        secret: str,
        clock: Clock = utc_now,
    ):
        super().__init__(store, secret=secret, clock=clock)
        self.processor = processor
        self.notifier = notifier

    def parse(self, payload: dict[str, Any], headers: Mapping[str, str]) -> WebhookEvent:
        data = first_dict(payload.get("data")) or payload
        event_type = first_str(payload.get("event_type"), payload.get("type"))
        if not event_type:
            event_type = _status_to_type(first_str(data.get("status")) or "")
        transfer_id = first_str(data.get("id"), data.get("transfer_id"))
        event_id = first_str(headers.get("webhook-id"), payload.get("event_id")) or f"{event_type}:{transfer_id}"
        return WebhookEvent(event_id=event_id, event_type=event_type.lower(), payload=payload, payment_id=transfer_id)

    def handle(self, event: WebhookEvent) -> dict[str, Any]:
        data = first_dict(event.payload.get("data")) or event.payload
        transfer_id = event.payment_id
        payout_id = first_str(data.get("reference"), data.get("payout_id"))
        host_id = first_str(data.get("recipient_id"), data.get("host_id"))
        if not host_id and transfer_id:
            host_id = self.processor.find_host_by_transfer(transfer_id)

        if not host_id or not payout_id:
            return {"applied": False, "ignored": True, "reason": "PAYOUT_NOT_FOUND"}

        succeeded = event.event_type == TRANSFER_SUCCEEDED
        try:
            record = self.processor.settle_payout(
                host_id,
                payout_id,
                succeeded=succeeded,
                reason=first_str(data.get("failure_reason"), data.get("error")),
            )
        except (EarningsNotFound, PayoutNotFound):
            return {"applied": False, "ignored": True, "reason": "PAYOUT_NOT_FOUND"}
        except InvalidPayoutTransition as exc:
            self.notifier.alert_operator(
                "PAYOUT_RESULT_CONFLICT",
                exc.message,
                host_id=host_id,
                payout_id=payout_id,
                transfer_id=transfer_id,
            )
            return {"applied": False, "ignored": True, "reason": "INVALID_TRANSITION"}

        return {"applied": True, "payout_id": record.id, "status": record.status.value}
