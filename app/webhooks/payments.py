# app/webhooks/payments.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from app.clock import Clock, utc_now
from app.earnings.ledger import LedgerService
from app.errors import (
    CapacityExceeded,
    DuplicateTransaction,
    NoMatchingTransaction,
    PartyNotFound,
    PaymentRefunded,
    RequestNotFound,
)
from app.notifications.service import Notifier
from app.parties.model import ApprovalStatus, Party, PaymentStatus
from app.parties.service import AdmissionService
from app.store.base import DocumentStore
from app.webhooks.base import SignedWebhookIngestor, WebhookEvent, first_dict, first_str, to_cents

logger = logging.getLogger("bondfyr.webhooks")

PAYMENT_SUCCEEDED = "payment.succeeded"
PAYMENT_FAILED = "payment.failed"
REFUND_SUCCEEDED = "refund.succeeded"

# provider spellings seen in the wild
EVENT_ALIASES = {
    "payment.succeeded": PAYMENT_SUCCEEDED,
    "payment_succeeded": PAYMENT_SUCCEEDED,
    "order_created": PAYMENT_SUCCEEDED,
    "payment.failed": PAYMENT_FAILED,
    "payment_failed": PAYMENT_FAILED,
    "refund.succeeded": REFUND_SUCCEEDED,
    "refund_succeeded": REFUND_SUCCEEDED,
    "order_refunded": REFUND_SUCCEEDED,
}


@dataclass(frozen=True)
class PaymentEvent(WebhookEvent):
    party_id: Optional[str] = None
    user_id: Optional[str] = None
    amount_cents: Optional[int] = None


def parse_payment_event(payload: dict[str, Any], headers: Mapping[str, str]) -> PaymentEvent:
    meta = first_dict(payload.get("meta"))
    raw_type = first_str(payload.get("event_type"), payload.get("type"), meta.get("event_name")) or ""
    event_type = EVENT_ALIASES.get(raw_type.lower(), raw_type.lower())

    data = first_dict(payload.get("data")) or payload
    attributes = first_dict(data.get("attributes"))
    checkout = first_dict(data.get("checkout_data"), attributes.get("checkout_data"))
    metadata = first_dict(
        data.get("metadata"),
        data.get("custom"),
        data.get("custom_data"),
        checkout.get("custom"),
        meta.get("custom_data"),
        payload.get("metadata"),
    )

    payment_id = first_str(
        data.get("payment_id"),
        data.get("paymentId"),
        attributes.get("payment_id"),
        data.get("id"),
    )
    amount = to_cents(
        first_str(
            data.get("amount_cents"),
            data.get("total_amount"),
            data.get("amount"),
            attributes.get("total"),
        )
    )

    event_id = first_str(
        headers.get("webhook-id"),
        payload.get("event_id"),
        payload.get("id") if payload.get("data") is not None else None,
    ) or f"{event_type}:{payment_id}"

    return PaymentEvent(
        event_id=event_id,
        event_type=event_type,
        payload=payload,
        payment_id=payment_id,
        party_id=first_str(metadata.get("afterpartyId"), metadata.get("partyId"), metadata.get("party_id")),
        user_id=first_str(metadata.get("userId"), metadata.get("user_id")),
        amount_cents=amount,
    )


def _ignored(reason: str, **extra: Any) -> dict[str, Any]:
    return {"applied": False, "ignored": True, "reason": reason, **extra}


class PaymentEventIngestor(SignedWebhookIngestor):
    """
    Turns payment-provider events into ledger and admission changes.

    payment.succeeded records the ledger entry first and then admits the
    guest; both steps tolerate a prior partial delivery, so redelivery after
    a crash between them completes the pair.
    """

    source = "payments"
    handled_types = frozenset({PAYMENT_SUCCEEDED, PAYMENT_FAILED, REFUND_SUCCEEDED})
    processed_collection = "payment_events"

    def __init__(
        self,
        store: DocumentStore,
        admission: AdmissionService,
        ledger: LedgerService,
        notifier: Notifier,
        *,
        secret: str,
        clock: Clock = utc_now,
    ):
        super().__init__(store, secret=secret, clock=clock)
        self.admission = admission
        self.ledger = ledger
        self.notifier = notifier

    def parse(self, payload: dict[str, Any], headers: Mapping[str, str]) -> PaymentEvent:
        return parse_payment_event(payload, headers)

    def handle(self, event: PaymentEvent) -> dict[str, Any]:
        if event.event_type == PAYMENT_SUCCEEDED:
            return self._payment_succeeded(event)
        if event.event_type == PAYMENT_FAILED:
            return self._payment_failed(event)
        return self._refund_succeeded(event)

    def _payment_succeeded(self, event: PaymentEvent) -> dict[str, Any]:
        if not event.party_id or not event.user_id:
            return _ignored("MISSING_METADATA")

        try:
            party = self.admission.get_party(event.party_id)
        except PartyNotFound:
            return _ignored("PARTY_NOT_FOUND")

        spent = party.find_request_by_payment(event.payment_id) if event.payment_id else None
        if spent is not None and spent.payment_status == PaymentStatus.REFUNDED:
            # late redelivery of a payment whose money already went back
            logger.warning("payment already refunded party_id=%s payment_id=%s", party.id, event.payment_id)
            return _ignored("PAYMENT_REFUNDED")

        req = party.open_request_for(event.user_id)
        if req is None or req.approval_status != ApprovalStatus.APPROVED:
            self.notifier.alert_operator(
                "PAYMENT_WITHOUT_APPROVAL",
                "Payment received for a guest without an approved request",
                party_id=party.id,
                user_id=event.user_id,
                payment_id=event.payment_id,
            )
            return _ignored("REQUEST_NOT_APPROVED")

        amount = event.amount_cents if event.amount_cents is not None else party.ticket_price_cents

        ledger_recorded = True
        try:
            self.ledger.record_transaction(
                host_id=party.host_id,
                host_name=party.host_name,
                party_id=party.id,
                party_title=party.title,
                guest_id=event.user_id,
                guest_name=req.user_name,
                amount_cents=amount,
                payment_id=event.payment_id,
            )
        except DuplicateTransaction:
            # an earlier delivery got this far
            ledger_recorded = False

        try:
            admitted = self.admission.admit_paid_guest(
                party.id, event.user_id, payment_id=event.payment_id, amount_cents=amount
            )
        except CapacityExceeded:
            self.notifier.alert_operator(
                "PAID_OVER_CAPACITY",
                "Guest paid but the party filled up; refund required",
                party_id=party.id,
                user_id=event.user_id,
                payment_id=event.payment_id,
                amount_cents=amount,
            )
            return {"applied": ledger_recorded, "admitted": False, "reason": "CAPACITY_EXCEEDED"}
        except PaymentRefunded:
            # refunded between the read above and this write
            return {"applied": ledger_recorded, "admitted": False, "reason": "PAYMENT_REFUNDED"}
        except RequestNotFound:
            # request denied or withdrawn between the read and the write
            self.notifier.alert_operator(
                "PAYMENT_WITHOUT_APPROVAL",
                "Request left the approved state before payment was applied",
                party_id=party.id,
                user_id=event.user_id,
                payment_id=event.payment_id,
            )
            return {"applied": ledger_recorded, "admitted": False, "reason": "REQUEST_NOT_APPROVED"}

        if admitted:
            self.notifier.notify(
                event.user_id,
                "You're in!",
                f"Payment confirmed. See you at {party.title}.",
                kind="payment_confirmed",
                data={"party_id": party.id},
            )
            self.notifier.notify(
                party.host_id,
                "New paid guest",
                f"{req.user_name} paid and is going to {party.title}.",
                kind="guest_paid",
                data={"party_id": party.id, "user_id": event.user_id},
            )

        return {"applied": ledger_recorded or admitted, "ledger_recorded": ledger_recorded, "admitted": admitted}

    def _payment_failed(self, event: PaymentEvent) -> dict[str, Any]:
        if not event.user_id:
            return _ignored("MISSING_METADATA")
        self.notifier.notify(
            event.user_id,
            "Payment failed",
            "Your payment didn't go through. You can try again from the party page.",
            kind="payment_failed",
            data={"party_id": event.party_id, "payment_id": event.payment_id},
        )
        return {"applied": False, "notified": True}

    def _locate_refunded_party(self, event: PaymentEvent) -> Optional[Party]:
        if event.payment_id:
            party = self.admission.find_party_by_payment(event.payment_id)
            if party is not None:
                return party
        if event.party_id:
            try:
                return self.admission.get_party(event.party_id)
            except PartyNotFound:
                return None
        return None

    def _refund_succeeded(self, event: PaymentEvent) -> dict[str, Any]:
        party = self._locate_refunded_party(event)
        if party is None:
            return _ignored("PAYMENT_NOT_FOUND")

        req = party.find_request_by_payment(event.payment_id) if event.payment_id else None
        user_id = req.user_id if req is not None else event.user_id
        if not user_id:
            return _ignored("PAYMENT_NOT_FOUND")

        revoked = self.admission.revoke_paid_guest(party.id, user_id, payment_id=event.payment_id)

        reversed_ok = True
        try:
            self.ledger.reverse_transaction(
                host_id=party.host_id,
                party_id=party.id,
                guest_id=user_id,
                refund_amount_cents=event.amount_cents,
                payment_id=event.payment_id,
            )
        except NoMatchingTransaction:
            logger.warning(
                "refund without ledger entry party_id=%s user_id=%s payment_id=%s",
                party.id,
                user_id,
                event.payment_id,
            )
            reversed_ok = False

        if revoked is not None:
            self.notifier.notify(
                user_id,
                "Refund processed",
                f"Your ticket for {party.title} was refunded.",
                kind="refund_processed",
                data={"party_id": party.id},
            )

        return {"applied": revoked is not None or reversed_ok, "revoked": revoked is not None, "reversed": reversed_ok}
