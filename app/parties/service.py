# app/parties/service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Optional

from pydantic import ValidationError

from app.clock import Clock, utc_now
from app.earnings.model import split_amount
from app.errors import (
    CapacityExceeded,
    DuplicateRequest,
    Forbidden,
    InvalidParty,
    PartyClosed,
    PartyNotFound,
    PaymentRefunded,
    RequestNotFound,
)
from app.notifications.service import Notifier
from app.parties.model import (
    PARTY_SCHEMA_VERSION,
    ApprovalStatus,
    ApprovalType,
    GuestRequest,
    Party,
    PartyGuestStatus,
    PaymentStatus,
    compute_guest_status,
)
from app.store.base import Doc, DocumentStore, decode, encode
from services.metrics import increment_admission

logger = logging.getLogger("bondfyr.admission")

PARTIES = "parties"


def _approve_in_place(party: Party, req: GuestRequest, now: datetime) -> bool:
    """
    Approval inside an open party transaction. Returns False when nothing changed.
    Free parties admit right away; paid parties admit once payment lands.
    """
    if req.approval_status == ApprovalStatus.APPROVED:
        return False
    if req.approval_status == ApprovalStatus.DENIED and party.open_request_for(req.user_id) is not None:
        return False
    if party.is_full():
        raise CapacityExceeded(party_id=party.id, max_guest_count=party.max_guest_count)

    req.approval_status = ApprovalStatus.APPROVED
    req.approved_at = now
    if not party.requires_payment:
        party.admit(req.user_id)
    return True


class AdmissionService:
    """
    Guest admission state machine over the party document.

    Each operation is one atomic read-modify-write on the party, so the
    capacity check and duplicate check always see the state they mutate.
    """

    def __init__(self, store: DocumentStore, notifier: Notifier, *, clock: Clock = utc_now):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    def _decode(self, party_id: str, doc: Doc) -> Party:
        return decode(Party, doc, collection=PARTIES, doc_id=party_id)

    def _load_for_update(self, party_id: str, current: Optional[Doc]) -> Party:
        if current is None:
            raise PartyNotFound(party_id=party_id)
        return self._decode(party_id, current)

    # -----------------------
    # Party lifecycle
    # -----------------------
    def create_party(
        self,
        *,
        host_id: str,
        host_handle: str,
        host_name: str,
        title: str,
        max_guest_count: int,
        start_time: datetime,
        end_time: datetime,
        ticket_price_cents: int = 0,
        approval_type: ApprovalType = ApprovalType.MANUAL,
        party_id: Optional[str] = None,
    ) -> Party:
        try:
            party = Party(
                schema_version=PARTY_SCHEMA_VERSION,
                id=party_id or str(uuid.uuid4()),
                host_id=host_id,
                host_handle=host_handle,
                host_name=host_name,
                title=title,
                max_guest_count=max_guest_count,
                active_users=[],
                start_time=start_time,
                end_time=end_time,
                approval_type=approval_type,
                ticket_price_cents=ticket_price_cents,
                guest_requests=[],
                earnings_cents=0,
                platform_fee_cents=0,
                created_at=self.clock(),
            )
        except ValidationError as exc:
            raise InvalidParty(f"Invalid party: {exc.errors()[0].get('msg')}") from exc

        self.store.create(PARTIES, party.id, encode(party))
        logger.info("party created party_id=%s host_id=%s max_guests=%s", party.id, host_id, max_guest_count)
        return party

    def get_party(self, party_id: str) -> Party:
        doc = self.store.get(PARTIES, party_id)
        if doc is None:
            raise PartyNotFound(party_id=party_id)
        return self._decode(party_id, doc)

    def find_party_by_payment(self, payment_id: str) -> Optional[Party]:
        docs = self.store.find(PARTIES, contains={"guest_requests": [{"payment_id": payment_id}]}, limit=1)
        if not docs:
            return None
        return self._decode(docs[0].get("id", ""), docs[0])

    def guest_status(self, party_id: str, user_id: str) -> PartyGuestStatus:
        return compute_guest_status(self.get_party(party_id), user_id, self.clock())

    # -----------------------
    # Guest requests
    # -----------------------
    def submit_request(
        self,
        party_id: str,
        *,
        user_id: str,
        user_name: str,
        user_handle: str = "",
        intro_message: str = "",
    ) -> GuestRequest:
        def _mutate(current: Optional[Doc]):
            party = self._load_for_update(party_id, current)
            now = self.clock()

            if party.is_ended(now):
                raise PartyClosed(party_id=party_id)
            if party.open_request_for(user_id) is not None:
                raise DuplicateRequest(party_id=party_id, user_id=user_id)

            req = GuestRequest(
                id=str(uuid.uuid4()),
                user_id=user_id,
                user_name=user_name,
                user_handle=user_handle,
                intro_message=intro_message,
                payment_status=PaymentStatus.PENDING,
                approval_status=ApprovalStatus.PENDING,
                submitted_at=now,
            )
            party.guest_requests.append(req)
            if party.approval_type == ApprovalType.AUTOMATIC:
                _approve_in_place(party, req, now)
            return encode(party), (party, req)

        try:
            party, req = self.store.run_transaction(PARTIES, party_id, _mutate)
        except (DuplicateRequest, PartyClosed, CapacityExceeded) as exc:
            increment_admission("submit", exc.code.value.lower())
            raise

        increment_admission("submit", "ok")
        logger.info(
            "guest request submitted party_id=%s request_id=%s user_id=%s status=%s",
            party_id,
            req.id,
            user_id,
            req.approval_status.value,
        )
        self.notifier.notify(
            party.host_id,
            "New guest request",
            f"{user_name} wants to join {party.title}",
            kind="guest_request",
            data={"party_id": party_id, "request_id": req.id},
        )
        return req

    def approve_request(self, party_id: str, request_id: str, *, acting_host_id: Optional[str] = None) -> Optional[GuestRequest]:
        """
        Missing request is a silent no-op. Capacity is checked inside the
        transaction against the state being written.
        """

        def _mutate(current: Optional[Doc]):
            party = self._load_for_update(party_id, current)
            if acting_host_id is not None and acting_host_id != party.host_id:
                raise Forbidden(party_id=party_id)

            req = party.find_request(request_id)
            if req is None:
                return None, (party, None, False)

            changed = _approve_in_place(party, req, self.clock())
            return (encode(party) if changed else None), (party, req, changed)

        try:
            party, req, changed = self.store.run_transaction(PARTIES, party_id, _mutate)
        except CapacityExceeded:
            increment_admission("approve", "capacity_exceeded")
            logger.info("approve rejected party_id=%s request_id=%s reason=capacity", party_id, request_id)
            raise

        if req is None:
            increment_admission("approve", "not_found")
            logger.info("approve no-op party_id=%s request_id=%s reason=not_found", party_id, request_id)
            return None

        if changed:
            increment_admission("approve", "ok")
            logger.info("request approved party_id=%s request_id=%s user_id=%s", party_id, request_id, req.user_id)
            message = (
                f"You're approved for {party.title}. Complete payment to confirm your spot."
                if party.requires_payment
                else f"You're going to {party.title}!"
            )
            self.notifier.notify(
                req.user_id,
                "Request approved",
                message,
                kind="request_approved",
                data={"party_id": party_id, "request_id": request_id},
            )
        return req

    def deny_request(self, party_id: str, request_id: str, *, acting_host_id: Optional[str] = None) -> Optional[GuestRequest]:
        """Marks the request denied and keeps it for audit; the guest leaves active_users."""

        def _mutate(current: Optional[Doc]):
            party = self._load_for_update(party_id, current)
            if acting_host_id is not None and acting_host_id != party.host_id:
                raise Forbidden(party_id=party_id)

            req = party.find_request(request_id)
            if req is None or req.approval_status == ApprovalStatus.DENIED:
                return None, (party, req, False)

            req.approval_status = ApprovalStatus.DENIED
            req.denied_at = self.clock()
            party.remove_active(req.user_id)
            return encode(party), (party, req, True)

        party, req, changed = self.store.run_transaction(PARTIES, party_id, _mutate)
        if req is None:
            increment_admission("deny", "not_found")
            logger.info("deny no-op party_id=%s request_id=%s reason=not_found", party_id, request_id)
            return None

        if changed:
            increment_admission("deny", "ok")
            if req.payment_status == PaymentStatus.PAID:
                logger.warning("paid guest denied party_id=%s request_id=%s user_id=%s", party_id, request_id, req.user_id)
                self.notifier.alert_operator(
                    "PAID_GUEST_DENIED",
                    "Host denied a guest who already paid; refund required",
                    party_id=party_id,
                    request_id=request_id,
                    user_id=req.user_id,
                    payment_id=req.payment_id,
                )
            logger.info("request denied party_id=%s request_id=%s user_id=%s", party_id, request_id, req.user_id)
            self.notifier.notify(
                req.user_id,
                "Request update",
                f"Your request for {party.title} was not approved.",
                kind="request_denied",
                data={"party_id": party_id, "request_id": request_id},
            )
        return req

    def withdraw_request(self, party_id: str, user_id: str) -> bool:
        """Guest cancels their own pending or approved-unpaid request."""

        def _mutate(current: Optional[Doc]):
            party = self._load_for_update(party_id, current)
            req = party.open_request_for(user_id)
            if req is None:
                raise RequestNotFound(party_id=party_id, user_id=user_id)
            if req.payment_status == PaymentStatus.PAID:
                raise Forbidden("Paid requests are cancelled through a refund", party_id=party_id)

            party.guest_requests = [r for r in party.guest_requests if r.id != req.id]
            party.remove_active(user_id)
            return encode(party), req

        req = self.store.run_transaction(PARTIES, party_id, _mutate)
        increment_admission("withdraw", "ok")
        logger.info("request withdrawn party_id=%s request_id=%s user_id=%s", party_id, req.id, user_id)
        return True

    # -----------------------
    # Payment effects
    # -----------------------
    def admit_paid_guest(self, party_id: str, user_id: str, *, payment_id: Optional[str], amount_cents: int) -> bool:
        """
        Payment confirmed: guest becomes "going". Returns False when the
        payment was already applied.
        """
        fee, earning = split_amount(amount_cents)

        def _mutate(current: Optional[Doc]):
            party = self._load_for_update(party_id, current)
            spent = party.find_request_by_payment(payment_id) if payment_id else None
            if spent is not None and spent.payment_status == PaymentStatus.REFUNDED:
                raise PaymentRefunded(party_id=party_id, payment_id=payment_id)
            req = party.open_request_for(user_id)
            if req is None or req.approval_status != ApprovalStatus.APPROVED:
                raise RequestNotFound("No approved request for guest", party_id=party_id, user_id=user_id)

            if req.payment_status == PaymentStatus.PAID:
                if user_id in party.active_users:
                    return None, False
                # paid but not seated; seat them if there is room
                if party.is_full():
                    raise CapacityExceeded(party_id=party_id, max_guest_count=party.max_guest_count)
                party.admit(user_id)
                return encode(party), True

            if user_id not in party.active_users and party.is_full():
                raise CapacityExceeded(party_id=party_id, max_guest_count=party.max_guest_count)

            now = self.clock()
            req.payment_status = PaymentStatus.PAID
            req.paid_at = now
            req.payment_id = payment_id
            req.amount_cents = amount_cents
            party.admit(user_id)
            party.earnings_cents += earning
            party.platform_fee_cents += fee
            return encode(party), True

        try:
            admitted = self.store.run_transaction(PARTIES, party_id, _mutate)
        except CapacityExceeded:
            increment_admission("admit_paid", "capacity_exceeded")
            raise

        increment_admission("admit_paid", "ok" if admitted else "already_applied")
        logger.info("paid guest admit party_id=%s user_id=%s applied=%s", party_id, user_id, admitted)
        return admitted

    def revoke_paid_guest(self, party_id: str, user_id: str, *, payment_id: Optional[str] = None) -> Optional[GuestRequest]:
        """Refund demotion. Returns None when nothing was left to revoke."""

        def _mutate(current: Optional[Doc]):
            party = self._load_for_update(party_id, current)
            req = party.find_request_by_payment(payment_id) if payment_id else None
            if req is None:
                req = next(
                    (
                        r
                        for r in reversed(party.guest_requests)
                        if r.user_id == user_id and r.payment_status == PaymentStatus.PAID
                    ),
                    None,
                )
            if req is None or req.payment_status != PaymentStatus.PAID:
                return None, None

            fee, earning = split_amount(req.amount_cents or 0)
            req.payment_status = PaymentStatus.REFUNDED
            req.refunded_at = self.clock()
            party.remove_active(req.user_id)
            party.earnings_cents = max(0, party.earnings_cents - earning)
            party.platform_fee_cents = max(0, party.platform_fee_cents - fee)
            return encode(party), req

        req = self.store.run_transaction(PARTIES, party_id, _mutate)
        increment_admission("revoke_paid", "ok" if req else "noop")
        logger.info("paid guest revoke party_id=%s user_id=%s applied=%s", party_id, user_id, req is not None)
        return req
