# app/earnings/ledger.py
"""
Per-host financial ledger.

Every mutation is a single run_transaction on the host's earnings document,
so concurrent payment and refund events serialize at the document level and
total == pending + paid holds after each committed change.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from app.clock import Clock, utc_now
from app.earnings.model import (
    HostBankInfo,
    HostEarnings,
    HostTransaction,
    PayoutMethod,
    TransactionStatus,
    split_amount,
)
from app.errors import DuplicateTransaction, EarningsNotFound, NoMatchingTransaction
from app.notifications.service import Notifier
from app.store.base import Doc, DocumentStore, decode, encode
from services.metrics import increment_ledger

logger = logging.getLogger("bondfyr.ledger")

HOST_EARNINGS = "host_earnings"
HOST_BANK_INFO = "host_bank_info"


class LedgerService:
    def __init__(self, store: DocumentStore, notifier: Notifier, *, clock: Clock = utc_now):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    def _decode(self, host_id: str, doc: Doc) -> HostEarnings:
        return decode(HostEarnings, doc, collection=HOST_EARNINGS, doc_id=host_id)

    def get_earnings(self, host_id: str) -> HostEarnings:
        doc = self.store.get(HOST_EARNINGS, host_id)
        if doc is None:
            raise EarningsNotFound(host_id=host_id)
        return self._decode(host_id, doc)

    def find_earnings(self, host_id: str) -> Optional[HostEarnings]:
        doc = self.store.get(HOST_EARNINGS, host_id)
        return self._decode(host_id, doc) if doc is not None else None

    def record_transaction(
        self,
        *,
        host_id: str,
        host_name: str,
        party_id: str,
        party_title: str,
        guest_id: str,
        guest_name: str,
        amount_cents: int,
        payment_id: Optional[str] = None,
    ) -> HostTransaction:
        fee, earning = split_amount(amount_cents)

        def _mutate(current: Optional[Doc]):
            now = self.clock()
            earnings = self._decode(host_id, current) if current else HostEarnings.empty(host_id, host_name, now)

            if earnings.open_transaction_for(party_id, guest_id) is not None:
                raise DuplicateTransaction(party_id=party_id, guest_id=guest_id)
            # a payment id is spent once, even after its refund
            if payment_id and earnings.transaction_for_payment(payment_id) is not None:
                raise DuplicateTransaction(payment_id=payment_id)

            tx = HostTransaction(
                id=str(uuid.uuid4()),
                party_id=party_id,
                party_title=party_title,
                guest_id=guest_id,
                guest_name=guest_name,
                amount_cents=amount_cents,
                platform_fee_cents=fee,
                host_earning_cents=earning,
                payment_id=payment_id,
                status=TransactionStatus.PAID,
                created_at=now,
            )
            earnings.transactions.append(tx)
            earnings.pending_earnings_cents += earning
            if host_name and not earnings.host_name:
                earnings.host_name = host_name
            earnings.rebalance()
            earnings.updated_at = now
            return encode(earnings), tx

        try:
            tx = self.store.run_transaction(HOST_EARNINGS, host_id, _mutate)
        except DuplicateTransaction:
            increment_ledger("record", "duplicate")
            logger.info("ledger duplicate host_id=%s party_id=%s guest_id=%s", host_id, party_id, guest_id)
            raise

        increment_ledger("record", "ok")
        logger.info(
            "ledger recorded host_id=%s party_id=%s guest_id=%s tx_id=%s amount_cents=%s host_earning_cents=%s",
            host_id,
            party_id,
            guest_id,
            tx.id,
            amount_cents,
            earning,
        )
        return tx

    def reverse_transaction(
        self,
        *,
        host_id: str,
        party_id: str,
        guest_id: str,
        refund_amount_cents: Optional[int] = None,
        payment_id: Optional[str] = None,
    ) -> HostTransaction:
        """
        A known payment_id pins the exact transaction, and an already refunded one
        is a no-match. Without a known payment_id the open entry for
        (party_id, guest_id) is reversed.
        """

        def _mutate(current: Optional[Doc]):
            if current is None:
                raise NoMatchingTransaction(host_id=host_id, party_id=party_id, guest_id=guest_id)

            earnings = self._decode(host_id, current)
            tx = earnings.transaction_for_payment(payment_id) if payment_id else None
            if tx is None:
                tx = earnings.open_transaction_for(party_id, guest_id)
            elif tx.status != TransactionStatus.PAID:
                tx = None
            if tx is None:
                raise NoMatchingTransaction(host_id=host_id, party_id=party_id, guest_id=guest_id)

            now = self.clock()
            discharged = tx.id in earnings.discharged_transaction_ids()

            tx.status = TransactionStatus.REFUNDED
            tx.refunded_at = now
            tx.refund_amount_cents = refund_amount_cents if refund_amount_cents is not None else tx.amount_cents

            if discharged:
                # money already left with a payout: take it back out of paid
                earnings.paid_earnings_cents -= tx.host_earning_cents
            else:
                earnings.pending_earnings_cents -= tx.host_earning_cents
            earnings.rebalance()
            earnings.updated_at = now
            return encode(earnings), (tx, discharged)

        try:
            tx, discharged = self.store.run_transaction(HOST_EARNINGS, host_id, _mutate)
        except NoMatchingTransaction:
            increment_ledger("reverse", "no_match")
            logger.warning(
                "ledger reversal without match host_id=%s party_id=%s guest_id=%s payment_id=%s",
                host_id,
                party_id,
                guest_id,
                payment_id,
            )
            raise

        increment_ledger("reverse", "after_payout" if discharged else "ok")
        logger.info(
            "ledger reversed host_id=%s party_id=%s guest_id=%s tx_id=%s host_earning_cents=%s after_payout=%s",
            host_id,
            party_id,
            guest_id,
            tx.id,
            tx.host_earning_cents,
            discharged,
        )

        if refund_amount_cents is not None and refund_amount_cents != tx.amount_cents:
            logger.warning(
                "refund amount differs from transaction tx_id=%s refund_cents=%s amount_cents=%s",
                tx.id,
                refund_amount_cents,
                tx.amount_cents,
            )

        if discharged:
            self.notifier.alert_operator(
                "REFUND_AFTER_PAYOUT",
                "Refund reversed a transaction that was already paid out",
                host_id=host_id,
                party_id=party_id,
                guest_id=guest_id,
                transaction_id=tx.id,
                host_earning_cents=tx.host_earning_cents,
            )
        return tx

    def save_bank_info(
        self,
        *,
        host_id: str,
        host_name: str,
        bank_name: str,
        account_holder: str,
        account_type: str,
        account_number: str,
        routing_number: str,
        payout_method: PayoutMethod = PayoutMethod.ACH,
    ) -> HostEarnings:
        now = self.clock()
        info = HostBankInfo(
            host_id=host_id,
            bank_name=bank_name,
            account_holder=account_holder,
            account_type=account_type,
            account_number=account_number,
            routing_number=routing_number,
            payout_method=payout_method,
            setup_at=now,
        )

        self.store.run_transaction(HOST_BANK_INFO, host_id, lambda _current: (encode(info), None))

        def _mutate(current: Optional[Doc]):
            earnings = self._decode(host_id, current) if current else HostEarnings.empty(host_id, host_name, now)
            earnings.bank_account_setup = True
            earnings.updated_at = now
            return encode(earnings), earnings

        earnings = self.store.run_transaction(HOST_EARNINGS, host_id, _mutate)
        logger.info("bank account saved host_id=%s method=%s", host_id, payout_method.value)
        return earnings

    def get_bank_info(self, host_id: str) -> Optional[HostBankInfo]:
        doc = self.store.get(HOST_BANK_INFO, host_id)
        if doc is None:
            return None
        return decode(HostBankInfo, doc, collection=HOST_BANK_INFO, doc_id=host_id)
