# app/payouts/processor.py
"""
Batched host payouts.

A run scans hosts with stored pending >= the minimum, reconciles each one
against its transaction log, claims the payable transactions in a pending
PayoutRecord, and only then calls the bank. The claim is what makes two
runs in quick succession safe: the second run sees a fresh pending claim
(or no payable transactions) and skips the host.
"""
from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from app.clock import Clock, utc_now
from app.earnings.ledger import HOST_EARNINGS, LedgerService
from app.earnings.model import HostEarnings, PayoutMethod, PayoutRecord, PayoutStatus, TransactionStatus
from app.errors import EarningsNotFound, PayoutNotFound
from app.notifications.service import Notifier
from app.payouts.schedule import PayoutSchedule
from app.payouts.state_machine import assert_processing_invariant, assert_transition
from app.providers.base import BankTransferProvider, TransferRequest, TransferResult, is_retryable
from app.store.base import Doc, DocumentStore, decode, encode
from services.metrics import add_payout_cents, increment_payout_attempt, increment_payout_run

logger = logging.getLogger("bondfyr.payouts")

PAYOUT_RUNS = "payout_runs"
RECENT_RUNS_LIMIT = 5


@dataclass
class _Claim:
    status: str  # "claimed" | "skipped"
    reason: Optional[str] = None
    reconciled: bool = False
    previous_pending_cents: int = 0
    actual_pending_cents: int = 0
    expired_claims: list[str] = field(default_factory=list)
    payout: Optional[PayoutRecord] = None


def _release(earnings: HostEarnings, record: PayoutRecord) -> int:
    """
    Give a failed payout's transactions back to pending.
    Refunded transactions already left paid via the ledger reversal, so only
    still-paid ones move.
    """
    owned = set(record.transaction_ids)
    released = sum(
        t.host_earning_cents for t in earnings.transactions if t.id in owned and t.status == TransactionStatus.PAID
    )
    earnings.paid_earnings_cents -= released
    earnings.pending_earnings_cents = earnings.actual_pending_cents()
    earnings.rebalance()
    return released


def _fmt_cents(cents: int) -> str:
    return f"${cents / 100:.2f}"


class PayoutProcessor:
    def __init__(
        self,
        store: DocumentStore,
        ledger: LedgerService,
        provider: BankTransferProvider,
        notifier: Notifier,
        *,
        min_payout_cents: int = 1000,
        claim_lease_s: int = 900,
        run_timeout_s: float = 300.0,
        payout_method: PayoutMethod = PayoutMethod.ACH,
        schedule: Optional[PayoutSchedule] = None,
        clock: Clock = utc_now,
        monotonic: Callable[[], float] = time.monotonic,
    ):
        self.store = store
        self.ledger = ledger
        self.provider = provider
        self.notifier = notifier
        self.min_payout_cents = min_payout_cents
        self.claim_lease_s = claim_lease_s
        self.run_timeout_s = run_timeout_s
        self.payout_method = payout_method
        self.schedule = schedule or PayoutSchedule()
        self.clock = clock
        self.monotonic = monotonic

    # -----------------------
    # Batch run
    # -----------------------
    def _candidate_host_ids(self) -> list[str]:
        by_pending = self.store.find(
            HOST_EARNINGS, gte=("pending_earnings_cents", self.min_payout_cents), order_by="host_id"
        )
        # hosts holding an open claim also need a look so stale claims get expired
        with_claims = self.store.find(
            HOST_EARNINGS, contains={"payout_history": [{"status": PayoutStatus.PENDING.value}]}, order_by="host_id"
        )
        seen: dict[str, None] = {}
        for doc in by_pending + with_claims:
            host_id = doc.get("host_id")
            if host_id:
                seen.setdefault(host_id, None)
        return list(seen)

    def run(self, *, trigger: str = "scheduled", requested_by: Optional[str] = None) -> dict[str, Any]:
        run_id = str(uuid.uuid4())
        started_at = self.clock()
        deadline = self.monotonic() + self.run_timeout_s
        logger.info("payout run start run_id=%s trigger=%s", run_id, trigger)

        counts = {
            "candidates": 0,
            "reconciled": 0,
            "eligible": 0,
            "succeeded": 0,
            "failed": 0,
            "skipped": 0,
            "errors": 0,
        }
        total_paid_cents = 0
        results: list[dict[str, Any]] = []
        timed_out = False

        host_ids = self._candidate_host_ids()
        counts["candidates"] = len(host_ids)

        for host_id in host_ids:
            if self.monotonic() >= deadline:
                timed_out = True
                logger.warning("payout run timed out run_id=%s remaining_hosts=%s", run_id, len(host_ids) - len(results))
                break

            try:
                result = self._process_host(host_id, run_id)
            except Exception as exc:
                # one host must never abort the batch
                logger.exception("payout host error run_id=%s host_id=%s", run_id, host_id)
                increment_payout_attempt("error")
                self.notifier.alert_operator(
                    "PAYOUT_HOST_ERROR",
                    "Payout processing raised for host",
                    run_id=run_id,
                    host_id=host_id,
                    error=type(exc).__name__,
                )
                result = {"host_id": host_id, "status": "error", "reason": type(exc).__name__}

            results.append(result)
            if result.get("reconciled"):
                counts["reconciled"] += 1
            status = result["status"]
            if status in ("paid", "failed"):
                counts["eligible"] += 1
            if status == "paid":
                counts["succeeded"] += 1
                total_paid_cents += int(result.get("amount_cents") or 0)
            elif status == "failed":
                counts["failed"] += 1
            elif status == "skipped":
                counts["skipped"] += 1
            else:
                counts["errors"] += 1

        summary = {
            "id": run_id,
            "trigger": trigger,
            "requested_by": requested_by,
            "started_at": started_at.isoformat(),
            "finished_at": self.clock().isoformat(),
            "timed_out": timed_out,
            "counts": counts,
            "total_paid_cents": total_paid_cents,
            "results": results,
        }
        self.store.create(PAYOUT_RUNS, run_id, summary)
        increment_payout_run(trigger, timed_out)

        logger.info(
            "payout run done run_id=%s candidates=%s succeeded=%s failed=%s skipped=%s errors=%s total_paid_cents=%s timed_out=%s",
            run_id,
            counts["candidates"],
            counts["succeeded"],
            counts["failed"],
            counts["skipped"],
            counts["errors"],
            total_paid_cents,
            timed_out,
        )
        if counts["failed"] or counts["errors"]:
            self.notifier.alert_operator(
                "PAYOUT_RUN_FAILURES",
                f"Payout run finished with {counts['failed']} failed and {counts['errors']} errored hosts",
                severity="warning",
                run_id=run_id,
            )
        return summary

    def _process_host(self, host_id: str, run_id: str) -> dict[str, Any]:
        bank = self.ledger.get_bank_info(host_id)
        claim: _Claim = self.store.run_transaction(
            HOST_EARNINGS,
            host_id,
            lambda current: self._reconcile_and_claim(host_id, current, run_id, has_bank=bank is not None),
        )

        for payout_id in claim.expired_claims:
            self.notifier.alert_operator(
                "PAYOUT_CLAIM_EXPIRED",
                "Pending payout claim expired before a transfer result was recorded",
                host_id=host_id,
                payout_id=payout_id,
            )

        result: dict[str, Any] = {
            "host_id": host_id,
            "reconciled": claim.reconciled,
            "previous_pending_cents": claim.previous_pending_cents,
            "actual_pending_cents": claim.actual_pending_cents,
        }
        if claim.reconciled:
            logger.warning(
                "pending drift corrected host_id=%s stored_cents=%s actual_cents=%s",
                host_id,
                claim.previous_pending_cents,
                claim.actual_pending_cents,
            )

        if claim.status != "claimed" or claim.payout is None:
            logger.info("payout skipped host_id=%s reason=%s", host_id, claim.reason)
            result.update({"status": "skipped", "reason": claim.reason})
            return result

        payout = claim.payout
        request = TransferRequest(
            payout_id=payout.id,
            host_id=host_id,
            amount_cents=payout.amount_cents,
            payout_method=payout.payout_method.value,
            bank=bank.model_dump(mode="json", exclude={"setup_at"}) if bank else {},
        )
        try:
            transfer = self.provider.send_transfer(request)
        except Exception as exc:
            logger.exception("transfer provider raised host_id=%s payout_id=%s", host_id, payout.id)
            transfer = TransferResult(ok=False, error=f"{type(exc).__name__}: {exc}", retryable=True)

        record = self.store.run_transaction(
            HOST_EARNINGS, host_id, lambda current: self._apply_transfer(host_id, payout.id, transfer, current)
        )
        result.update({"payout_id": payout.id, "amount_cents": payout.amount_cents})

        if transfer.ok and record is not None and record.status == PayoutStatus.PROCESSING:
            increment_payout_attempt("ok")
            add_payout_cents(payout.amount_cents)
            logger.info(
                "payout sent host_id=%s payout_id=%s amount_cents=%s transfer_id=%s",
                host_id,
                payout.id,
                payout.amount_cents,
                record.transfer_id,
            )
            arrival = record.estimated_arrival.date().isoformat() if record.estimated_arrival else "soon"
            self.notifier.notify(
                host_id,
                "Payout on the way",
                f"{_fmt_cents(payout.amount_cents)} is headed to your bank. Expected by {arrival}.",
                kind="payout_sent",
                data={"payout_id": payout.id, "amount_cents": payout.amount_cents},
            )
            result.update({"status": "paid", "transfer_id": record.transfer_id})
            return result

        if transfer.ok:
            # the bank took the money but the claim was expired meanwhile; the
            # released transactions would be paid twice without a manual fix
            increment_payout_attempt("claim_lost")
            logger.error("payout claim lost host_id=%s payout_id=%s transfer_id=%s", host_id, payout.id, transfer.transfer_id)
            self.notifier.alert_operator(
                "PAYOUT_CLAIM_LOST",
                "Transfer accepted after its claim expired",
                severity="critical",
                host_id=host_id,
                payout_id=payout.id,
                transfer_id=transfer.transfer_id,
            )
            result.update({"status": "failed", "reason": "CLAIM_LOST", "retryable": False})
            return result

        increment_payout_attempt("failed")
        retryable = is_retryable(transfer)
        logger.warning(
            "payout failed host_id=%s payout_id=%s error=%s retryable=%s",
            host_id,
            payout.id,
            transfer.error,
            retryable,
        )
        self.notifier.alert_operator(
            "PAYOUT_TRANSFER_FAILED",
            "Bank transfer failed; amount stays pending for the next run",
            host_id=host_id,
            payout_id=payout.id,
            amount_cents=payout.amount_cents,
            error=transfer.error,
            retryable=retryable,
        )
        result.update({"status": "failed", "reason": transfer.error or "TRANSFER_FAILED", "retryable": retryable})
        return result

    def _reconcile_and_claim(self, host_id: str, current: Optional[Doc], run_id: str, *, has_bank: bool):
        if current is None:
            return None, _Claim(status="skipped", reason="EARNINGS_NOT_FOUND")

        earnings = decode(HostEarnings, current, collection=HOST_EARNINGS, doc_id=host_id)
        now = self.clock()
        changed = False
        claim = _Claim(status="skipped", previous_pending_cents=earnings.pending_earnings_cents)

        fresh_claim = False
        for record in earnings.payout_history:
            if record.status != PayoutStatus.PENDING:
                continue
            age_s = (now - record.updated_at).total_seconds()
            if age_s < self.claim_lease_s:
                fresh_claim = True
                continue
            assert_transition(record.status.value, PayoutStatus.FAILED.value)
            record.status = PayoutStatus.FAILED
            record.failure_reason = "CLAIM_EXPIRED"
            record.retryable = True
            record.updated_at = now
            _release(earnings, record)
            claim.expired_claims.append(record.id)
            changed = True

        actual = earnings.actual_pending_cents()
        claim.actual_pending_cents = actual
        if actual != earnings.pending_earnings_cents:
            claim.reconciled = True
            earnings.pending_earnings_cents = actual
            earnings.rebalance()
            changed = True

        if fresh_claim:
            claim.reason = "CLAIM_IN_PROGRESS"
        elif actual < self.min_payout_cents:
            claim.reason = "BELOW_MINIMUM"
        elif not earnings.bank_account_setup or not has_bank:
            claim.reason = "BANK_NOT_SETUP"
        else:
            txns = earnings.payable_transactions()
            record = PayoutRecord(
                id=str(uuid.uuid4()),
                run_id=run_id,
                amount_cents=actual,
                payout_date=now,
                payout_method=self.payout_method,
                status=PayoutStatus.PENDING,
                transaction_ids=[t.id for t in txns],
                notes=f"Weekly payout for {len(txns)} transactions",
                updated_at=now,
            )
            earnings.payout_history.append(record)
            earnings.paid_earnings_cents += actual
            earnings.pending_earnings_cents = earnings.actual_pending_cents()
            earnings.rebalance()
            claim.status = "claimed"
            claim.payout = record
            changed = True

        if not changed:
            return None, claim
        earnings.updated_at = now
        return encode(earnings), claim

    def _apply_transfer(self, host_id: str, payout_id: str, transfer: TransferResult, current: Optional[Doc]):
        if current is None:
            raise EarningsNotFound(host_id=host_id)
        earnings = decode(HostEarnings, current, collection=HOST_EARNINGS, doc_id=host_id)
        record = earnings.find_payout(payout_id)
        if record is None or record.status != PayoutStatus.PENDING:
            # claim was expired or settled elsewhere in the meantime
            return None, record

        now = self.clock()
        if transfer.ok:
            assert_transition(record.status.value, PayoutStatus.PROCESSING.value)
            assert_processing_invariant(PayoutStatus.PROCESSING.value, transfer.transfer_id)
            record.status = PayoutStatus.PROCESSING
            record.transfer_id = transfer.transfer_id
            record.estimated_arrival = transfer.estimated_arrival
            earnings.last_payout_date = now
        else:
            assert_transition(record.status.value, PayoutStatus.FAILED.value)
            record.status = PayoutStatus.FAILED
            record.failure_reason = transfer.error or "TRANSFER_FAILED"
            record.retryable = is_retryable(transfer)
            _release(earnings, record)

        record.updated_at = now
        earnings.updated_at = now
        return encode(earnings), record

    # -----------------------
    # Bank-transfer results
    # -----------------------
    def find_host_by_transfer(self, transfer_id: str) -> Optional[str]:
        docs = self.store.find(HOST_EARNINGS, contains={"payout_history": [{"transfer_id": transfer_id}]}, limit=1)
        return docs[0].get("host_id") if docs else None

    def settle_payout(
        self,
        host_id: str,
        payout_id: str,
        *,
        succeeded: bool,
        reason: Optional[str] = None,
    ) -> PayoutRecord:
        """
        processing -> completed, or processing -> failed which hands the
        amount back to pending. Repeating the same result is a no-op.
        """
        target = PayoutStatus.COMPLETED if succeeded else PayoutStatus.FAILED

        def _mutate(current: Optional[Doc]):
            if current is None:
                raise EarningsNotFound(host_id=host_id)
            earnings = decode(HostEarnings, current, collection=HOST_EARNINGS, doc_id=host_id)
            record = earnings.find_payout(payout_id)
            if record is None:
                raise PayoutNotFound(host_id=host_id, payout_id=payout_id)
            if record.status == target:
                return None, (record, False)

            assert_transition(record.status.value, target.value)
            now = self.clock()
            record.status = target
            record.updated_at = now
            if not succeeded:
                record.failure_reason = reason or "TRANSFER_RETURNED"
                _release(earnings, record)
            earnings.updated_at = now
            return encode(earnings), (record, True)

        record, changed = self.store.run_transaction(HOST_EARNINGS, host_id, _mutate)
        if changed:
            logger.info("payout settled host_id=%s payout_id=%s status=%s", host_id, payout_id, target.value)
            if not succeeded:
                self.notifier.alert_operator(
                    "PAYOUT_RETURNED",
                    "Bank reported a failed transfer; amount returned to pending",
                    host_id=host_id,
                    payout_id=payout_id,
                    reason=reason,
                )
                self.notifier.notify(
                    host_id,
                    "Payout issue",
                    "Your last payout could not be completed. We'll retry in the next payout run.",
                    kind="payout_failed",
                    data={"payout_id": payout_id},
                )
        return record

    # -----------------------
    # Query interface
    # -----------------------
    def list_runs(self, *, limit: int = 20) -> list[dict[str, Any]]:
        return self.store.find(PAYOUT_RUNS, order_by="started_at", descending=True, limit=limit)

    def get_run(self, run_id: str) -> Optional[dict[str, Any]]:
        return self.store.get(PAYOUT_RUNS, run_id)

    def payout_status(self) -> dict[str, Any]:
        """Read-only dashboard view. Reconciles in memory only; nothing is written."""
        now = self.clock()
        eligible: list[dict[str, Any]] = []
        for doc in self.store.find(
            HOST_EARNINGS, gte=("pending_earnings_cents", self.min_payout_cents), order_by="host_id"
        ):
            earnings = decode(HostEarnings, doc, collection=HOST_EARNINGS, doc_id=doc.get("host_id", ""))
            actual = earnings.actual_pending_cents()
            has_open_claim = any(p.status == PayoutStatus.PENDING for p in earnings.payout_history)
            if actual >= self.min_payout_cents and earnings.bank_account_setup and not has_open_claim:
                eligible.append(
                    {
                        "host_id": earnings.host_id,
                        "host_name": earnings.host_name,
                        "stored_pending_cents": earnings.pending_earnings_cents,
                        "actual_pending_cents": actual,
                    }
                )

        return {
            "hosts_ready_count": len(eligible),
            "total_pending_cents": sum(h["actual_pending_cents"] for h in eligible),
            "eligible_hosts": eligible,
            "recent_runs": self.list_runs(limit=RECENT_RUNS_LIMIT),
            "next_scheduled_run": self.schedule.next_run_after(now).isoformat(),
            "min_payout_cents": self.min_payout_cents,
        }
