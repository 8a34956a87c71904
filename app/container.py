# app/container.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from app.clock import Clock, utc_now
from app.earnings.ledger import LedgerService
from app.earnings.model import PayoutMethod
from app.notifications.service import OutboxNotifier, PushGateway
from app.parties.service import AdmissionService
from app.payouts.processor import PayoutProcessor
from app.payouts.schedule import PayoutSchedule
from app.providers.base import BankTransferProvider
from app.providers.factory import get_transfer_provider
from app.store.base import DocumentStore
from app.store.factory import build_store
from app.webhooks.payments import PaymentEventIngestor
from app.webhooks.transfers import TransferResultIngestor
from settings import Settings


@dataclass
class Services:
    """Everything a request handler or worker needs, built once per process."""

    settings: Settings
    store: DocumentStore
    notifier: OutboxNotifier
    admission: AdmissionService
    ledger: LedgerService
    payouts: PayoutProcessor
    payment_webhooks: PaymentEventIngestor
    transfer_webhooks: TransferResultIngestor


def build_services(
    settings: Settings,
    *,
    store: Optional[DocumentStore] = None,
    transfer_provider: Optional[BankTransferProvider] = None,
    clock: Clock = utc_now,
) -> Services:
    store = store if store is not None else build_store(settings)
    provider = transfer_provider if transfer_provider is not None else get_transfer_provider(settings)

    push = None
    if settings.PUSH_GATEWAY_URL:
        push = PushGateway(settings.PUSH_GATEWAY_URL, settings.PUSH_GATEWAY_KEY, timeout_s=settings.PUSH_HTTP_TIMEOUT_S)

    notifier = OutboxNotifier(store, push=push, clock=clock)
    admission = AdmissionService(store, notifier, clock=clock)
    ledger = LedgerService(store, notifier, clock=clock)
    payouts = PayoutProcessor(
        store,
        ledger,
        provider,
        notifier,
        min_payout_cents=settings.MIN_PAYOUT_CENTS,
        claim_lease_s=settings.PAYOUT_CLAIM_LEASE_S,
        run_timeout_s=settings.PAYOUT_RUN_TIMEOUT_S,
        payout_method=PayoutMethod(settings.PAYOUT_METHOD),
        schedule=PayoutSchedule.from_settings(settings),
        clock=clock,
    )
    return Services(
        settings=settings,
        store=store,
        notifier=notifier,
        admission=admission,
        ledger=ledger,
        payouts=payouts,
        payment_webhooks=PaymentEventIngestor(
            store, admission, ledger, notifier, secret=settings.PAYMENT_WEBHOOK_SECRET, clock=clock
        ),
        transfer_webhooks=TransferResultIngestor(
            store, payouts, notifier, secret=settings.TRANSFER_WEBHOOK_SECRET, clock=clock
        ),
    )
