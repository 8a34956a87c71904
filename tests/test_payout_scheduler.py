from __future__ import annotations

from datetime import timedelta

from app.workers.payout_scheduler import run_forever, run_once


def _ready_host(services, host_id: str = "h1") -> None:
    services.ledger.save_bank_info(
        host_id=host_id,
        host_name="Hana Host",
        bank_name="First Bank",
        account_holder="Hana Host",
        account_type="checking",
        account_number="000123456789",
        routing_number="110000000",
    )
    services.ledger.record_transaction(
        host_id=host_id,
        host_name="Hana Host",
        party_id="party-1",
        party_title="Rooftop",
        guest_id="guest-1",
        guest_name="Gus",
        amount_cents=2500,
    )


def test_run_once_returns_summary(services, provider):
    _ready_host(services)

    summary = run_once(services.payouts, trigger="manual")

    assert summary["trigger"] == "manual"
    assert summary["counts"]["succeeded"] == 1
    assert len(provider.sent) == 1


def test_run_forever_waits_for_slot(services, provider, clock):
    _ready_host(services)
    slot = services.payouts.schedule.next_run_after(clock())
    sleeps: list[float] = []

    def fake_sleep(seconds: float) -> None:
        sleeps.append(seconds)
        clock.advance(seconds=seconds)

    runs = run_forever(services.payouts, sleep=fake_sleep, max_runs=1)

    assert runs == 1
    assert sleeps and max(sleeps) <= 60.0
    assert clock() >= slot
    assert clock() - slot < timedelta(minutes=1)
    assert len(provider.sent) == 1
    assert services.payouts.list_runs()[0]["trigger"] == "scheduled"


def test_run_forever_survives_failed_run(services, clock, monkeypatch):
    def boom(**kwargs):
        raise RuntimeError("store unavailable")

    monkeypatch.setattr(services.payouts, "run", boom)

    runs = run_forever(services.payouts, sleep=lambda s: clock.advance(seconds=s), max_runs=2)

    assert runs == 2
