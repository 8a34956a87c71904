from __future__ import annotations

import threading

import pytest

from app.earnings.model import TransactionStatus, split_amount
from app.errors import DuplicateTransaction, EarningsNotFound, NoMatchingTransaction
from tests.conftest import HOST_ID, alerts


def _record(ledger, *, guest_id: str = "guest-1", party_id: str = "party-1", amount_cents: int = 2500, payment_id=None):
    return ledger.record_transaction(
        host_id=HOST_ID,
        host_name="Hana Host",
        party_id=party_id,
        party_title="Rooftop",
        guest_id=guest_id,
        guest_name="Guest",
        amount_cents=amount_cents,
        payment_id=payment_id,
    )


def _assert_balanced(earnings) -> None:
    assert earnings.total_earnings_cents == earnings.pending_earnings_cents + earnings.paid_earnings_cents
    assert earnings.pending_earnings_cents >= 0
    assert earnings.paid_earnings_cents >= 0


@pytest.mark.parametrize(
    "amount,fee,earning",
    [
        (2500, 500, 2000),
        (1000, 200, 800),
        (999, 200, 799),
        (1, 0, 1),
        (3, 1, 2),
        (0, 0, 0),
    ],
)
def test_split_amount_rounds_fee_and_sums_to_amount(amount, fee, earning):
    assert split_amount(amount) == (fee, earning)


def test_split_amount_rejects_negative():
    with pytest.raises(ValueError):
        split_amount(-1)


def test_record_creates_earnings_lazily(services):
    tx = _record(services.ledger, payment_id="pay_1")

    earnings = services.ledger.get_earnings(HOST_ID)
    assert tx.status == TransactionStatus.PAID
    assert tx.platform_fee_cents == 500
    assert tx.host_earning_cents == 2000
    assert earnings.host_name == "Hana Host"
    assert earnings.pending_earnings_cents == 2000
    assert earnings.paid_earnings_cents == 0
    assert earnings.bank_account_setup is False
    _assert_balanced(earnings)


def test_get_earnings_missing_raises(services):
    with pytest.raises(EarningsNotFound):
        services.ledger.get_earnings("nobody")
    assert services.ledger.find_earnings("nobody") is None


def test_duplicate_party_guest_rejected(services):
    _record(services.ledger)

    with pytest.raises(DuplicateTransaction):
        _record(services.ledger)

    earnings = services.ledger.get_earnings(HOST_ID)
    assert len(earnings.transactions) == 1
    assert earnings.pending_earnings_cents == 2000


def test_duplicate_payment_id_rejected(services):
    _record(services.ledger, guest_id="a", payment_id="pay_same")

    with pytest.raises(DuplicateTransaction):
        _record(services.ledger, guest_id="b", payment_id="pay_same")


def test_reverse_before_payout_lowers_pending(services):
    _record(services.ledger, guest_id="a")
    _record(services.ledger, guest_id="b", amount_cents=1000)

    tx = services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="a")

    earnings = services.ledger.get_earnings(HOST_ID)
    assert tx.status == TransactionStatus.REFUNDED
    assert tx.refund_amount_cents == 2500
    assert earnings.pending_earnings_cents == 800
    assert earnings.total_earnings_cents == 800
    _assert_balanced(earnings)


def test_reverse_without_match_raises(services):
    _record(services.ledger)

    with pytest.raises(NoMatchingTransaction):
        services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="stranger")
    with pytest.raises(NoMatchingTransaction):
        services.ledger.reverse_transaction(host_id="other-host", party_id="party-1", guest_id="guest-1")


def test_reverse_twice_second_has_no_match(services):
    _record(services.ledger)
    services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="guest-1")

    with pytest.raises(NoMatchingTransaction):
        services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="guest-1")

    assert services.ledger.get_earnings(HOST_ID).pending_earnings_cents == 0


def test_rerecord_after_refund_allowed(services):
    _record(services.ledger)
    services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="guest-1")

    _record(services.ledger)

    earnings = services.ledger.get_earnings(HOST_ID)
    assert len(earnings.transactions) == 2
    assert earnings.pending_earnings_cents == 2000


def test_refunded_payment_id_cannot_be_recorded_again(services):
    _record(services.ledger, payment_id="pay_1")
    services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="guest-1", payment_id="pay_1")

    with pytest.raises(DuplicateTransaction):
        _record(services.ledger, payment_id="pay_1")

    earnings = services.ledger.get_earnings(HOST_ID)
    assert len(earnings.transactions) == 1
    assert earnings.pending_earnings_cents == 0


def test_reverse_by_payment_id_skips_newer_entry(services):
    _record(services.ledger, payment_id="pay_1")
    services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="guest-1", payment_id="pay_1")
    _record(services.ledger, payment_id="pay_2")

    with pytest.raises(NoMatchingTransaction):
        services.ledger.reverse_transaction(
            host_id=HOST_ID, party_id="party-1", guest_id="guest-1", payment_id="pay_1"
        )

    earnings = services.ledger.get_earnings(HOST_ID)
    assert earnings.transactions[1].status == TransactionStatus.PAID
    assert earnings.pending_earnings_cents == 2000

    tx = services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="guest-1", payment_id="pay_2")
    assert tx.payment_id == "pay_2"
    assert services.ledger.get_earnings(HOST_ID).pending_earnings_cents == 0


def test_reverse_after_payout_lowers_paid_and_alerts(services, store):
    services.ledger.save_bank_info(
        host_id=HOST_ID,
        host_name="Hana Host",
        bank_name="First Bank",
        account_holder="Hana Host",
        account_type="checking",
        account_number="000123456789",
        routing_number="110000000",
    )
    _record(services.ledger, guest_id="a")
    _record(services.ledger, guest_id="b")
    summary = services.payouts.run()
    assert summary["counts"]["succeeded"] == 1

    services.ledger.reverse_transaction(host_id=HOST_ID, party_id="party-1", guest_id="a")

    earnings = services.ledger.get_earnings(HOST_ID)
    assert earnings.paid_earnings_cents == 2000
    assert earnings.pending_earnings_cents == 0
    _assert_balanced(earnings)
    assert alerts(store, "REFUND_AFTER_PAYOUT")


def test_save_bank_info_sets_flag(services):
    earnings = services.ledger.save_bank_info(
        host_id=HOST_ID,
        host_name="Hana Host",
        bank_name="First Bank",
        account_holder="Hana Host",
        account_type="savings",
        account_number="000123456789",
        routing_number="110000000",
    )

    assert earnings.bank_account_setup is True
    info = services.ledger.get_bank_info(HOST_ID)
    assert info.account_type == "savings"
    assert info.routing_number == "110000000"


def test_concurrent_records_keep_totals(services):
    threads = [
        threading.Thread(target=_record, args=(services.ledger,), kwargs={"guest_id": f"g-{i}", "amount_cents": 1000})
        for i in range(20)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    earnings = services.ledger.get_earnings(HOST_ID)
    assert len(earnings.transactions) == 20
    assert earnings.pending_earnings_cents == 20 * 800
    _assert_balanced(earnings)
