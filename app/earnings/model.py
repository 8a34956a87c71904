# app/earnings/model.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

EARNINGS_SCHEMA_VERSION = 1

# fixed 20/80 split
PLATFORM_FEE_PERCENT = 20


def split_amount(amount_cents: int) -> tuple[int, int]:
    """
    Returns (platform_fee_cents, host_earning_cents).
    Fee rounds half up to the cent; the two parts always sum to the amount.
    """
    if amount_cents < 0:
        raise ValueError("amount_cents must be >= 0")
    fee = (amount_cents * PLATFORM_FEE_PERCENT + 50) // 100
    return fee, amount_cents - fee


class TransactionStatus(str, Enum):
    PAID = "paid"
    REFUNDED = "refunded"


class PayoutMethod(str, Enum):
    ACH = "ach"
    PAYPAL = "paypal"
    WISE = "wise"
    CHECK = "check"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# payouts in these states own their transactions
DISCHARGING_STATUSES = {PayoutStatus.PENDING, PayoutStatus.PROCESSING, PayoutStatus.COMPLETED}


class HostTransaction(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    party_id: str
    party_title: str
    guest_id: str
    guest_name: str
    amount_cents: int = Field(ge=0)
    platform_fee_cents: int = Field(ge=0)
    host_earning_cents: int = Field(ge=0)
    payment_id: Optional[str] = None
    status: TransactionStatus
    created_at: datetime
    refunded_at: Optional[datetime] = None
    refund_amount_cents: Optional[int] = Field(default=None, ge=0)


class PayoutRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    run_id: Optional[str] = None
    amount_cents: int = Field(ge=0)
    payout_date: datetime
    payout_method: PayoutMethod
    status: PayoutStatus
    transaction_ids: List[str]
    transfer_id: Optional[str] = None
    estimated_arrival: Optional[datetime] = None
    failure_reason: Optional[str] = None
    retryable: Optional[bool] = None
    notes: str = ""
    updated_at: datetime


class HostEarnings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    host_id: str
    host_name: str
    total_earnings_cents: int = Field(ge=0)
    pending_earnings_cents: int = Field(ge=0)
    paid_earnings_cents: int = Field(ge=0)
    bank_account_setup: bool
    last_payout_date: Optional[datetime] = None
    transactions: List[HostTransaction]
    payout_history: List[PayoutRecord]
    created_at: datetime
    updated_at: datetime

    @field_validator("schema_version")
    @classmethod
    def _known_version(cls, v: int) -> int:
        if v != EARNINGS_SCHEMA_VERSION:
            raise ValueError(f"unsupported earnings schema_version {v}")
        return v

    @classmethod
    def empty(cls, host_id: str, host_name: str, now: datetime) -> "HostEarnings":
        return cls(
            schema_version=EARNINGS_SCHEMA_VERSION,
            host_id=host_id,
            host_name=host_name,
            total_earnings_cents=0,
            pending_earnings_cents=0,
            paid_earnings_cents=0,
            bank_account_setup=False,
            transactions=[],
            payout_history=[],
            created_at=now,
            updated_at=now,
        )

    def discharged_transaction_ids(self) -> set[str]:
        ids: set[str] = set()
        for p in self.payout_history:
            if p.status in DISCHARGING_STATUSES:
                ids.update(p.transaction_ids)
        return ids

    def payable_transactions(self) -> list[HostTransaction]:
        """Paid, never refunded, and not owned by a live payout."""
        discharged = self.discharged_transaction_ids()
        return [t for t in self.transactions if t.status == TransactionStatus.PAID and t.id not in discharged]

    def actual_pending_cents(self) -> int:
        return sum(t.host_earning_cents for t in self.payable_transactions())

    def open_transaction_for(self, party_id: str, guest_id: str) -> Optional[HostTransaction]:
        for t in self.transactions:
            if t.party_id == party_id and t.guest_id == guest_id and t.status == TransactionStatus.PAID:
                return t
        return None

    def transaction_for_payment(self, payment_id: str) -> Optional[HostTransaction]:
        """Latest transaction carrying payment_id, whatever its status."""
        for t in reversed(self.transactions):
            if t.payment_id == payment_id:
                return t
        return None

    def find_payout(self, payout_id: str) -> Optional[PayoutRecord]:
        for p in self.payout_history:
            if p.id == payout_id:
                return p
        return None

    def rebalance(self) -> None:
        """Keeps total == pending + paid after any change to either side."""
        self.pending_earnings_cents = max(0, self.pending_earnings_cents)
        self.paid_earnings_cents = max(0, self.paid_earnings_cents)
        self.total_earnings_cents = self.pending_earnings_cents + self.paid_earnings_cents


class HostBankInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    host_id: str
    bank_name: str
    account_holder: str
    account_type: str = Field(pattern="^(checking|savings)$")
    account_number: str = Field(min_length=4, max_length=34)
    routing_number: str = Field(min_length=9, max_length=9)
    payout_method: PayoutMethod
    setup_at: datetime
