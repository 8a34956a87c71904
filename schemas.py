# schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field


# -------- PARTIES --------
class CreatePartyRequest(BaseModel):
    title: str = Field(min_length=1, max_length=120)
    host_handle: str = ""
    host_name: str = ""
    max_guest_count: int = Field(gt=0)
    start_time: datetime
    end_time: datetime
    ticket_price_cents: int = Field(default=0, ge=0)
    approval_type: Literal["manual", "automatic"] = "manual"


class SubmitGuestRequest(BaseModel):
    user_name: Optional[str] = Field(default=None, max_length=80)
    user_handle: Optional[str] = Field(default=None, max_length=80)
    intro_message: str = Field(default="", max_length=500)


class GuestStatusResponse(BaseModel):
    party_id: str
    user_id: str
    status: str


# -------- EARNINGS --------
class BankAccountRequest(BaseModel):
    bank_name: str = Field(min_length=1)
    account_holder: str = Field(min_length=1)
    account_type: Literal["checking", "savings"] = "checking"
    account_number: str = Field(pattern=r"^\d{4,17}$")
    routing_number: str = Field(pattern=r"^\d{9}$")
    payout_method: Literal["ach", "paypal", "wise", "check"] = "ach"


class EarningsSummary(BaseModel):
    host_id: str
    host_name: str
    total_earnings_cents: int
    pending_earnings_cents: int
    paid_earnings_cents: int
    bank_account_setup: bool
    last_payout_date: Optional[datetime] = None
    transaction_count: int
    payout_count: int


# -------- ADMIN PAYOUTS --------
class RunPayoutsResponse(BaseModel):
    id: str
    trigger: str
    started_at: str
    finished_at: str
    timed_out: bool
    counts: dict[str, int]
    total_paid_cents: int
