# app/parties/model.py
from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

PARTY_SCHEMA_VERSION = 1


class ApprovalType(str, Enum):
    MANUAL = "manual"
    AUTOMATIC = "automatic"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"


class PartyGuestStatus(str, Enum):
    NOT_REQUESTED = "not_requested"
    REQUEST_SUBMITTED = "request_submitted"
    APPROVED = "approved"
    DENIED = "denied"
    GOING = "going"
    SOLD_OUT = "sold_out"
    PARTY_ENDED = "party_ended"


class GuestRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    user_id: str
    user_name: str
    user_handle: str
    intro_message: str
    payment_status: PaymentStatus
    approval_status: ApprovalStatus
    submitted_at: datetime
    approved_at: Optional[datetime] = None
    denied_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    payment_id: Optional[str] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)

    @property
    def is_open(self) -> bool:
        """Denied or refunded requests no longer block a new request from the same user."""
        return self.approval_status != ApprovalStatus.DENIED and self.payment_status != PaymentStatus.REFUNDED


class Party(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int
    id: str
    host_id: str
    host_handle: str
    host_name: str
    title: str
    max_guest_count: int = Field(gt=0)
    active_users: List[str]
    start_time: datetime
    end_time: datetime
    approval_type: ApprovalType
    ticket_price_cents: int = Field(ge=0)
    guest_requests: List[GuestRequest]
    earnings_cents: int = Field(ge=0)
    platform_fee_cents: int = Field(ge=0)
    created_at: datetime

    @field_validator("schema_version")
    @classmethod
    def _known_version(cls, v: int) -> int:
        if v != PARTY_SCHEMA_VERSION:
            raise ValueError(f"unsupported party schema_version {v}")
        return v

    @model_validator(mode="after")
    def _check_window(self) -> "Party":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        if len(set(self.active_users)) != len(self.active_users):
            raise ValueError("active_users must be unique")
        return self

    @property
    def requires_payment(self) -> bool:
        return self.ticket_price_cents > 0

    def is_ended(self, now: datetime) -> bool:
        return now > self.end_time

    def is_full(self) -> bool:
        return len(self.active_users) >= self.max_guest_count

    def find_request(self, request_id: str) -> Optional[GuestRequest]:
        for r in self.guest_requests:
            if r.id == request_id:
                return r
        return None

    def open_request_for(self, user_id: str) -> Optional[GuestRequest]:
        for r in self.guest_requests:
            if r.user_id == user_id and r.is_open:
                return r
        return None

    def latest_request_for(self, user_id: str) -> Optional[GuestRequest]:
        latest = None
        for r in self.guest_requests:
            if r.user_id == user_id:
                latest = r
        return latest

    def find_request_by_payment(self, payment_id: str) -> Optional[GuestRequest]:
        for r in self.guest_requests:
            if r.payment_id and r.payment_id == payment_id:
                return r
        return None

    def admit(self, user_id: str) -> bool:
        if user_id in self.active_users:
            return False
        self.active_users.append(user_id)
        return True

    def remove_active(self, user_id: str) -> bool:
        if user_id not in self.active_users:
            return False
        self.active_users = [u for u in self.active_users if u != user_id]
        return True


def compute_guest_status(party: Party, user_id: str, now: datetime) -> PartyGuestStatus:
    """
    Guest-facing status for (party, user). Never stored.

    Order matters: an ended party wins over everything, and a confirmed guest
    sees "going" even when the party is full.
    """
    if party.is_ended(now):
        return PartyGuestStatus.PARTY_ENDED

    if user_id in party.active_users:
        return PartyGuestStatus.GOING

    req = party.latest_request_for(user_id)
    if req is not None:
        if req.payment_status == PaymentStatus.REFUNDED:
            return PartyGuestStatus.DENIED
        if req.approval_status == ApprovalStatus.PENDING:
            return PartyGuestStatus.REQUEST_SUBMITTED
        if req.approval_status == ApprovalStatus.APPROVED:
            return PartyGuestStatus.APPROVED
        return PartyGuestStatus.DENIED

    if party.is_full():
        return PartyGuestStatus.SOLD_OUT

    return PartyGuestStatus.NOT_REQUESTED
