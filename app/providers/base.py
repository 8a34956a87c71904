# app/providers/base.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class TransferRequest:
    payout_id: str
    host_id: str
    amount_cents: int
    payout_method: str
    bank: dict[str, Any]


@dataclass(frozen=True)
class TransferResult:
    ok: bool
    transfer_id: Optional[str] = None
    estimated_arrival: Optional[datetime] = None
    response: Optional[dict[str, Any]] = None
    error: Optional[str] = None

    # None => let the caller classify based on http_status / error
    retryable: Optional[bool] = None


class BankTransferProvider(Protocol):
    def send_transfer(self, request: TransferRequest) -> TransferResult: ...


def http_status(result: TransferResult) -> Optional[int]:
    if isinstance(result.response, dict):
        v = result.response.get("http_status")
        return int(v) if v is not None else None
    return None


def is_retryable(result: TransferResult) -> bool:
    if result.retryable is not None:
        return result.retryable
    # Treat these as transient
    return http_status(result) in {408, 425, 429, 500, 502, 503, 504}
