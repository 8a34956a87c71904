# app/providers/mock.py
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from app.providers.base import TransferRequest, TransferResult

# ACH settles in ~3 business days
ACH_ARRIVAL_DAYS = 3


class MockTransferProvider:
    """
    Test/dev provider.

    fail_hosts lets a test fail specific hosts while the rest succeed.
    On failures retryable stays None unless set, so http_status decides.
    """

    def __init__(
        self,
        *,
        succeed: bool = True,
        fail_hosts: Optional[set[str]] = None,
        retryable: Optional[bool] = None,
        failure_http_status: int = 504,
        raise_for_hosts: Optional[set[str]] = None,
    ):
        self.succeed = succeed
        self.fail_hosts = set(fail_hosts or ())
        self.raise_for_hosts = set(raise_for_hosts or ())
        self.retryable = retryable
        self.failure_http_status = failure_http_status
        self.sent: list[TransferRequest] = []

    def send_transfer(self, request: TransferRequest) -> TransferResult:
        if request.host_id in self.raise_for_hosts:
            raise RuntimeError("mock transfer crashed")

        self.sent.append(request)
        if self.succeed and request.host_id not in self.fail_hosts:
            return TransferResult(
                ok=True,
                transfer_id=f"mock-{request.payout_id}",
                estimated_arrival=datetime.now(timezone.utc) + timedelta(days=ACH_ARRIVAL_DAYS),
                response={"http_status": 200, "mock": True},
            )

        return TransferResult(
            ok=False,
            response={"http_status": self.failure_http_status, "mock": True},
            error="Gateway timeout",
            retryable=self.retryable,
        )
