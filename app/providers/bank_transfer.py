# app/providers/bank_transfer.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx

from app.providers.base import TransferRequest, TransferResult
from app.providers.http import HttpClient, is_retryable_http
from app.providers.mock import ACH_ARRIVAL_DAYS

logger = logging.getLogger("bondfyr.transfers")


def _parse_arrival(value) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


class HttpTransferProvider:
    """
    Bank-transfer API client.

    POST {base}/transfers with an idempotency key equal to the payout id, so a
    re-sent claim never moves money twice on the bank side.
    """

    def __init__(self, *, base_url: str, api_key: str, timeout_s: float = 20.0, http: HttpClient | None = None):
        if not base_url:
            raise ValueError("TRANSFER_API_URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.http = http or HttpClient(timeout_s=timeout_s)

    def send_transfer(self, request: TransferRequest) -> TransferResult:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Idempotency-Key": request.payout_id,
            "Content-Type": "application/json",
        }
        body = {
            "reference": request.payout_id,
            "recipient_id": request.host_id,
            "amount_cents": request.amount_cents,
            "currency": "USD",
            "method": request.payout_method,
            "bank": request.bank,
        }

        try:
            resp = self.http.post(f"{self.base_url}/transfers", headers=headers, json_body=body)
        except httpx.TimeoutException:
            logger.warning("transfer timeout payout_id=%s", request.payout_id)
            return TransferResult(ok=False, error="Transfer API timeout", retryable=True, response={"http_status": 504})
        except httpx.HTTPError as exc:
            logger.warning("transfer http error payout_id=%s error=%s", request.payout_id, type(exc).__name__)
            return TransferResult(ok=False, error=f"Transfer API unreachable: {type(exc).__name__}", retryable=True)

        payload = resp.json or {}
        response = {"http_status": resp.status_code, "status": payload.get("status")}

        if 200 <= resp.status_code < 300 and payload.get("id"):
            return TransferResult(
                ok=True,
                transfer_id=str(payload["id"]),
                estimated_arrival=_parse_arrival(payload.get("estimated_arrival"))
                or datetime.now(timezone.utc) + timedelta(days=ACH_ARRIVAL_DAYS),
                response=response,
            )

        error = payload.get("error") or payload.get("message") or f"HTTP {resp.status_code}"
        return TransferResult(
            ok=False,
            response=response,
            error=str(error),
            retryable=is_retryable_http(resp.status_code),
        )
