from __future__ import annotations

import json

import httpx
import pytest

from app.providers.bank_transfer import HttpTransferProvider
from app.providers.base import TransferRequest, is_retryable
from app.providers.factory import get_transfer_provider
from app.providers.http import HttpClient
from app.providers.mock import MockTransferProvider
from settings import Settings


def _request() -> TransferRequest:
    return TransferRequest(
        payout_id="po_1",
        host_id="h1",
        amount_cents=2000,
        payout_method="ach",
        bank={"account_number": "000123456789", "routing_number": "110000000"},
    )


def _provider(handler) -> HttpTransferProvider:
    http = HttpClient(transport=httpx.MockTransport(handler))
    return HttpTransferProvider(base_url="https://bank.test/v1/", api_key="sk_test", http=http)


def test_success_returns_transfer_id():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(201, json={"id": "tr_123", "status": "pending", "estimated_arrival": "2026-05-06T00:00:00Z"})

    result = _provider(handler).send_transfer(_request())

    assert result.ok is True
    assert result.transfer_id == "tr_123"
    assert result.estimated_arrival.year == 2026
    assert seen["url"] == "https://bank.test/v1/transfers"
    assert seen["headers"]["Idempotency-Key"] == "po_1"
    assert seen["headers"]["Authorization"] == "Bearer sk_test"
    assert seen["body"]["amount_cents"] == 2000
    assert seen["body"]["reference"] == "po_1"


def test_server_error_is_retryable():
    result = _provider(lambda request: httpx.Response(503, json={"error": "maintenance"})).send_transfer(_request())

    assert result.ok is False
    assert result.error == "maintenance"
    assert is_retryable(result) is True


def test_rejection_is_not_retryable():
    result = _provider(lambda request: httpx.Response(400, json={"message": "invalid account"})).send_transfer(_request())

    assert result.ok is False
    assert result.error == "invalid account"
    assert is_retryable(result) is False


def test_2xx_without_id_is_a_failure():
    result = _provider(lambda request: httpx.Response(200, json={"status": "pending"})).send_transfer(_request())

    assert result.ok is False


def test_timeout_is_retryable():
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    result = _provider(handler).send_transfer(_request())

    assert result.ok is False
    assert result.retryable is True
    assert result.response == {"http_status": 504}


def test_factory_modes():
    assert isinstance(get_transfer_provider(Settings(_env_file=None, TRANSFER_MODE="mock")), MockTransferProvider)

    http = get_transfer_provider(
        Settings(_env_file=None, TRANSFER_MODE="http", TRANSFER_API_URL="https://bank.test", TRANSFER_API_KEY="k")
    )
    assert isinstance(http, HttpTransferProvider)

    with pytest.raises(ValueError):
        get_transfer_provider(Settings(_env_file=None, TRANSFER_MODE="http"))
