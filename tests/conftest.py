# tests/conftest.py

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest
from fastapi.testclient import TestClient

from app.parties.model import ApprovalType, Party
from app.parties.service import AdmissionService
from app.providers.mock import MockTransferProvider
from app.store.memory import MemoryDocumentStore
from main import create_app
from scripts._webhook_signing import canonical_json_bytes, signature_header
from security import create_access_token
from settings import Settings


PAYMENT_SECRET = "whsec_test_payments"
TRANSFER_SECRET = "whsec_test_transfers"

HOST_ID = "host-1"
GUEST_ID = "guest-1"
ADMIN_ID = "admin-1"


class FrozenClock:
    """Injectable clock. Tests move time with advance()."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------
# Settings + App
# ---------------------------

@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        STORE_BACKEND="memory",
        JWT_SECRET="pytest-jwt-secret-0123456789",
        PAYMENT_WEBHOOK_SECRET=PAYMENT_SECRET,
        TRANSFER_WEBHOOK_SECRET=TRANSFER_SECRET,
        MIN_PAYOUT_CENTS=1000,
        TRANSFER_MODE="mock",
        PUSH_GATEWAY_URL="",
    )


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def store() -> MemoryDocumentStore:
    return MemoryDocumentStore()


@pytest.fixture()
def provider() -> MockTransferProvider:
    return MockTransferProvider()


@pytest.fixture()
def app(test_settings, store, provider, clock):
    return create_app(test_settings, store=store, transfer_provider=provider, clock=clock)


@pytest.fixture()
def services(app):
    return app.state.services


@pytest.fixture()
def client(app) -> TestClient:
    # Needed so tests can assert 500s instead of pytest re-raising server exceptions
    return TestClient(app, raise_server_exceptions=False)


# ---------------------------
# Auth Helpers
# ---------------------------

def _auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _token(settings: Settings, user_id: str, *, admin: bool = False, name: str = "", handle: str = "") -> str:
    return create_access_token(user_id, admin=admin, name=name or None, handle=handle or None, settings=settings)


@pytest.fixture()
def host_headers(test_settings) -> Dict[str, str]:
    return _auth_headers(_token(test_settings, HOST_ID, name="Hana Host", handle="hana"))


@pytest.fixture()
def guest_headers(test_settings) -> Dict[str, str]:
    return _auth_headers(_token(test_settings, GUEST_ID, name="Gus Guest", handle="gus"))


@pytest.fixture()
def admin_headers(test_settings) -> Dict[str, str]:
    return _auth_headers(_token(test_settings, ADMIN_ID, admin=True, name="Ops"))


# ---------------------------
# Domain Helpers
# ---------------------------

def make_party(
    admission: AdmissionService,
    clock: FrozenClock,
    *,
    host_id: str = HOST_ID,
    max_guest_count: int = 10,
    ticket_price_cents: int = 2500,
    approval_type: ApprovalType = ApprovalType.MANUAL,
    title: str = "Rooftop Afterparty",
) -> Party:
    start = clock() + timedelta(days=1)
    return admission.create_party(
        host_id=host_id,
        host_handle="hana",
        host_name="Hana Host",
        title=title,
        max_guest_count=max_guest_count,
        start_time=start,
        end_time=start + timedelta(hours=6),
        ticket_price_cents=ticket_price_cents,
        approval_type=approval_type,
    )


def approved_request(admission: AdmissionService, party_id: str, user_id: str, user_name: str = "Guest"):
    req = admission.submit_request(party_id, user_id=user_id, user_name=user_name)
    return admission.approve_request(party_id, req.id)


def alerts(store, code: str) -> list[dict]:
    return store.find("admin_alerts", contains={"code": code})


def notifications(store, user_id: str, kind: Optional[str] = None) -> list[dict]:
    pattern: Dict[str, Any] = {"user_id": user_id}
    if kind:
        pattern["kind"] = kind
    return store.find("notifications", contains=pattern)


def post_signed(client: TestClient, path: str, payload: dict, secret: str, *, event_id: Optional[str] = None):
    body_bytes = canonical_json_bytes(payload)
    headers = signature_header(secret, body_bytes, event_id=event_id)
    headers["Content-Type"] = "application/json"
    return client.post(path, content=body_bytes, headers=headers)


def payment_payload(event_type: str, *, payment_id: str, party_id: str, user_id: str, amount_cents: int = 2500) -> dict:
    return {
        "event_type": event_type,
        "data": {
            "id": payment_id,
            "amount_cents": amount_cents,
            "metadata": {"partyId": party_id, "userId": user_id},
        },
    }

