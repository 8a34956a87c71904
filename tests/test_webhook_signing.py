from __future__ import annotations

from app.webhooks.base import SECRET_NOT_CONFIGURED, verify_signature
from scripts._webhook_signing import canonical_json_bytes, hmac_sha256_hex, signature_header


def test_canonical_json_bytes_stable():
    payload_a = {"b": 1, "a": 2}
    payload_b = {"a": 2, "b": 1}
    bytes_a = canonical_json_bytes(payload_a)
    bytes_b = canonical_json_bytes(payload_b)
    assert bytes_a == bytes_b
    assert bytes_a == b'{"a":2,"b":1}'


def test_signature_header_matches_server_check():
    body = canonical_json_bytes({"event_type": "payment.succeeded"})
    headers = signature_header("whsec_abc", body, event_id="evt_1")

    assert headers["webhook-id"] == "evt_1"
    assert verify_signature(raw=body, signature_header=headers["X-Signature"], secret="whsec_abc") == (True, None)


def test_bare_hex_signature_accepted():
    body = b'{"x":1}'
    sig = hmac_sha256_hex("whsec_abc", body)
    assert verify_signature(raw=body, signature_header=sig, secret="whsec_abc") == (True, None)


def test_signature_rejects_wrong_secret():
    body = b'{"x":1}'
    headers = signature_header("wrong_secret", body)
    ok, err = verify_signature(raw=body, signature_header=headers["X-Signature"], secret="whsec_abc")
    assert ok is False
    assert err == "INVALID_SIGNATURE"


def test_signature_rejects_tampered_body():
    headers = signature_header("whsec_abc", b'{"amount_cents":2500}')
    ok, err = verify_signature(raw=b'{"amount_cents":1}', signature_header=headers["X-Signature"], secret="whsec_abc")
    assert ok is False
    assert err == "INVALID_SIGNATURE"


def test_missing_secret_and_header():
    assert verify_signature(raw=b"{}", signature_header="sha256=00", secret="") == (False, SECRET_NOT_CONFIGURED)
    assert verify_signature(raw=b"{}", signature_header=None, secret="s") == (False, "MISSING_SIGNATURE")
