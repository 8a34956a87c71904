from __future__ import annotations

from datetime import timedelta

from tests.conftest import GUEST_ID, HOST_ID, _auth_headers, _token


def _create_party(client, clock, headers, **overrides):
    start = clock() + timedelta(days=1)
    body = {
        "title": "Rooftop Afterparty",
        "max_guest_count": 2,
        "start_time": start.isoformat(),
        "end_time": (start + timedelta(hours=6)).isoformat(),
        "ticket_price_cents": 0,
    }
    body.update(overrides)
    return client.post("/v1/parties", json=body, headers=headers)


def test_requires_auth(client):
    r = client.get("/v1/parties/anything")
    assert r.status_code == 401, r.text
    assert r.json()["detail"] == "UNAUTHORIZED"


def test_rejects_bad_token(client):
    r = client.get("/v1/parties/anything", headers=_auth_headers("not-a-jwt"))
    assert r.status_code == 401, r.text


def test_create_party(client, clock, host_headers):
    r = _create_party(client, clock, host_headers)

    assert r.status_code == 201, r.text
    party = r.json()
    assert party["host_id"] == HOST_ID
    assert party["host_name"] == "Hana Host"
    assert party["host_handle"] == "hana"
    assert party["active_users"] == []
    assert party["approval_type"] == "manual"


def test_create_party_with_end_before_start_422(client, clock, host_headers):
    start = clock() + timedelta(days=1)
    r = _create_party(client, clock, host_headers, end_time=(start - timedelta(hours=1)).isoformat())

    assert r.status_code == 422, r.text
    assert r.json()["detail"]["error"] == "INVALID_PARTY"


def test_unknown_party_404(client, guest_headers):
    r = client.get("/v1/parties/missing/status", headers=guest_headers)
    assert r.status_code == 404, r.text
    assert r.json()["detail"]["error"] == "PARTY_NOT_FOUND"


def test_request_approve_flow(client, clock, host_headers, guest_headers):
    party_id = _create_party(client, clock, host_headers).json()["id"]

    r = client.get(f"/v1/parties/{party_id}/status", headers=guest_headers)
    assert r.json()["status"] == "not_requested"

    r = client.post(f"/v1/parties/{party_id}/requests", json={"intro_message": "hey"}, headers=guest_headers)
    assert r.status_code == 201, r.text
    request_id = r.json()["id"]
    assert r.json()["user_name"] == "Gus Guest"

    r = client.get(f"/v1/parties/{party_id}/status", headers=guest_headers)
    assert r.json()["status"] == "request_submitted"

    r = client.post(f"/v1/parties/{party_id}/requests", json={}, headers=guest_headers)
    assert r.status_code == 409, r.text
    assert r.json()["detail"]["error"] == "DUPLICATE_REQUEST"

    r = client.post(f"/v1/parties/{party_id}/requests/{request_id}/approve", headers=guest_headers)
    assert r.status_code == 403, r.text

    r = client.post(f"/v1/parties/{party_id}/requests/{request_id}/approve", headers=host_headers)
    assert r.status_code == 200, r.text
    assert r.json()["request"]["approval_status"] == "approved"

    r = client.get(f"/v1/parties/{party_id}/status", headers=guest_headers)
    assert r.json() == {"party_id": party_id, "user_id": GUEST_ID, "status": "going"}


def test_approve_missing_request_is_ignored(client, clock, host_headers):
    party_id = _create_party(client, clock, host_headers).json()["id"]

    r = client.post(f"/v1/parties/{party_id}/requests/nope/approve", headers=host_headers)

    assert r.status_code == 200, r.text
    assert r.json() == {"ok": True, "ignored": True, "reason": "REQUEST_NOT_FOUND"}


def test_approve_when_full_409(client, clock, host_headers, test_settings):
    party_id = _create_party(client, clock, host_headers, max_guest_count=1).json()["id"]
    ids = []
    for user in ("g1", "g2"):
        headers = _auth_headers(_token(test_settings, user, name=user))
        ids.append(client.post(f"/v1/parties/{party_id}/requests", json={}, headers=headers).json()["id"])

    assert client.post(f"/v1/parties/{party_id}/requests/{ids[0]}/approve", headers=host_headers).status_code == 200
    r = client.post(f"/v1/parties/{party_id}/requests/{ids[1]}/approve", headers=host_headers)

    assert r.status_code == 409, r.text
    assert r.json()["detail"]["error"] == "CAPACITY_EXCEEDED"

    other = _auth_headers(_token(test_settings, "g3"))
    r = client.get(f"/v1/parties/{party_id}/status", headers=other)
    assert r.json()["status"] == "sold_out"


def test_deny_and_withdraw(client, clock, host_headers, guest_headers):
    party_id = _create_party(client, clock, host_headers, ticket_price_cents=2500).json()["id"]
    request_id = client.post(f"/v1/parties/{party_id}/requests", json={}, headers=guest_headers).json()["id"]

    r = client.post(f"/v1/parties/{party_id}/requests/{request_id}/deny", headers=host_headers)
    assert r.status_code == 200, r.text
    assert client.get(f"/v1/parties/{party_id}/status", headers=guest_headers).json()["status"] == "denied"

    r = client.post(f"/v1/parties/{party_id}/requests", json={}, headers=guest_headers)
    assert r.status_code == 201, r.text

    r = client.delete(f"/v1/parties/{party_id}/requests/me", headers=guest_headers)
    assert r.status_code == 200, r.text
    assert client.get(f"/v1/parties/{party_id}/status", headers=guest_headers).json()["status"] == "denied"


def test_guest_sees_only_own_requests(client, clock, host_headers, guest_headers, test_settings):
    party_id = _create_party(client, clock, host_headers).json()["id"]
    other = _auth_headers(_token(test_settings, "someone-else"))
    client.post(f"/v1/parties/{party_id}/requests", json={}, headers=guest_headers)
    client.post(f"/v1/parties/{party_id}/requests", json={}, headers=other)

    as_guest = client.get(f"/v1/parties/{party_id}", headers=guest_headers).json()
    as_host = client.get(f"/v1/parties/{party_id}", headers=host_headers).json()

    assert [r["user_id"] for r in as_guest["guest_requests"]] == [GUEST_ID]
    assert len(as_host["guest_requests"]) == 2


def test_submit_after_party_ended_409(client, clock, host_headers, guest_headers):
    party_id = _create_party(client, clock, host_headers).json()["id"]
    clock.advance(days=3)

    r = client.post(f"/v1/parties/{party_id}/requests", json={}, headers=guest_headers)

    assert r.status_code == 409, r.text
    assert r.json()["detail"]["error"] == "PARTY_CLOSED"
    assert client.get(f"/v1/parties/{party_id}/status", headers=guest_headers).json()["status"] == "party_ended"
