from __future__ import annotations

import logging

from fastapi.testclient import TestClient

from main import create_app


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data.get("ok") is True
    assert data.get("store_backend") == "memory"
    assert data.get("transfer_mode") == "mock"


def test_healthz(client):
    r = client.get("/healthz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data.get("ok") is True
    assert data.get("store_ok") is True


def test_readyz(client):
    r = client.get("/readyz")
    assert r.status_code == 200, r.text
    data = r.json()
    assert data["ready"] is True
    assert data["webhook_secret_configured"] is True


def test_readyz_not_ready_when_store_down(test_settings, provider, clock):
    class DownStore:
        def ping(self):
            raise ConnectionError("db down")

    client = TestClient(create_app(test_settings, store=DownStore(), transfer_provider=provider, clock=clock))

    data = client.get("/readyz").json()
    assert data["ready"] is False
    assert data["store_ok"] is False
    assert "ConnectionError" in data["store_error"]


def test_version_fields(client, monkeypatch):
    monkeypatch.setenv("GIT_SHA", "test-sha")
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.setenv("ENV", "staging")

    data = client.get("/health").json()
    assert data.get("git_sha") == "test-sha"
    assert data.get("env") == "staging"


def test_metrics_exposes_counters(client):
    client.get("/health")

    r = client.get("/metrics")
    assert r.status_code == 200, r.text
    assert r.headers["content-type"].startswith("text/plain")
    assert "http_requests_total" in r.text


def test_request_id_added_when_missing(client):
    resp = client.get("/health")
    assert resp.status_code == 200, resp.text
    assert resp.headers.get("X-Request-ID")


def test_request_id_echoed_when_present(client):
    resp = client.get("/health", headers={"X-Request-ID": "client-request-id"})
    assert resp.headers.get("X-Request-ID") == "client-request-id"


def test_request_log_includes_method_path_status(client, caplog):
    caplog.set_level(logging.INFO, logger="bondfyr.http")
    client.get("/health", headers={"Authorization": "Bearer secret-token"})

    lines = [r.getMessage() for r in caplog.records if r.name == "bondfyr.http"]
    assert any("method=GET" in m and "path=/health" in m and "status=200" in m for m in lines)
    assert all("secret-token" not in m for m in lines)
