from __future__ import annotations

import os

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from app.container import Services
from deps.services import get_services
from services.metrics import render_prometheus

router = APIRouter(tags=["health"])


def _check_store(services: Services) -> tuple[bool, str | None]:
    try:
        services.store.ping()
        return True, None
    except Exception as exc:
        return False, f"{type(exc).__name__}: {exc}"


def _resolve_env() -> str:
    return (os.getenv("ENVIRONMENT") or os.getenv("ENV") or "").strip()


def _resolve_git_sha() -> str | None:
    return (os.getenv("GIT_SHA") or "").strip() or None


@router.get("/health")
def health(services: Services = Depends(get_services)):
    return {
        "ok": True,
        "env": _resolve_env(),
        "store_backend": services.settings.STORE_BACKEND,
        "transfer_mode": services.settings.TRANSFER_MODE,
        "git_sha": _resolve_git_sha(),
    }


@router.get("/healthz")
def healthz(services: Services = Depends(get_services)):
    store_ok, store_error = _check_store(services)
    return {
        "ok": True,
        "version": os.getenv("APP_VERSION", "1.0.0"),
        "git_sha": _resolve_git_sha(),
        "store_ok": store_ok,
        "store_error": store_error,
    }


@router.get("/readyz")
def readyz(services: Services = Depends(get_services)):
    store_ok, store_error = _check_store(services)
    secrets_ok = bool(services.settings.PAYMENT_WEBHOOK_SECRET)
    return {
        "ready": bool(store_ok and secrets_ok),
        "store_ok": store_ok,
        "store_error": store_error,
        "webhook_secret_configured": secrets_ok,
    }


@router.get("/metrics")
def metrics():
    body = render_prometheus()
    return Response(content=body, media_type="text/plain; version=0.0.4")
