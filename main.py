#main.py
from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.clock import Clock, utc_now
from app.container import build_services
from app.errors import DomainError, http_status_for
from app.providers.base import BankTransferProvider
from app.store.base import DocumentStore
from middleware import RequestContextMiddleware
from routes.admin_payouts import router as admin_payouts_router
from routes.admin_webhooks import router as admin_webhooks_router
from routes.earnings import router as earnings_router
from routes.health import router as health_router
from routes.parties import router as parties_router
from routes.webhooks import router as webhooks_router
from services.logging_setup import configure_logging
from settings import Settings, get_settings, validate_env_settings

logger = logging.getLogger("bondfyr.api")


def create_app(
    settings: Optional[Settings] = None,
    *,
    store: Optional[DocumentStore] = None,
    transfer_provider: Optional[BankTransferProvider] = None,
    clock: Clock = utc_now,
) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(title="Bondfyr Party API", version="1.0.0")
    app.state.services = build_services(settings, store=store, transfer_provider=transfer_provider, clock=clock)

    app.add_middleware(RequestContextMiddleware)

    # -----------------------------
    # ROUTERS
    # -----------------------------
    app.include_router(health_router)
    app.include_router(parties_router)
    app.include_router(earnings_router)
    app.include_router(webhooks_router)
    app.include_router(admin_payouts_router)
    app.include_router(admin_webhooks_router)

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError):
        status = http_status_for(exc)
        if status >= 500:
            logger.error("domain error path=%s code=%s", request.url.path, exc.code.value)
        return JSONResponse(
            status_code=status,
            content={"detail": {"error": exc.code.value, "message": exc.message}},
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("unhandled error path=%s", request.url.path)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    return app


def build_default_app() -> FastAPI:
    settings = get_settings()
    configure_logging("bondfyr_api", settings.LOG_LEVEL)
    validate_env_settings(settings)
    return create_app(settings)


# uvicorn main:build_default_app --factory
