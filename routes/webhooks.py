# routes/webhooks.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request

from app.container import Services
from app.errors import Unauthorized
from app.webhooks.base import SECRET_NOT_CONFIGURED, SignedWebhookIngestor
from deps.services import get_services

router = APIRouter(prefix="/v1/webhooks", tags=["webhooks"])


def _resolve_request_id(req: Request) -> str | None:
    candidates = (
        req.headers.get("X-Request-ID"),
        req.headers.get("X-Correlation-ID"),
        req.headers.get("webhook-id"),
    )
    for value in candidates:
        if value and value.strip():
            return value.strip()
    return getattr(req.state, "request_id", None)


async def _ingest(req: Request, ingestor: SignedWebhookIngestor):
    raw = await req.body()
    try:
        return ingestor.ingest(raw, dict(req.headers), request_id=_resolve_request_id(req))
    except Unauthorized as exc:
        # missing secret is a deployment problem, not the sender's
        if exc.message == SECRET_NOT_CONFIGURED:
            raise HTTPException(status_code=500, detail={"error": exc.message, "source": ingestor.source})
        raise HTTPException(status_code=401, detail={"error": exc.message})


@router.post("/payments")
async def payment_webhook(req: Request, services: Services = Depends(get_services)):
    return await _ingest(req, services.payment_webhooks)


@router.post("/transfers")
async def transfer_webhook(req: Request, services: Services = Depends(get_services)):
    return await _ingest(req, services.transfer_webhooks)
