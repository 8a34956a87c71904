# routes/admin_webhooks.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Path, Query

from app.container import Services
from app.webhooks.repository import get_webhook_event, list_webhook_events
from deps.admin import require_admin
from deps.services import get_services

router = APIRouter(prefix="/v1/admin/webhooks", tags=["admin_webhooks"])


@router.get("/events")
def list_events(
    limit: int = Query(50, ge=1, le=200),
    source: str | None = Query(None),
    payment_id: str | None = Query(None),
    _admin=Depends(require_admin),
    services: Services = Depends(get_services),
):
    events = list_webhook_events(services.store, source=source, payment_id=payment_id, limit=limit)
    return {"events": events}


@router.get("/events/{event_id}")
def get_event(
    event_id: str = Path(...),
    _admin=Depends(require_admin),
    services: Services = Depends(get_services),
):
    event = get_webhook_event(services.store, event_id=event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="WEBHOOK_EVENT_NOT_FOUND")
    return event


@router.get("/alerts")
def list_alerts(
    limit: int = Query(50, ge=1, le=200),
    _admin=Depends(require_admin),
    services: Services = Depends(get_services),
):
    alerts = services.store.find("admin_alerts", order_by="created_at", descending=True, limit=limit)
    return {"alerts": alerts}
