# routes/admin_payouts.py
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from app.payouts.processor import PayoutProcessor
from deps.admin import require_admin
from deps.auth import CurrentUser
from deps.services import get_payouts
from schemas import RunPayoutsResponse

router = APIRouter(prefix="/v1/admin/payouts", tags=["admin"])


@router.post("/run", response_model=RunPayoutsResponse)
def run_payouts(
    admin: CurrentUser = Depends(require_admin),
    payouts: PayoutProcessor = Depends(get_payouts),
):
    return payouts.run(trigger="manual", requested_by=admin.user_id)


@router.get("/status")
def payout_status(
    admin: CurrentUser = Depends(require_admin),
    payouts: PayoutProcessor = Depends(get_payouts),
):
    return payouts.payout_status()


@router.get("/runs")
def list_runs(
    limit: int = Query(default=20, ge=1, le=100),
    admin: CurrentUser = Depends(require_admin),
    payouts: PayoutProcessor = Depends(get_payouts),
):
    return {"runs": payouts.list_runs(limit=limit)}


@router.get("/runs/{run_id}")
def get_run(
    run_id: str,
    admin: CurrentUser = Depends(require_admin),
    payouts: PayoutProcessor = Depends(get_payouts),
):
    run = payouts.get_run(run_id)
    if run is None:
        raise HTTPException(status_code=404, detail="RUN_NOT_FOUND")
    return run
