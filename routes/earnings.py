# routes/earnings.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.earnings.ledger import LedgerService
from app.earnings.model import HostEarnings, PayoutMethod
from deps.auth import CurrentUser, get_current_user
from deps.services import get_ledger
from schemas import BankAccountRequest, EarningsSummary
from services.redaction import mask_account

router = APIRouter(prefix="/v1/hosts", tags=["earnings"])


def _summary(earnings: HostEarnings) -> EarningsSummary:
    return EarningsSummary(
        host_id=earnings.host_id,
        host_name=earnings.host_name,
        total_earnings_cents=earnings.total_earnings_cents,
        pending_earnings_cents=earnings.pending_earnings_cents,
        paid_earnings_cents=earnings.paid_earnings_cents,
        bank_account_setup=earnings.bank_account_setup,
        last_payout_date=earnings.last_payout_date,
        transaction_count=len(earnings.transactions),
        payout_count=len(earnings.payout_history),
    )


@router.get("/me/earnings")
def my_earnings(
    include_history: bool = Query(default=False),
    user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
):
    earnings = ledger.get_earnings(user.user_id)
    out = _summary(earnings).model_dump(mode="json")
    if include_history:
        out["transactions"] = [t.model_dump(mode="json") for t in earnings.transactions]
        out["payout_history"] = [p.model_dump(mode="json") for p in earnings.payout_history]
    return out


@router.put("/me/bank-account")
def save_bank_account(
    body: BankAccountRequest,
    user: CurrentUser = Depends(get_current_user),
    ledger: LedgerService = Depends(get_ledger),
):
    earnings = ledger.save_bank_info(
        host_id=user.user_id,
        host_name=user.name,
        bank_name=body.bank_name,
        account_holder=body.account_holder,
        account_type=body.account_type,
        account_number=body.account_number,
        routing_number=body.routing_number,
        payout_method=PayoutMethod(body.payout_method),
    )
    return {
        "ok": True,
        "bank_account_setup": earnings.bank_account_setup,
        "account_number": mask_account(body.account_number),
    }
