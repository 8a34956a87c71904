# routes/parties.py
from __future__ import annotations

from fastapi import APIRouter, Depends

from app.parties.model import ApprovalType
from app.parties.service import AdmissionService
from deps.auth import CurrentUser, get_current_user
from deps.services import get_admission
from schemas import CreatePartyRequest, GuestStatusResponse, SubmitGuestRequest

router = APIRouter(prefix="/v1/parties", tags=["parties"])


@router.post("", status_code=201)
def create_party(
    body: CreatePartyRequest,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    party = admission.create_party(
        host_id=user.user_id,
        host_handle=body.host_handle or user.handle,
        host_name=body.host_name or user.name,
        title=body.title,
        max_guest_count=body.max_guest_count,
        start_time=body.start_time,
        end_time=body.end_time,
        ticket_price_cents=body.ticket_price_cents,
        approval_type=ApprovalType(body.approval_type),
    )
    return party.model_dump(mode="json")


@router.get("/{party_id}")
def get_party(
    party_id: str,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    party = admission.get_party(party_id)
    data = party.model_dump(mode="json")
    if user.user_id != party.host_id and not user.is_admin:
        # guests only see their own request
        data["guest_requests"] = [r for r in data["guest_requests"] if r["user_id"] == user.user_id]
    return data


@router.get("/{party_id}/status", response_model=GuestStatusResponse)
def guest_status(
    party_id: str,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    status = admission.guest_status(party_id, user.user_id)
    return GuestStatusResponse(party_id=party_id, user_id=user.user_id, status=status.value)


@router.post("/{party_id}/requests", status_code=201)
def submit_request(
    party_id: str,
    body: SubmitGuestRequest,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    req = admission.submit_request(
        party_id,
        user_id=user.user_id,
        user_name=body.user_name or user.name,
        user_handle=body.user_handle or user.handle,
        intro_message=body.intro_message,
    )
    return req.model_dump(mode="json")


@router.delete("/{party_id}/requests/me")
def withdraw_request(
    party_id: str,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    admission.withdraw_request(party_id, user.user_id)
    return {"ok": True}


@router.post("/{party_id}/requests/{request_id}/approve")
def approve_request(
    party_id: str,
    request_id: str,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    req = admission.approve_request(party_id, request_id, acting_host_id=user.user_id)
    if req is None:
        return {"ok": True, "ignored": True, "reason": "REQUEST_NOT_FOUND"}
    return {"ok": True, "request": req.model_dump(mode="json")}


@router.post("/{party_id}/requests/{request_id}/deny")
def deny_request(
    party_id: str,
    request_id: str,
    user: CurrentUser = Depends(get_current_user),
    admission: AdmissionService = Depends(get_admission),
):
    req = admission.deny_request(party_id, request_id, acting_host_id=user.user_id)
    if req is None:
        return {"ok": True, "ignored": True, "reason": "REQUEST_NOT_FOUND"}
    return {"ok": True, "request": req.model_dump(mode="json")}
