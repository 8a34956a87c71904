# deps/services.py
from fastapi import Request

from app.container import Services
from app.earnings.ledger import LedgerService
from app.parties.service import AdmissionService
from app.payouts.processor import PayoutProcessor


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_admission(request: Request) -> AdmissionService:
    return get_services(request).admission


def get_ledger(request: Request) -> LedgerService:
    return get_services(request).ledger


def get_payouts(request: Request) -> PayoutProcessor:
    return get_services(request).payouts
