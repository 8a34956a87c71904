# app/errors.py
"""Domain error codes shared by the admission, ledger and payout services."""
from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    PARTY_NOT_FOUND = "PARTY_NOT_FOUND"
    REQUEST_NOT_FOUND = "REQUEST_NOT_FOUND"
    DUPLICATE_REQUEST = "DUPLICATE_REQUEST"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    PARTY_CLOSED = "PARTY_CLOSED"
    INVALID_PARTY = "INVALID_PARTY"
    FORBIDDEN = "FORBIDDEN"
    DUPLICATE_TRANSACTION = "DUPLICATE_TRANSACTION"
    NO_MATCHING_TRANSACTION = "NO_MATCHING_TRANSACTION"
    EARNINGS_NOT_FOUND = "EARNINGS_NOT_FOUND"
    PAYOUT_NOT_FOUND = "PAYOUT_NOT_FOUND"
    INVALID_PAYOUT_TRANSITION = "INVALID_PAYOUT_TRANSITION"
    UNAUTHORIZED = "UNAUTHORIZED"
    TRANSFER_FAILED = "TRANSFER_FAILED"
    CORRUPT_DOCUMENT = "CORRUPT_DOCUMENT"
    DOCUMENT_EXISTS = "DOCUMENT_EXISTS"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    PAYMENT_REFUNDED = "PAYMENT_REFUNDED"


class DomainError(Exception):
    """Base domain error: a stable code plus a human-readable reason."""

    code: ErrorCode = ErrorCode.INVALID_PARTY
    default_message = "Domain error"

    def __init__(self, message: str | None = None, **context):
        self.message = message or self.default_message
        self.context = context
        super().__init__(self.message)

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class PartyNotFound(DomainError):
    code = ErrorCode.PARTY_NOT_FOUND
    default_message = "Party not found"


class RequestNotFound(DomainError):
    code = ErrorCode.REQUEST_NOT_FOUND
    default_message = "Guest request not found"


class DuplicateRequest(DomainError):
    code = ErrorCode.DUPLICATE_REQUEST
    default_message = "A request for this guest already exists"


class CapacityExceeded(DomainError):
    code = ErrorCode.CAPACITY_EXCEEDED
    default_message = "Party is at capacity"


class PartyClosed(DomainError):
    code = ErrorCode.PARTY_CLOSED
    default_message = "Party has ended"


class InvalidParty(DomainError):
    code = ErrorCode.INVALID_PARTY
    default_message = "Invalid party"


class Forbidden(DomainError):
    code = ErrorCode.FORBIDDEN
    default_message = "Forbidden"


class DuplicateTransaction(DomainError):
    code = ErrorCode.DUPLICATE_TRANSACTION
    default_message = "Transaction already recorded for this guest"


class NoMatchingTransaction(DomainError):
    code = ErrorCode.NO_MATCHING_TRANSACTION
    default_message = "No matching transaction to reverse"


class EarningsNotFound(DomainError):
    code = ErrorCode.EARNINGS_NOT_FOUND
    default_message = "Host earnings not found"


class PayoutNotFound(DomainError):
    code = ErrorCode.PAYOUT_NOT_FOUND
    default_message = "Payout not found"


class InvalidPayoutTransition(DomainError):
    code = ErrorCode.INVALID_PAYOUT_TRANSITION
    default_message = "Illegal payout transition"


class Unauthorized(DomainError):
    code = ErrorCode.UNAUTHORIZED
    default_message = "Unauthorized"


class TransferFailed(DomainError):
    code = ErrorCode.TRANSFER_FAILED
    default_message = "Bank transfer failed"


class CorruptDocument(DomainError):
    code = ErrorCode.CORRUPT_DOCUMENT
    default_message = "Stored document failed validation"


class DocumentExists(DomainError):
    code = ErrorCode.DOCUMENT_EXISTS
    default_message = "Document already exists"


class InvalidPayload(DomainError):
    code = ErrorCode.INVALID_PAYLOAD
    default_message = "Malformed event payload"


class PaymentRefunded(DomainError):
    code = ErrorCode.PAYMENT_REFUNDED
    default_message = "Payment was already refunded"


class TransientStoreError(DomainError):
    """Lock timeout, serialization failure or a lost create race. Safe to retry."""

    code = ErrorCode.STORE_UNAVAILABLE
    default_message = "Store temporarily unavailable"


DOMAIN_ERROR_HTTP_MAP: dict[ErrorCode, int] = {
    ErrorCode.PARTY_NOT_FOUND: 404,
    ErrorCode.REQUEST_NOT_FOUND: 404,
    ErrorCode.DUPLICATE_REQUEST: 409,
    ErrorCode.CAPACITY_EXCEEDED: 409,
    ErrorCode.PARTY_CLOSED: 409,
    ErrorCode.INVALID_PARTY: 422,
    ErrorCode.FORBIDDEN: 403,
    ErrorCode.DUPLICATE_TRANSACTION: 409,
    ErrorCode.NO_MATCHING_TRANSACTION: 404,
    ErrorCode.EARNINGS_NOT_FOUND: 404,
    ErrorCode.PAYOUT_NOT_FOUND: 404,
    ErrorCode.INVALID_PAYOUT_TRANSITION: 409,
    ErrorCode.UNAUTHORIZED: 401,
    ErrorCode.TRANSFER_FAILED: 502,
    ErrorCode.CORRUPT_DOCUMENT: 500,
    ErrorCode.DOCUMENT_EXISTS: 409,
    ErrorCode.STORE_UNAVAILABLE: 503,
    ErrorCode.INVALID_PAYLOAD: 400,
    ErrorCode.PAYMENT_REFUNDED: 409,
}


def http_status_for(exc: DomainError) -> int:
    return DOMAIN_ERROR_HTTP_MAP.get(exc.code, 400)
