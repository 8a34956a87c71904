from __future__ import annotations

import re
from typing import Any


_EMAIL_RE = re.compile(r"\b([A-Za-z0-9._%+-])([A-Za-z0-9._%+-]*)(@[A-Za-z0-9.-]+\.[A-Za-z]{2,})\b")
# bank account / routing numbers: long digit runs
_ACCOUNT_RE = re.compile(r"\b\d{8,17}\b")

_SENSITIVE_KEY_MARKERS = (
    "token",
    "authorization",
    "secret",
    "signature",
    "password",
    "api_key",
)

_ACCOUNT_KEY_MARKERS = (
    "account_number",
    "routing_number",
)


def _mask_email(match: re.Match) -> str:
    first = match.group(1)
    domain = match.group(3)
    return f"{first}***{domain}"


def mask_account(value: str) -> str:
    digits = (value or "").strip()
    if len(digits) <= 4:
        return "****"
    return "****" + digits[-4:]


def redact_text(value: str) -> str:
    masked = _EMAIL_RE.sub(_mask_email, value)

    def _account_replace(match: re.Match) -> str:
        return mask_account(match.group(0))

    masked = _ACCOUNT_RE.sub(_account_replace, masked)

    for marker in ("access_token", "refresh_token", "bearer"):
        if marker in masked.lower():
            return "[REDACTED]"

    return masked


def _is_sensitive_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _SENSITIVE_KEY_MARKERS)


def _is_account_key(key: str) -> bool:
    key_l = (key or "").lower()
    return any(marker in key_l for marker in _ACCOUNT_KEY_MARKERS)


def redact_value(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, str):
        return redact_text(value)
    if isinstance(value, dict):
        return redact_dict(value)
    if isinstance(value, list):
        return [redact_value(v) for v in value]
    return value


def redact_dict(payload: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for k, v in payload.items():
        if _is_sensitive_key(k):
            out[k] = "[REDACTED]"
        elif _is_account_key(k) and v is not None:
            out[k] = mask_account(str(v))
        else:
            out[k] = redact_value(v)
    return out
