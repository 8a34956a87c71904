from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import JWTError, jwt

from settings import Settings, settings as default_settings


# -----------------------
# Access tokens (JWT)
# -----------------------
# Tokens are issued by the identity service; create_access_token exists for
# tooling and tests that need to mint one with the shared secret.
def create_access_token(
    sub: str,
    *,
    admin: bool = False,
    name: Optional[str] = None,
    handle: Optional[str] = None,
    minutes: Optional[int] = None,
    settings: Settings = default_settings,
) -> str:
    exp_minutes = minutes or settings.JWT_ACCESS_MINUTES
    now = datetime.now(timezone.utc)
    payload: Dict[str, Any] = {
        "sub": sub,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=exp_minutes)).timestamp()),
    }
    if admin:
        payload["admin"] = True
    if name:
        payload["name"] = name
    if handle:
        payload["handle"] = handle
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALG)


def decode_token(token: str, *, settings: Settings = default_settings) -> Dict[str, Any]:
    try:
        return jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALG])
    except JWTError:
        return {}
