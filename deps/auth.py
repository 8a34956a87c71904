# deps/auth.py
from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from security import decode_token

bearer = HTTPBearer(auto_error=False)


class CurrentUser:
    def __init__(self, user_id: str, *, is_admin: bool = False, name: str = "", handle: str = ""):
        self.user_id = user_id
        self.is_admin = is_admin
        self.name = name
        self.handle = handle


def get_current_user(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> CurrentUser:
    if not creds:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    # must be "Bearer"
    if (creds.scheme or "").lower() != "bearer":
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    payload = decode_token(creds.credentials, settings=request.app.state.services.settings)
    sub = str(payload.get("sub") or "").strip()
    if not sub:
        raise HTTPException(status_code=401, detail="UNAUTHORIZED")

    return CurrentUser(
        user_id=sub,
        is_admin=bool(payload.get("admin")),
        name=str(payload.get("name") or ""),
        handle=str(payload.get("handle") or ""),
    )
