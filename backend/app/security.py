from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from app.settings import settings

ALGORITHM = "HS256"
SESSION_COOKIE = "keyhub_session"
STATE_COOKIE = "keyhub_oauth_state"


def create_session_token(subject: str, expires_delta: timedelta | None = None) -> str:
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(minutes=settings.session_expire_minutes))
    to_encode: dict[str, Any] = {"sub": subject, "exp": expire}
    return jwt.encode(to_encode, settings.secret_key, algorithm=ALGORITHM)


def decode_session_token(token: str) -> int | None:
    """Return the user id carried by a session token, or None if it is invalid or expired."""
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[ALGORITHM])
        sub = payload.get("sub")
        if sub is None:
            return None
        return int(sub)
    except (JWTError, ValueError):
        return None


def state_cookie_options() -> dict[str, Any]:
    # The state cookie has to come back on GitHub's cross-site redirect to the callback.
    if settings.cookie_secure:
        return {"httponly": True, "secure": True, "samesite": "none"}
    return {"httponly": True, "secure": False, "samesite": "lax"}


def session_cookie_options() -> dict[str, Any]:
    return {"httponly": True, "secure": settings.cookie_secure, "samesite": "lax"}
