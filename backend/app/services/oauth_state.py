from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from threading import Lock
from typing import Literal, Union

from app.settings import settings

_log = logging.getLogger(__name__)


class OAuthStateError(ValueError):
    pass


@dataclass(frozen=True)
class SignInFlow:
    redirect_to: str
    created_at: datetime
    mode: Literal["signin"] = "signin"


@dataclass(frozen=True)
class ConnectFlow:
    user_id: int
    redirect_to: str
    created_at: datetime
    mode: Literal["connect"] = "connect"


OAuthFlow = Union[SignInFlow, ConnectFlow]

_flows: dict[str, OAuthFlow] = {}
_lock = Lock()


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _ttl() -> timedelta:
    return timedelta(seconds=settings.oauth_state_ttl_seconds)


def _register(flow: OAuthFlow) -> str:
    token = secrets.token_urlsafe(32)
    with _lock:
        _flows[token] = flow
    return token


def issue_signin_state(*, redirect_to: str = "/") -> str:
    return _register(SignInFlow(redirect_to=redirect_to, created_at=_now()))


def issue_connect_state(*, user_id: int, redirect_to: str = "/") -> str:
    return _register(ConnectFlow(user_id=user_id, redirect_to=redirect_to, created_at=_now()))


def consume_state(*, token: str | None, cookie_token: str | None) -> OAuthFlow:
    """Validate a callback's ``state`` against the browser's state cookie.

    The flow registered under ``token`` is removed before any check runs, so a
    state value can be presented at most once even when validation fails.
    """
    now = _now()
    ttl = _ttl()
    with _lock:
        flow = _flows.pop(token, None) if token else None
        expired = [key for key, item in _flows.items() if now - item.created_at > ttl]
        for key in expired:
            _flows.pop(key, None)

    if not token or not cookie_token:
        _log.warning("OAuth callback without state (query=%s, cookie=%s)", bool(token), bool(cookie_token))
        raise OAuthStateError("Missing OAuth state")
    if not hmac.compare_digest(token.encode("utf-8"), cookie_token.encode("utf-8")):
        _log.warning("OAuth state does not match the state cookie")
        raise OAuthStateError("OAuth state mismatch")
    if flow is None:
        _log.warning("Unknown or already used OAuth state")
        raise OAuthStateError("OAuth state is no longer valid")
    if now - flow.created_at > ttl:
        _log.warning("Expired OAuth state (mode=%s)", flow.mode)
        raise OAuthStateError("OAuth state expired")
    return flow


def pending_count() -> int:
    with _lock:
        return len(_flows)


def clear_states() -> None:
    with _lock:
        _flows.clear()
