from __future__ import annotations

import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Cookie, Depends, HTTPException, Response, status
from fastapi.responses import RedirectResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app import crud
from app.db import get_session
from app.models import User
from app.schemas import UserOut
from app.security import (
    SESSION_COOKIE,
    STATE_COOKIE,
    create_session_token,
    decode_session_token,
    session_cookie_options,
    state_cookie_options,
)
from app.services.github_oauth import (
    GitHubNotConfiguredError,
    GitHubOAuthError,
    build_authorization_url,
    exchange_code_for_token,
    fetch_profile,
)
from app.services.oauth_state import (
    ConnectFlow,
    OAuthStateError,
    SignInFlow,
    consume_state,
    issue_connect_state,
    issue_signin_state,
)
from app.settings import settings

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])
bearer_scheme = HTTPBearer(auto_error=False)


def _session_user_id(session_cookie: str | None, credentials: HTTPAuthorizationCredentials | None) -> int | None:
    token = session_cookie
    if not token and credentials is not None and credentials.scheme.lower() == "bearer":
        token = credentials.credentials
    if not token:
        return None
    return decode_session_token(token)


def get_current_user(
    db: Session = Depends(get_session),
    session_cookie: str | None = Cookie(default=None, alias=SESSION_COOKIE),
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> User:
    user_id = _session_user_id(session_cookie, credentials)
    user = crud.get_user(db, user_id=user_id) if user_id is not None else None
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not signed in",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


def _safe_redirect_target(target: str | None) -> str:
    value = (target or "").strip()
    # Only same-origin paths; "//host" and "/\host" are protocol-relative in browsers.
    if not value.startswith("/") or value.startswith("//") or value.startswith("/\\"):
        return "/"
    return value


def _frontend_url(path: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}{path}"


def _error_redirect(error: str) -> RedirectResponse:
    response = RedirectResponse(
        _frontend_url(f"/signin?{urlencode({'error': error})}"),
        status_code=status.HTTP_302_FOUND,
    )
    response.delete_cookie(STATE_COOKIE, path="/", **state_cookie_options())
    return response


def _start(state: str) -> RedirectResponse:
    try:
        url = build_authorization_url(state=state)
    except GitHubNotConfiguredError as e:
        _log.error("%s", e)
        raise HTTPException(status_code=500, detail="GitHub OAuth is not configured")
    response = RedirectResponse(url, status_code=status.HTTP_302_FOUND)
    response.set_cookie(
        STATE_COOKIE,
        state,
        max_age=settings.oauth_state_ttl_seconds,
        path="/",
        **state_cookie_options(),
    )
    return response


@router.get("/github/signin")
def github_signin(next: str | None = None):
    state = issue_signin_state(redirect_to=_safe_redirect_target(next))
    return _start(state)


@router.get("/github/connect")
def github_connect(next: str | None = None, current_user: User = Depends(get_current_user)):
    state = issue_connect_state(user_id=current_user.id, redirect_to=_safe_redirect_target(next))
    return _start(state)


@router.get("/github/callback")
def github_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    state_cookie: str | None = Cookie(default=None, alias=STATE_COOKIE),
    db: Session = Depends(get_session),
):
    try:
        flow = consume_state(token=state, cookie_token=state_cookie)
    except OAuthStateError:
        return _error_redirect("invalid_state")
    if error:
        _log.warning("GitHub returned an authorization error: %s", error)
        return _error_redirect("access_denied" if error == "access_denied" else "oauth_error")
    if not code:
        return _error_redirect("missing_code")

    try:
        token = exchange_code_for_token(code=code)
    except GitHubOAuthError as e:
        _log.error("%s", e)
        return _error_redirect("token_exchange_failed")
    try:
        profile = fetch_profile(access_token=token.access_token)
    except GitHubOAuthError as e:
        _log.error("%s", e)
        return _error_redirect("profile_fetch_failed")

    try:
        if isinstance(flow, ConnectFlow):
            crud.link_github_account(db, user_id=flow.user_id, profile=profile, token=token)
            user_id = flow.user_id
        else:
            user = crud.sign_in_github(db, profile=profile, token=token)
            user_id = user.id
    except crud.AccountLinkError as e:
        db.rollback()
        _log.warning("GitHub connect rejected for user %s: %s", getattr(flow, "user_id", None), e)
        return _error_redirect("account_already_linked")
    except SQLAlchemyError:
        db.rollback()
        _log.exception("Datastore error while completing GitHub %s", flow.mode)
        return _error_redirect("datastore_unavailable")

    response = RedirectResponse(_frontend_url(flow.redirect_to), status_code=status.HTTP_302_FOUND)
    response.delete_cookie(STATE_COOKIE, path="/", **state_cookie_options())
    if isinstance(flow, SignInFlow):
        response.set_cookie(
            SESSION_COOKIE,
            create_session_token(subject=str(user_id)),
            max_age=settings.session_expire_minutes * 60,
            path="/",
            **session_cookie_options(),
        )
    _log.info("GitHub %s completed for user %s", flow.mode, user_id)
    return response


@router.get("/me", response_model=UserOut)
def me(current_user: User = Depends(get_current_user)):
    return current_user


@router.post("/signout", status_code=204)
def signout():
    response = Response(status_code=204)
    response.delete_cookie(SESSION_COOKIE, path="/", **session_cookie_options())
    return response
