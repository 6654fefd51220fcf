from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from urllib.parse import urlencode

import httpx

from app.settings import settings

_log = logging.getLogger(__name__)

AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
TOKEN_URL = "https://github.com/login/oauth/access_token"
API_BASE_URL = "https://api.github.com"


class GitHubOAuthError(ValueError):
    pass


class GitHubNotConfiguredError(GitHubOAuthError):
    pass


@dataclass(frozen=True)
class GitHubToken:
    access_token: str
    scope: str | None = None


@dataclass(frozen=True)
class GitHubProfile:
    id: str
    login: str
    name: str | None
    email: str | None
    avatar_url: str | None


def _http_client() -> httpx.Client:
    return httpx.Client(timeout=20, follow_redirects=True)


def callback_url() -> str:
    if settings.github_callback_url:
        return settings.github_callback_url.strip()
    return f"{settings.api_public_base_url.rstrip('/')}/api/v1/auth/github/callback"


def _client_credentials() -> tuple[str, str]:
    client_id = (settings.github_client_id or os.getenv("GITHUB_CLIENT_ID") or "").strip()
    client_secret = (settings.github_client_secret or os.getenv("GITHUB_CLIENT_SECRET") or "").strip()
    if not client_id or not client_secret:
        raise GitHubNotConfiguredError(
            "GitHub OAuth is not configured. Set KEYHUB_GITHUB_CLIENT_ID and KEYHUB_GITHUB_CLIENT_SECRET."
        )
    return client_id, client_secret


def build_authorization_url(*, state: str, allow_signup: bool = True) -> str:
    client_id, _client_secret = _client_credentials()
    params = {
        "client_id": client_id,
        "redirect_uri": callback_url(),
        "scope": settings.github_scopes,
        "state": state,
        "allow_signup": "true" if allow_signup else "false",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


def _json_body(resp: httpx.Response, what: str) -> object:
    try:
        return resp.json()
    except ValueError as e:
        raise GitHubOAuthError(f"{what}: response is not JSON ({resp.headers.get('content-type', 'unknown')})") from e


def _json_object(resp: httpx.Response, what: str) -> dict:
    data = _json_body(resp, what)
    if not isinstance(data, dict):
        raise GitHubOAuthError(f"{what}: expected a JSON object, got {type(data).__name__}")
    return data


def exchange_code_for_token(*, code: str) -> GitHubToken:
    client_id, client_secret = _client_credentials()
    payload = {
        "client_id": client_id,
        "client_secret": client_secret,
        "code": code,
        "redirect_uri": callback_url(),
    }
    try:
        with _http_client() as client:
            resp = client.post(TOKEN_URL, data=payload, headers={"Accept": "application/json"})
    except httpx.HTTPError as e:
        raise GitHubOAuthError(f"GitHub token exchange failed: {e}") from e
    if resp.status_code >= 400:
        raise GitHubOAuthError(f"GitHub token exchange failed: {resp.status_code} {resp.text[:500]}")
    data = _json_object(resp, "GitHub token exchange failed")
    # GitHub reports bad or reused codes with a 200 and an "error" field.
    if data.get("error"):
        raise GitHubOAuthError(
            f"GitHub token exchange failed: {data.get('error')} {data.get('error_description') or ''}".strip()
        )
    access_token = str(data.get("access_token") or "").strip()
    if not access_token:
        raise GitHubOAuthError("GitHub token exchange did not return an access_token")
    scope = str(data.get("scope") or "").strip() or None
    return GitHubToken(access_token=access_token, scope=scope)


def _primary_email(client: httpx.Client, headers: dict[str, str]) -> str | None:
    resp = client.get(f"{API_BASE_URL}/user/emails", headers=headers)
    if resp.status_code >= 400:
        # Token lacks user:email; the profile is still usable without an email.
        _log.info("GitHub /user/emails unavailable: %s", resp.status_code)
        return None
    try:
        items = _json_body(resp, "GitHub /user/emails")
    except GitHubOAuthError as e:
        _log.info("%s", e)
        return None
    for item in items if isinstance(items, list) else []:
        if isinstance(item, dict) and item.get("primary") and item.get("verified"):
            return str(item.get("email") or "").strip() or None
    return None


def fetch_profile(*, access_token: str) -> GitHubProfile:
    headers = {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {access_token}",
        "X-GitHub-Api-Version": "2022-11-28",
    }
    try:
        with _http_client() as client:
            resp = client.get(f"{API_BASE_URL}/user", headers=headers)
            if resp.status_code >= 400:
                raise GitHubOAuthError(f"Fetching GitHub profile failed: {resp.status_code} {resp.text[:300]}")
            data = _json_object(resp, "Fetching GitHub profile failed")
            email = str(data.get("email") or "").strip() or None
            if email is None:
                email = _primary_email(client, headers)
    except httpx.HTTPError as e:
        raise GitHubOAuthError(f"Fetching GitHub profile failed: {e}") from e

    user_id = data.get("id")
    login = str(data.get("login") or "").strip()
    if user_id is None or not login:
        raise GitHubOAuthError("GitHub profile is missing id/login")
    return GitHubProfile(
        id=str(user_id),
        login=login,
        name=str(data.get("name") or "").strip() or None,
        email=email,
        avatar_url=str(data.get("avatar_url") or "").strip() or None,
    )
