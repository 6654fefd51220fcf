from __future__ import annotations

import sys
from pathlib import Path

import httpx
import pytest

# Ensure `backend/` is on sys.path so `import app.*` works reliably across pytest import modes.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.db import create_session, init_engine  # noqa: E402
from app.main import create_app  # noqa: E402
from app.models import Base, User  # noqa: E402
from app.security import create_session_token  # noqa: E402
from app.services import github_oauth, oauth_state  # noqa: E402
from app.settings import settings  # noqa: E402


@pytest.fixture(autouse=True)
def _test_settings(monkeypatch):
    monkeypatch.setattr(settings, "github_client_id", "test-client-id")
    monkeypatch.setattr(settings, "github_client_secret", "test-client-secret")
    monkeypatch.setattr(settings, "github_callback_url", None)
    monkeypatch.setattr(settings, "api_public_base_url", "https://api.example.com")
    monkeypatch.setattr(settings, "frontend_url", "https://app.example.com")
    monkeypatch.setattr(settings, "cookie_secure", True)
    monkeypatch.setattr(settings, "fernet_key", None)
    monkeypatch.setattr(settings, "secret_key", "test-secret")
    oauth_state.clear_states()
    yield
    oauth_state.clear_states()


@pytest.fixture()
def engine():
    # In-memory SQLite shared by every session through a single StaticPool connection.
    engine = init_engine("sqlite+pysqlite:///:memory:", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def client(engine):
    # https so the Secure state/session cookies round-trip through the cookie jar.
    with TestClient(create_app(), base_url="https://testserver", follow_redirects=False) as c:
        yield c


@pytest.fixture()
def user(engine) -> User:
    with create_session() as db:
        user = User(github_login="octocat", email="octocat@example.com")
        db.add(user)
        db.commit()
        db.refresh(user)
        db.expunge(user)
    return user


@pytest.fixture()
def auth_client(client, user):
    client.headers["Authorization"] = f"Bearer {create_session_token(str(user.id))}"
    return client


class FakeGitHub:
    """Serves the GitHub OAuth and REST endpoints used during sign-in."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.token_response: tuple[int, object] = (200, {"access_token": "gho_test", "scope": "read:user,user:email"})
        self.user_response: tuple[int, object] = (
            200,
            {
                "id": 583231,
                "login": "octocat",
                "name": "The Octocat",
                "email": None,
                "avatar_url": "https://avatars.githubusercontent.com/u/583231",
            },
        )
        self.emails_response: tuple[int, object] = (
            200,
            [
                {"email": "old@example.com", "primary": False, "verified": True},
                {"email": "octocat@github.com", "primary": True, "verified": True},
            ],
        )

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.url.host == "github.com" and request.url.path == "/login/oauth/access_token":
            status, body = self.token_response
        elif request.url.host == "api.github.com" and request.url.path == "/user":
            status, body = self.user_response
        elif request.url.host == "api.github.com" and request.url.path == "/user/emails":
            status, body = self.emails_response
        else:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(body, str):
            # Raw bodies stand in for HTML error pages served by proxies.
            return httpx.Response(status, text=body, headers={"Content-Type": "text/html"})
        return httpx.Response(status, json=body)

    def client(self) -> httpx.Client:
        return httpx.Client(transport=httpx.MockTransport(self.handler))


@pytest.fixture()
def github(monkeypatch) -> FakeGitHub:
    fake = FakeGitHub()
    monkeypatch.setattr(github_oauth, "_http_client", fake.client)
    return fake
