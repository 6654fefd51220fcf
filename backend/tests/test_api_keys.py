from __future__ import annotations

from cryptography.fernet import Fernet
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import ApiKey, User
from app.security import create_session_token
from app.services.api_keys import API_KEY_PROVIDERS, resolve_api_key
from app.settings import settings


def _saved_providers(client) -> list[str]:
    resp = client.get("/api/v1/api-keys")
    assert resp.status_code == 200, resp.text
    data = resp.json()
    assert data["success"] is True
    return [item["provider"] for item in data["apiKeys"]]


def test_api_keys_require_session(client):
    assert client.get("/api/v1/api-keys").status_code == 401
    assert client.post("/api/v1/api-keys", json={"provider": "openai", "apiKey": "sk-1"}).status_code == 401
    assert client.delete("/api/v1/api-keys", params={"provider": "openai"}).status_code == 401


def test_list_never_echoes_secret_values(auth_client):
    auth_client.post("/api/v1/api-keys", json={"provider": "anthropic", "apiKey": "sk-ant-secret"})

    resp = auth_client.get("/api/v1/api-keys")

    assert "sk-ant-secret" not in resp.text
    item = resp.json()["apiKeys"][0]
    assert set(item) == {"provider", "createdAt", "updatedAt"}


def test_save_overwrites_existing_key(auth_client, engine, user):
    first = auth_client.post("/api/v1/api-keys", json={"provider": "openai", "apiKey": "sk-first"})
    second = auth_client.post("/api/v1/api-keys", json={"provider": "openai", "apiKey": "  sk-second  "})

    assert first.status_code == 200, first.text
    assert second.json() == {"success": True, "provider": "openai"}
    assert _saved_providers(auth_client) == ["openai"]
    with Session(engine) as db:
        rows = list(db.scalars(select(ApiKey).where(ApiKey.user_id == user.id)))
        assert len(rows) == 1
        assert rows[0].value == "sk-second"


def test_save_rejects_blank_key(auth_client):
    for value in ("", "   ", "\t\n"):
        resp = auth_client.post("/api/v1/api-keys", json={"provider": "gemini", "apiKey": value})
        assert resp.status_code == 400
        assert resp.json() == {"success": False, "error": "API key is required"}
    assert _saved_providers(auth_client) == []


def test_save_rejects_unknown_provider(auth_client):
    resp = auth_client.post("/api/v1/api-keys", json={"provider": "mistral", "apiKey": "abc"})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid provider"


def test_delete_removes_key_from_list(auth_client):
    for provider in ("openai", "cursor"):
        auth_client.post("/api/v1/api-keys", json={"provider": provider, "apiKey": f"{provider}-key"})
    assert _saved_providers(auth_client) == ["cursor", "openai"]

    resp = auth_client.delete("/api/v1/api-keys", params={"provider": "openai"})

    assert resp.status_code == 200, resp.text
    assert _saved_providers(auth_client) == ["cursor"]


def test_delete_missing_key(auth_client):
    resp = auth_client.delete("/api/v1/api-keys", params={"provider": "aigateway"})

    assert resp.status_code == 404
    assert resp.json() == {"success": False, "error": "API key not found"}


def test_delete_requires_known_provider(auth_client):
    assert auth_client.delete("/api/v1/api-keys").status_code == 400
    assert auth_client.delete("/api/v1/api-keys", params={"provider": "nope"}).status_code == 400


def test_keys_are_scoped_per_user(auth_client, engine):
    auth_client.post("/api/v1/api-keys", json={"provider": "openai", "apiKey": "sk-mine"})
    with Session(engine) as db:
        other = User(github_login="hubot")
        db.add(other)
        db.commit()
        other_token = create_session_token(str(other.id))

    resp = auth_client.get("/api/v1/api-keys", headers={"Authorization": f"Bearer {other_token}"})
    assert resp.json()["apiKeys"] == []


def test_keys_are_encrypted_when_fernet_key_configured(auth_client, engine, user, monkeypatch):
    monkeypatch.setattr(settings, "fernet_key", Fernet.generate_key().decode())

    auth_client.post("/api/v1/api-keys", json={"provider": "anthropic", "apiKey": "sk-ant-123"})

    with Session(engine) as db:
        stored = db.scalar(select(ApiKey.value).where(ApiKey.user_id == user.id))
        assert stored != "sk-ant-123"
        assert resolve_api_key(db, user_id=user.id, provider="anthropic") == "sk-ant-123"


def test_resolve_falls_back_to_system_key(auth_client, engine, user, monkeypatch):
    monkeypatch.setattr(settings, "openai_api_key", "sk-system")
    monkeypatch.setattr(settings, "gemini_api_key", None)

    with Session(engine) as db:
        assert resolve_api_key(db, user_id=user.id, provider="openai") == "sk-system"
        assert resolve_api_key(db, user_id=user.id, provider="gemini") is None

    auth_client.post("/api/v1/api-keys", json={"provider": "openai", "apiKey": "sk-user"})
    with Session(engine) as db:
        assert resolve_api_key(db, user_id=user.id, provider="OpenAI") == "sk-user"


def test_every_provider_can_be_saved(auth_client):
    for provider in API_KEY_PROVIDERS:
        resp = auth_client.post("/api/v1/api-keys", json={"provider": provider, "apiKey": "k"})
        assert resp.status_code == 200, resp.text
    assert sorted(_saved_providers(auth_client)) == sorted(API_KEY_PROVIDERS)
