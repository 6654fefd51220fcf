from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

_BACKEND_DIR = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="KEYHUB_",
        env_file=(str(_BACKEND_DIR / ".env"), ".env", "backend/.env"),
        extra="ignore",
    )

    database_url: str = "sqlite+pysqlite:///./keyhub.db"
    secret_key: str = "dev-secret-change-me"
    session_expire_minutes: int = 60 * 24 * 7
    oauth_state_ttl_seconds: int = 10 * 60
    # SameSite=None cookies are dropped by browsers unless they are also Secure.
    cookie_secure: bool = True
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"
    frontend_url: str = "http://localhost:3000"
    api_public_base_url: str = "http://localhost:8000"

    github_client_id: str | None = None
    github_client_secret: str | None = None
    # Must match the "Authorization callback URL" registered on the GitHub OAuth app.
    github_callback_url: str | None = None
    github_scopes: str = "read:user user:email"

    # Optional Fernet key(s) used to encrypt stored secrets (API keys, OAuth tokens).
    # Comma-separated; the first encrypts, the rest are still accepted for decryption.
    # Generate one via: python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
    fernet_key: str | None = None

    # System keys used when a user has not stored their own.
    openai_api_key: str | None = None
    gemini_api_key: str | None = None
    cursor_api_key: str | None = None
    anthropic_api_key: str | None = None
    aigateway_api_key: str | None = None


settings = Settings()
