from __future__ import annotations

import logging
from typing import Literal, get_args

from sqlalchemy.orm import Session

from app import crud
from app.services.encryption import SecretDecryptError
from app.settings import settings

_log = logging.getLogger(__name__)

ApiKeyProvider = Literal["openai", "gemini", "cursor", "anthropic", "aigateway"]
API_KEY_PROVIDERS: tuple[str, ...] = get_args(ApiKeyProvider)


class ApiKeyError(ValueError):
    def __init__(self, message: str, *, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def normalize_provider(provider: str | None) -> str:
    provider_norm = (provider or "").lower().strip()
    if provider_norm not in API_KEY_PROVIDERS:
        raise ApiKeyError("Invalid provider")
    return provider_norm


def normalize_key(value: str | None) -> str:
    key = (value or "").strip()
    if not key:
        raise ApiKeyError("API key is required")
    return key


def system_api_key(provider: str) -> str | None:
    value = getattr(settings, f"{normalize_provider(provider)}_api_key", None)
    return (value or "").strip() or None


def resolve_api_key(db: Session, *, user_id: int, provider: str) -> str | None:
    """Return the user's own key for ``provider``, falling back to the system key."""
    provider_norm = normalize_provider(provider)
    try:
        user_key = crud.get_api_key_value(db, user_id=user_id, provider=provider_norm)
    except SecretDecryptError as e:
        _log.error("Stored %s key for user %s is unreadable: %s", provider_norm, user_id, e)
        user_key = None
    return user_key or system_api_key(provider_norm)
