from __future__ import annotations

import logging
from dataclasses import dataclass
from threading import Lock
from typing import Literal

import httpx

from app.services.api_keys import API_KEY_PROVIDERS

_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderInfo:
    id: str
    name: str
    placeholder: str


PROVIDERS: tuple[ProviderInfo, ...] = (
    ProviderInfo(id="aigateway", name="AI Gateway", placeholder="gw_..."),
    ProviderInfo(id="anthropic", name="Anthropic", placeholder="sk-ant-..."),
    ProviderInfo(id="openai", name="OpenAI", placeholder="sk-..."),
    ProviderInfo(id="gemini", name="Gemini", placeholder="AIza..."),
    ProviderInfo(id="cursor", name="Cursor", placeholder="cur_..."),
)
_NAMES = {p.id: p.name for p in PROVIDERS}
_MASK_CHAR = "•"
MAX_NOTIFICATIONS = 5


@dataclass(frozen=True)
class Notification:
    level: Literal["success", "error"]
    message: str


class ApiKeysDialog:
    """State of the "Manage API Keys" dialog, driven against the ``/api-keys`` endpoints.

    Secret values never come back from the server: the dialog only knows which
    providers have a saved key. Local state changes only after the server
    confirms a save or delete, and only one request may be in flight at a time.
    """

    def __init__(self, client: httpx.Client, *, endpoint: str = "/api/v1/api-keys"):
        self._client = client
        self._endpoint = endpoint
        self._lock = Lock()
        self.is_open = False
        self.loading = False
        self.saved: set[str] = set()
        self.inputs: dict[str, str] = {p: "" for p in API_KEY_PROVIDERS}
        self.show: dict[str, bool] = {p: False for p in API_KEY_PROVIDERS}
        self.notifications: list[Notification] = []

    def open(self) -> None:
        self.is_open = True
        self.refresh()

    def close(self) -> None:
        self.is_open = False

    def refresh(self) -> None:
        try:
            resp = self._client.get(self._endpoint)
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            _log.error("Error fetching API keys: %s", e)
            return
        if not resp.is_success or not isinstance(data, dict) or not data.get("success"):
            _log.error("Error fetching API keys: %s", resp.status_code)
            return
        items = data.get("apiKeys")
        self.saved = {
            item["provider"]
            for item in (items if isinstance(items, list) else [])
            if isinstance(item, dict) and item.get("provider") in _NAMES
        }

    def set_input(self, provider: str, value: str) -> bool:
        self._check_provider(provider)
        if self.loading:
            return False
        self.inputs[provider] = value
        return True

    def toggle_show(self, provider: str) -> bool:
        self._check_provider(provider)
        self.show[provider] = not self.show[provider]
        return self.show[provider]

    def display_value(self, provider: str) -> str:
        self._check_provider(provider)
        value = self.inputs[provider]
        return value if self.show[provider] else _MASK_CHAR * len(value)

    def input_type(self, provider: str) -> str:
        self._check_provider(provider)
        return "text" if self.show[provider] else "password"

    def can_save(self, provider: str) -> bool:
        self._check_provider(provider)
        return not self.loading and bool(self.inputs[provider].strip())

    def can_delete(self, provider: str) -> bool:
        self._check_provider(provider)
        return not self.loading and provider in self.saved

    def save(self, provider: str) -> bool:
        self._check_provider(provider)
        key = self.inputs[provider]
        if not key.strip():
            self._notify("error", "Please enter an API key")
            return False
        if not self._begin():
            return False
        try:
            resp = self._client.post(self._endpoint, json={"provider": provider, "apiKey": key})
            if resp.is_success:
                self._notify("success", f"{_NAMES[provider]} API key saved")
                self.saved.add(provider)
                self.inputs[provider] = ""
                return True
            self._notify("error", self._error_message(resp, "Failed to save API key"))
            return False
        except httpx.HTTPError as e:
            _log.error("Error saving API key: %s", e)
            self._notify("error", "Failed to save API key")
            return False
        finally:
            self._end()

    def delete(self, provider: str) -> bool:
        self._check_provider(provider)
        if not self._begin():
            return False
        try:
            resp = self._client.delete(self._endpoint, params={"provider": provider})
            if resp.is_success:
                self._notify("success", f"{_NAMES[provider]} API key deleted")
                self.saved.discard(provider)
                return True
            self._notify("error", self._error_message(resp, "Failed to delete API key"))
            return False
        except httpx.HTTPError as e:
            _log.error("Error deleting API key: %s", e)
            self._notify("error", "Failed to delete API key")
            return False
        finally:
            self._end()

    def _begin(self) -> bool:
        with self._lock:
            if self.loading:
                return False
            self.loading = True
            return True

    def _end(self) -> None:
        with self._lock:
            self.loading = False

    def dismiss(self, notification: Notification) -> None:
        try:
            self.notifications.remove(notification)
        except ValueError:
            pass

    def clear_notifications(self) -> None:
        self.notifications.clear()

    def _notify(self, level: Literal["success", "error"], message: str) -> None:
        self.notifications.append(Notification(level=level, message=message))
        # Oldest toasts drop off first.
        del self.notifications[:-MAX_NOTIFICATIONS]

    @staticmethod
    def _error_message(resp: httpx.Response, default: str) -> str:
        try:
            data = resp.json()
        except ValueError:
            return default
        if isinstance(data, dict) and data.get("error"):
            return str(data["error"])
        return default

    @staticmethod
    def _check_provider(provider: str) -> None:
        if provider not in _NAMES:
            raise ValueError(f"Unknown provider: {provider}")
