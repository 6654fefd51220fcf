"""At-rest protection for stored provider keys and GitHub access tokens.

``KEYHUB_FERNET_KEY`` holds one or more comma-separated Fernet keys. The first
key encrypts; every key is tried when decrypting, so a new key can be put in
front of the old one and existing rows moved over with :func:`reencrypt_secret`.

Ciphertext is stored with a ``fernet:`` marker. Values without it are rows
written while encryption was off and are returned as they are; a marked value
that no configured key can open raises :class:`SecretDecryptError`.
"""

from __future__ import annotations

from cryptography.fernet import Fernet, InvalidToken, MultiFernet

from app.settings import settings

_MARKER = "fernet:"


class SecretDecryptError(ValueError):
    pass


def _configured_keys() -> list[str]:
    return [k.strip() for k in (settings.fernet_key or "").split(",") if k.strip()]


def _get_fernet() -> MultiFernet | None:
    keys = _configured_keys()
    if not keys:
        return None
    return MultiFernet([Fernet(k.encode("utf-8")) for k in keys])


def encryption_enabled() -> bool:
    return bool(_configured_keys())


def rotation_pending() -> bool:
    return len(_configured_keys()) > 1


def is_encrypted(value: str) -> bool:
    return value.startswith(_MARKER)


def encrypt_secret(value: str) -> str:
    f = _get_fernet()
    if f is None:
        return value
    return _MARKER + f.encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_secret(value: str) -> str:
    if not is_encrypted(value):
        return value
    f = _get_fernet()
    if f is None:
        raise SecretDecryptError("Stored secret is encrypted but KEYHUB_FERNET_KEY is not set")
    try:
        return f.decrypt(value[len(_MARKER) :].encode("utf-8")).decode("utf-8")
    except InvalidToken as e:
        raise SecretDecryptError("Stored secret was encrypted with a key that is no longer configured") from e


def reencrypt_secret(value: str) -> str:
    """Return ``value`` encrypted under the primary key, encrypting plaintext rows on the way."""
    f = _get_fernet()
    if f is None:
        return value
    if not is_encrypted(value):
        return encrypt_secret(value)
    try:
        token = f.rotate(value[len(_MARKER) :].encode("utf-8"))
    except InvalidToken as e:
        raise SecretDecryptError("Stored secret was encrypted with a key that is no longer configured") from e
    return _MARKER + token.decode("utf-8")
