from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models import Account, ApiKey, User
from app.services.encryption import SecretDecryptError, decrypt_secret, encrypt_secret, reencrypt_secret
from app.services.github_oauth import GitHubProfile, GitHubToken

_log = logging.getLogger(__name__)

GITHUB_PROVIDER = "github"


class AccountLinkError(ValueError):
    pass


def get_user(db: Session, *, user_id: int) -> User | None:
    return db.get(User, user_id)


def get_account_by_provider_id(db: Session, *, provider: str, provider_account_id: str) -> Account | None:
    return db.scalar(
        select(Account).where(
            Account.provider == provider.lower().strip(),
            Account.provider_account_id == provider_account_id.strip(),
        )
    )


def _apply_github_token(account: Account, profile: GitHubProfile, token: GitHubToken) -> None:
    account.username = profile.login
    account.access_token = encrypt_secret(token.access_token)
    account.scope = token.scope


def sign_in_github(db: Session, *, profile: GitHubProfile, token: GitHubToken) -> User:
    """Find or create the user owning a GitHub account, refreshing the stored profile and token.

    User and account rows are written in a single commit.
    """
    account = get_account_by_provider_id(db, provider=GITHUB_PROVIDER, provider_account_id=profile.id)
    if account is None:
        user = User(
            github_login=profile.login,
            email=profile.email,
            name=profile.name,
            avatar_url=profile.avatar_url,
        )
        db.add(user)
        db.flush()
        account = Account(user_id=user.id, provider=GITHUB_PROVIDER, provider_account_id=profile.id)
        db.add(account)
    else:
        user = account.user
        user.github_login = profile.login
        user.email = profile.email or user.email
        user.name = profile.name or user.name
        user.avatar_url = profile.avatar_url or user.avatar_url
    _apply_github_token(account, profile, token)
    db.commit()
    db.refresh(user)
    return user


def link_github_account(db: Session, *, user_id: int, profile: GitHubProfile, token: GitHubToken) -> Account:
    user = get_user(db, user_id=user_id)
    if user is None:
        raise AccountLinkError("User no longer exists")
    account = get_account_by_provider_id(db, provider=GITHUB_PROVIDER, provider_account_id=profile.id)
    if account is not None and account.user_id != user_id:
        raise AccountLinkError("This GitHub account is already linked to another user")
    if account is None:
        account = Account(user_id=user_id, provider=GITHUB_PROVIDER, provider_account_id=profile.id)
        db.add(account)
    _apply_github_token(account, profile, token)
    db.commit()
    db.refresh(account)
    return account


def list_api_keys(db: Session, *, user_id: int) -> list[ApiKey]:
    return list(db.scalars(select(ApiKey).where(ApiKey.user_id == user_id).order_by(ApiKey.provider)))


def get_api_key(db: Session, *, user_id: int, provider: str) -> ApiKey | None:
    return db.scalar(select(ApiKey).where(ApiKey.user_id == user_id, ApiKey.provider == provider))


def get_api_key_value(db: Session, *, user_id: int, provider: str) -> str | None:
    record = get_api_key(db, user_id=user_id, provider=provider)
    if record is None:
        return None
    return decrypt_secret(record.value)


def upsert_api_key(db: Session, *, user_id: int, provider: str, value: str) -> ApiKey:
    record = get_api_key(db, user_id=user_id, provider=provider)
    if record is None:
        record = ApiKey(user_id=user_id, provider=provider, value=encrypt_secret(value))
        db.add(record)
    else:
        record.value = encrypt_secret(value)
    db.commit()
    db.refresh(record)
    return record


def delete_api_key(db: Session, *, user_id: int, provider: str) -> bool:
    record = get_api_key(db, user_id=user_id, provider=provider)
    if record is None:
        return False
    db.delete(record)
    db.commit()
    return True


def reencrypt_stored_secrets(db: Session) -> int:
    """Rewrite stored API keys and GitHub tokens under the primary Fernet key.

    Rows no configured key can open are left as they are. Returns the number of rows rewritten.
    """
    changed = 0
    for record in db.scalars(select(ApiKey)):
        try:
            value = reencrypt_secret(record.value)
        except SecretDecryptError as e:
            _log.error("Skipping API key %s for user %s: %s", record.provider, record.user_id, e)
            continue
        if value != record.value:
            record.value = value
            changed += 1
    for account in db.scalars(select(Account).where(Account.access_token.is_not(None))):
        try:
            token = reencrypt_secret(account.access_token)
        except SecretDecryptError as e:
            _log.error("Skipping access token of account %s: %s", account.id, e)
            continue
        if token != account.access_token:
            account.access_token = token
            changed += 1
    db.commit()
    return changed
