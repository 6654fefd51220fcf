from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app import crud
from app.db import get_session
from app.models import User
from app.routers.auth import get_current_user
from app.schemas import ApiKeyListResponse, ApiKeyOut, ApiKeyResult, ApiKeySave
from app.services.api_keys import ApiKeyError, normalize_key, normalize_provider

_log = logging.getLogger(__name__)

router = APIRouter(prefix="/api-keys", tags=["api-keys"])


def api_key_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    status_code = getattr(exc, "status_code", 400)
    return JSONResponse(status_code=status_code, content={"success": False, "error": str(exc)})


@router.get("", response_model=ApiKeyListResponse)
def list_api_keys(
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    records = crud.list_api_keys(db, user_id=current_user.id)
    return ApiKeyListResponse(api_keys=[ApiKeyOut.model_validate(r) for r in records])


@router.post("", response_model=ApiKeyResult)
def save_api_key(
    payload: ApiKeySave,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    provider = normalize_provider(payload.provider)
    key = normalize_key(payload.api_key)
    try:
        crud.upsert_api_key(db, user_id=current_user.id, provider=provider, value=key)
    except IntegrityError:
        # A concurrent save for the same provider won the insert.
        db.rollback()
        crud.upsert_api_key(db, user_id=current_user.id, provider=provider, value=key)
    _log.info("Saved %s API key for user %s", provider, current_user.id)
    return ApiKeyResult(provider=provider)


@router.delete("", response_model=ApiKeyResult)
def delete_api_key(
    provider: str | None = None,
    db: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    provider_norm = normalize_provider(provider)
    if not crud.delete_api_key(db, user_id=current_user.id, provider=provider_norm):
        raise ApiKeyError("API key not found", status_code=404)
    _log.info("Deleted %s API key for user %s", provider_norm, current_user.id)
    return ApiKeyResult(provider=provider_norm)
