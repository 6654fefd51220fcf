from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    provider: str
    username: str
    created_at: datetime


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    github_login: str
    email: Optional[str] = None
    name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: datetime
    accounts: list[AccountOut] = Field(default_factory=list)


class ApiKeyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    provider: str
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")


class ApiKeyListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    api_keys: list[ApiKeyOut] = Field(default_factory=list, alias="apiKeys")


class ApiKeySave(BaseModel):
    # Provider and blank-key checks happen in the router so the error body stays {"success", "error"}.
    model_config = ConfigDict(populate_by_name=True)

    provider: str = Field(default="", max_length=50)
    api_key: str = Field(default="", alias="apiKey", max_length=4096)


class ApiKeyResult(BaseModel):
    success: bool = True
    provider: str
