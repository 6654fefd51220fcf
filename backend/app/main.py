from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import inspect as sa_inspect, text
from sqlalchemy.engine import Engine

from app import crud
from app.db import create_session, get_engine
from app.models import Base
from app.routers import api_keys, auth
from app.services.api_keys import ApiKeyError
from app.services.encryption import rotation_pending
from app.settings import settings

_log = logging.getLogger(__name__)


# Columns added to a model after its table first shipped: (table, column, DDL type).
# create_all() never alters existing tables, so each addition gets an entry here.
COLUMN_MIGRATIONS: list[tuple[str, str, str]] = []


def _add_missing_columns(engine: Engine, migrations: list[tuple[str, str, str]] | None = None) -> None:
    """Add columns that exist in the ORM model but not yet in the DB (simple SQLite migration)."""
    inspector = sa_inspect(engine)
    for table, column, ddl_type in COLUMN_MIGRATIONS if migrations is None else migrations:
        if not inspector.has_table(table):
            continue
        existing = {col["name"] for col in inspector.get_columns(table)}
        if column not in existing:
            with engine.begin() as conn:
                conn.execute(text(f"ALTER TABLE {table} ADD COLUMN {column} {ddl_type}"))
            _log.info("Added column %s.%s", table, column)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    engine = get_engine()
    Base.metadata.create_all(bind=engine)
    _add_missing_columns(engine)
    if rotation_pending():
        with create_session() as db:
            changed = crud.reencrypt_stored_secrets(db)
        _log.info("Re-encrypted %s stored secrets under the primary Fernet key", changed)
    if not settings.cookie_secure:
        _log.warning("cookie_secure is disabled; the OAuth state cookie falls back to SameSite=Lax")
    yield


def create_app() -> FastAPI:
    app = FastAPI(title="KeyHub API", version="0.1.0", lifespan=lifespan)

    origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ApiKeyError, api_keys.api_key_error_handler)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    app.include_router(auth.router, prefix="/api/v1")
    app.include_router(api_keys.router, prefix="/api/v1")

    return app


app = create_app()
