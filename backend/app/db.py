from __future__ import annotations

from collections.abc import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from app.settings import settings

_engine: Engine | None = None
_SessionLocal: sessionmaker[Session] | None = None


def init_engine(database_url: str | None = None, **engine_kwargs) -> Engine:
    """(Re)bind the module-level engine; tests call this with an in-memory URL and a StaticPool."""
    global _engine, _SessionLocal

    url = database_url or settings.database_url
    if url.startswith("sqlite"):
        # Requests run in a threadpool, so one SQLite connection may be used from several threads.
        engine_kwargs.setdefault("connect_args", {"check_same_thread": False})
    if _engine is not None:
        _engine.dispose()
    _engine = create_engine(url, future=True, **engine_kwargs)
    _SessionLocal = sessionmaker(bind=_engine, autoflush=False, autocommit=False, future=True)
    return _engine


def get_engine() -> Engine:
    if _engine is None:
        init_engine()
    assert _engine is not None
    return _engine


def create_session() -> Session:
    if _SessionLocal is None:
        init_engine()
    assert _SessionLocal is not None
    return _SessionLocal()


def get_session() -> Generator[Session, None, None]:
    db = create_session()
    try:
        yield db
    finally:
        db.close()
