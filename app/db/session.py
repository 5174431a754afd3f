# app/db/session.py
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.config import settings


def _normalize_dsn(url: str) -> str:
    url = url.strip()
    # Railway/Heroku possono fornire postgres:// senza driver
    if url.startswith("postgres://"):
        return "postgresql+psycopg://" + url[len("postgres://"):]
    if url.startswith("postgresql://"):
        return "postgresql+psycopg://" + url[len("postgresql://"):]
    return url


def make_engine(url: str) -> Engine:
    """Crea l'engine; SQLite in memoria condivide una sola connessione."""
    url = _normalize_dsn(url)
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}, "future": True}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True, future=True)


def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@lru_cache
def get_engine(url: Optional[str] = None) -> Engine:
    return make_engine(url or settings.DATABASE_URL)


def init_db(engine: Engine) -> None:
    """Crea le tabelle mancanti (in produzione usare `alembic upgrade head`)."""
    from app.db.base import Base
    from app.models import sheet_row, stored_file  # noqa: F401  (registra le tabelle)

    Base.metadata.create_all(bind=engine)
