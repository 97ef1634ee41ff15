"""Engine and session factory construction for :mod:`pulse.store.sql`."""

from __future__ import annotations

import os

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from . import Base

_PSYCOPG_PREFIX = "postgresql+psycopg://"


def _normalise_url(database_url: str | None) -> str:
    url = database_url or os.getenv("DATABASE_URL")
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")
    # Bare postgresql:// would pick psycopg2, which is not installed.
    if url.startswith("postgresql://"):
        return _PSYCOPG_PREFIX + url.removeprefix("postgresql://")
    return url


def _enable_sqlite_foreign_keys(engine: Engine) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, _record):  # pragma: no cover - dialect hook
        dbapi_connection.execute("PRAGMA foreign_keys=ON")


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Build an engine for ``database_url`` or the ``DATABASE_URL`` env var.

    Extra keyword arguments go straight to :func:`sqlalchemy.create_engine`.
    SQLite connections get foreign key enforcement switched on so cascades
    behave as they do on PostgreSQL.
    """

    engine = create_engine(_normalise_url(database_url), **kwargs)
    if engine.dialect.name == "sqlite":
        _enable_sqlite_foreign_keys(engine)
    return engine


def get_sessionmaker(
    database_url: str | None = None,
    *,
    create_tables: bool = False,
    **kwargs: object,
) -> sessionmaker[Session]:
    """Session factory for the store; optionally create missing tables first."""

    engine = get_engine(database_url, **kwargs)
    if create_tables:
        Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


__all__ = ["get_engine", "get_sessionmaker"]
