"""Engine and session factory.

Every ledger operation opens its own short-lived session and runs inside
``session.begin()``, so a request is one transaction against the store.

SQLite has no ``SELECT ... FOR UPDATE``, and pysqlite defers its own
``BEGIN`` until the first write. For SQLite DSNs the driver's transaction
handling is switched off and every transaction starts with
``BEGIN IMMEDIATE`` instead, which takes the database write lock before the
first read.
"""

from __future__ import annotations

from sqlalchemy import Engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from . import models  # noqa: F401  registers tables on SQLModel.metadata
from .config import get_settings

SQLITE_BUSY_TIMEOUT = 15.0


def _lock_on_begin(engine: Engine) -> None:
    @event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def build_engine(dsn: str | None = None, echo: bool | None = None) -> Engine:
    settings = get_settings().database
    dsn = dsn or settings.dsn
    kwargs: dict = {"echo": settings.echo if echo is None else echo}
    if not dsn.startswith("sqlite"):
        return create_engine(dsn, **kwargs)

    # Writers queue on the lock for up to the busy timeout.
    kwargs["connect_args"] = {
        "check_same_thread": False,
        "isolation_level": None,
        "timeout": SQLITE_BUSY_TIMEOUT,
    }
    if dsn in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    engine = create_engine(dsn, **kwargs)
    _lock_on_begin(engine)
    return engine


def build_session_maker(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, class_=Session, expire_on_commit=False)


def init_db(engine: Engine) -> None:
    """Create missing tables (no migrations yet)."""
    SQLModel.metadata.create_all(engine)


_engine: Engine | None = None
_session_maker: sessionmaker | None = None


def get_session_maker() -> sessionmaker:
    global _engine, _session_maker
    if _session_maker is None:
        _engine = build_engine()
        init_db(_engine)
        _session_maker = build_session_maker(_engine)
    return _session_maker


__all__ = [
    "build_engine",
    "build_session_maker",
    "get_session_maker",
    "init_db",
]
