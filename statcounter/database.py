from __future__ import annotations

import os
from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, Session, create_engine

from .config import settings


def _is_sqlite(database_url: str) -> bool:
    return database_url.startswith("sqlite")


def _ensure_sqlite_dir(database_url: str) -> None:
    """Create the folder holding a file-backed SQLite database (no-op for :memory:)."""
    if not database_url.startswith("sqlite:///"):
        return

    path = database_url.replace("sqlite:///", "", 1)
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)


def _sqlite_pragmas(engine: Engine) -> None:
    """
    Pragmas that make SQLite usable with concurrent request threads and the
    background retention job.
    """

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragmas(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL;")
        cursor.execute("PRAGMA synchronous=NORMAL;")
        cursor.execute("PRAGMA foreign_keys=ON;")
        cursor.execute("PRAGMA busy_timeout=5000;")
        cursor.close()


def get_engine(database_url: Optional[str] = None) -> Engine:
    """
    Engine for `database_url` (default: settings.resolved_database_url).

    SQLite connections are used from request threads and the retention
    thread (check_same_thread=False, pragmas above).
    """
    database_url = database_url or settings.resolved_database_url

    if _is_sqlite(database_url):
        _ensure_sqlite_dir(database_url)

    connect_args = {"check_same_thread": False} if _is_sqlite(database_url) else {}

    engine = create_engine(
        database_url,
        echo=False,
        connect_args=connect_args,
        pool_pre_ping=True,
    )

    if _is_sqlite(database_url):
        _sqlite_pragmas(engine)

    return engine


# Shared by request sessions, the retention job and the seed script
engine: Engine = get_engine()


def register_models() -> None:
    """Import the table models so they are on SQLModel.metadata."""
    from .models.region import Region  # noqa: F401
    from .models.user import User  # noqa: F401
    from .models.stat_daily import StatDaily  # noqa: F401


def init_db(bind: Optional[Engine] = None, create_tables: bool = True) -> None:
    """
    Register models, then create missing tables.
    Non-destructive: create_all will not drop or alter existing tables.
    """
    register_models()
    if create_tables:
        SQLModel.metadata.create_all(bind or engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session; repositories commit, this only closes."""
    with Session(engine) as session:
        yield session


@contextmanager
def session_scope(bind: Optional[Engine] = None) -> Generator[Session, None, None]:
    """
    Session for work outside a request (retention purge, seeding): commits on
    clean exit, rolls back and re-raises on error.
    """
    session = Session(bind or engine)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
