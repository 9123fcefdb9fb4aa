"""
Database engine and session management.

WHAT: SQLAlchemy engine for the offers store, session scope, lifecycle hooks
WHY: Every offer transition is one short unit of work against one row
HOW: Sync SQLAlchemy 2.0 engine; SQLite gets WAL, foreign keys, and a busy
     timeout so a writer waiting on another writer blocks instead of failing
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from .config import settings
from ..utils.logger import get_logger

logger = get_logger(__name__)

SQLITE_PREFIX = "sqlite:///"


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _ensure_sqlite_dir(url: str):
    """Create the parent directory of a file-backed SQLite database."""
    if url.startswith(SQLITE_PREFIX) and ":memory:" not in url:
        Path(url[len(SQLITE_PREFIX):]).parent.mkdir(parents=True, exist_ok=True)


def create_db_engine(url: str) -> Engine:
    """
    Build the engine for `url`.

    SQLite connections are shared with the threadpool that runs blocking
    handlers, so check_same_thread is off and pragmas are set per connection.
    """
    connect_args = {}
    if _is_sqlite(url):
        _ensure_sqlite_dir(url)
        connect_args["check_same_thread"] = False

    db_engine = create_engine(url, connect_args=connect_args, echo=settings.DEBUG)

    if _is_sqlite(url):
        @event.listens_for(db_engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.execute(f"PRAGMA busy_timeout={int(settings.DATABASE_BUSY_TIMEOUT_MS)}")
            cursor.close()

    return db_engine


engine = create_db_engine(settings.DATABASE_URL)

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)

Base = declarative_base()


@contextmanager
def get_db() -> Iterator[Session]:
    """
    Session scope for one unit of work.

    Usage:
        with get_db() as db:
            offer = db.query(Offer)...

    Commits on clean exit. Any exception (guard failure, stale version,
    storage error) rolls the whole unit back and propagates.
    """
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def ping_database() -> dict:
    """Round-trip a trivial query; used by the health endpoint."""
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1")).fetchone()
    except Exception as e:
        logger.error(f"Database ping failed: {e}")
        return {"available": False, "dialect": engine.dialect.name, "error": str(e)}
    return {"available": True, "dialect": engine.dialect.name, "error": None}


def init_db():
    """Create the offers schema if it does not exist."""
    from . import models  # noqa: F401  registers tables on Base.metadata

    Base.metadata.create_all(bind=engine)
    logger.info(f"Database initialized ({engine.dialect.name})")


def close_db():
    """Dispose pooled connections."""
    engine.dispose()
    logger.info("Database connections closed")
