"""
core/db.py -- Engine construction and error translation for SQLAlchemy stores.

Every store (auth/store.py, auth/sessions.py, vault/store.py) builds its engine
here so SQLite gets the same connection settings everywhere:

  check_same_thread=False -- FastAPI runs sync handlers in a thread pool.
  WAL journal mode         -- readers do not block during writes.

store_errors() wraps a block of store code and re-raises connection-level
failures (sqlalchemy.exc.OperationalError, DBAPI disconnects) as
StoreUnavailable. IntegrityError is deliberately NOT translated: callers use
it as the signal that a unique constraint fired.

Layer rule: core/ is the kernel. No imports from api/, web/, auth/, or vault/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError, IntegrityError

from core.errors import StoreUnavailable

logger = logging.getLogger("secretkeeper.db")


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool. In-memory databases silently ignore it.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def create_store_engine(db_url: str) -> Engine:
    """Return an Engine for db_url with SQLite-specific settings applied."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


@contextmanager
def store_errors(operation: str) -> Iterator[None]:
    """Translate database availability failures into StoreUnavailable.

    Usage:
        with store_errors("create secret"):
            with self.engine.connect() as conn:
                ...
    """
    try:
        yield
    except IntegrityError:
        raise
    except DBAPIError as exc:
        logger.error("Store operation %r failed: %s", operation, exc.__class__.__name__)
        raise StoreUnavailable(f"{operation} failed") from exc
