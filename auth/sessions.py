"""
auth/sessions.py -- Server-side sessions: opaque token -> user id.

The browser only ever holds the opaque token (inside the signed Starlette
session cookie, see api/main.py). Everything else stays on the server:

  SessionStore        -- SQLAlchemy table "sessions". Durable when the
                         database is (file SQLite, PostgreSQL).
  MemorySessionStore  -- dict behind a lock. NOT durable: every session is
                         lost on restart. For local development and tests.
  SessionManager      -- establish / resolve / destroy on top of either store.

Session lifecycle:
  establish(user)  -- new random token bound to user.id. The record is written
                      before the token is returned, so a failed write never
                      yields a usable token.
  resolve(token)   -- reloads the User from the UserStore on every call. No
                      user data is cached in the session.
  destroy(token)   -- deletes the record. The token is dead from that moment,
                      even if a copy of the old cookie is replayed.

Layer rule: no imports from api/, web/, or vault/.
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from collections.abc import Callable
from typing import Protocol

from sqlalchemy import Column, Float, MetaData, String, Table
from sqlalchemy.engine import Engine

from auth.models import SessionRecord, User
from auth.store import UserStore
from core.db import create_store_engine, store_errors

logger = logging.getLogger("secretkeeper.auth.sessions")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("token", String(64), primary_key=True),
    Column("user_id", String(32), nullable=False, index=True),
    Column("created_at", Float, nullable=False),
    Column("expires_at", Float, nullable=False, index=True),
)


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------


class SessionBackend(Protocol):
    def save(self, record: SessionRecord) -> None: ...

    def load(self, token: str) -> SessionRecord | None: ...

    def delete(self, token: str) -> bool: ...

    def purge_expired(self, now: float) -> int: ...

    def close(self) -> None: ...


class SessionStore:
    """Durable session store backed by a SQLAlchemy table."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        with store_errors("create sessions schema"):
            _metadata.create_all(self.engine)

    def save(self, record: SessionRecord) -> None:
        with store_errors("save session"):
            with self.engine.begin() as conn:
                conn.execute(
                    _sessions.insert().values(
                        token=record.token,
                        user_id=record.user_id,
                        created_at=record.created_at,
                        expires_at=record.expires_at,
                    )
                )

    def load(self, token: str) -> SessionRecord | None:
        with store_errors("load session"):
            with self.engine.connect() as conn:
                row = conn.execute(_sessions.select().where(_sessions.c.token == token)).fetchone()
        if row is None:
            return None
        return SessionRecord(
            token=row.token,
            user_id=row.user_id,
            created_at=row.created_at,
            expires_at=row.expires_at,
        )

    def delete(self, token: str) -> bool:
        """Delete one session. Returns True if a row was removed."""
        with store_errors("delete session"):
            with self.engine.begin() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.token == token))
        return result.rowcount > 0

    def purge_expired(self, now: float) -> int:
        """Delete every session whose expiry has passed. Returns rows removed."""
        with store_errors("purge sessions"):
            with self.engine.begin() as conn:
                result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= now))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


class MemorySessionStore:
    """In-process session store. Sessions do not survive a restart."""

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    def save(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.token] = record

    def load(self, token: str) -> SessionRecord | None:
        with self._lock:
            return self._records.get(token)

    def delete(self, token: str) -> bool:
        with self._lock:
            return self._records.pop(token, None) is not None

    def purge_expired(self, now: float) -> int:
        with self._lock:
            expired = [t for t, r in self._records.items() if r.expires_at <= now]
            for t in expired:
                del self._records[t]
        return len(expired)

    def close(self) -> None:
        with self._lock:
            self._records.clear()


# ---------------------------------------------------------------------------
# Manager
# ---------------------------------------------------------------------------


class SessionManager:
    """Issues, resolves and destroys sessions.

    Constructed once in the application lifespan and reached by route
    handlers through request.app.state.sessions.
    """

    def __init__(
        self,
        store: SessionBackend,
        user_store: UserStore,
        expire_seconds: int,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.user_store = user_store
        self.expire_seconds = expire_seconds
        self._clock = clock

    def establish(self, user: User) -> str:
        """Bind a fresh opaque token to user.id and return the token."""
        if user.id is None:
            raise ValueError("Cannot establish a session for an unsaved user")
        now = self._clock()
        record = SessionRecord(
            token=secrets.token_urlsafe(32),
            user_id=user.id,
            created_at=now,
            expires_at=now + self.expire_seconds,
        )
        self.store.save(record)
        logger.info("Session established for user %s", user.id)
        return record.token

    def resolve(self, token: str | None) -> User | None:
        """Return the current User for token, or None if the session is invalid."""
        if not token:
            return None
        record = self.store.load(token)
        if record is None:
            return None
        if record.expires_at <= self._clock():
            self.store.delete(token)
            return None
        return self.user_store.get_by_id(record.user_id)

    def destroy(self, token: str | None) -> None:
        """Invalidate token. Store failures propagate to the caller."""
        if not token:
            return
        if self.store.delete(token):
            logger.info("Session destroyed")

    def purge_expired(self) -> int:
        removed = self.store.purge_expired(self._clock())
        if removed:
            logger.info("Purged %d expired session(s)", removed)
        return removed
