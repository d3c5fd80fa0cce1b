"""
auth/store.py -- SQLAlchemy Core persistence layer for users.

Pattern: Repository + Data Mapper (same as vault/store.py).
UserStore is the repository; _row_to_user is the mapper. Route and
dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Uniqueness rules live in the schema, not in read-then-write code:
  uq_users_federated    -- UNIQUE(federated_provider, federated_subject).
      Local users leave both columns NULL, and NULLs are distinct in UNIQUE
      constraints on both SQLite and PostgreSQL, so they never collide.
  uq_users_local_username -- partial unique index on username WHERE
      password_hash IS NOT NULL. Usernames are unique among local users
      only; a federated user's email-derived username may equal a local one.

find_or_create_federated() depends on uq_users_federated: the INSERT either
wins or raises IntegrityError, in which case the winner's row is re-read.
Two concurrent first logins of one external identity therefore produce one
user.

Layer rule: no imports from api/, web/, or vault/. Import from core/ is
allowed -- core/ is the kernel layer.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, Index, MetaData, String, Table, Text, UniqueConstraint, func, select, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import FederatedAccount, LocalAccount, User
from core.db import create_store_engine, store_errors

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("username", String(255), nullable=False),
    Column("password_hash", Text),  # NULL for federated users
    Column("federated_provider", String(30)),  # "google"
    Column("federated_subject", String(255)),  # provider's stable user ID
    Column("created_at", String(32), nullable=False),
    UniqueConstraint("federated_provider", "federated_subject", name="uq_users_federated"),
)

Index(
    "uq_users_local_username",
    _users.c.username,
    unique=True,
    sqlite_where=_users.c.password_hash.isnot(None),
    postgresql_where=_users.c.password_hash.isnot(None),
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User entities.

    Usage:
        store = UserStore("sqlite:///secretkeeper.db")
        user = store.create_local_user("alice", hash_password("pw1"))
        same = store.get_by_id(user.id)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        with store_errors("create users schema"):
            _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_local_user(self, username: str, password_hash: str) -> User:
        """Insert a local user and return it.

        Raises sqlalchemy.exc.IntegrityError if a local user with that
        username already exists. The credential verifier turns that into
        DuplicateUsername.
        """
        user = User(
            username=username,
            account=LocalAccount(password_hash=password_hash),
            id=_new_id(),
            created_at=_now_iso(),
        )
        with store_errors("create local user"):
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(
                        id=user.id,
                        username=user.username,
                        password_hash=password_hash,
                        created_at=user.created_at,
                    )
                )
        return user

    def find_or_create_federated(self, provider: str, subject: str, username: str) -> User:
        """Return the user linked to (provider, subject), creating it on first login.

        The existing record is returned unchanged: username is not refreshed
        from the provider on repeat logins.
        """
        existing = self.get_by_federated(provider, subject)
        if existing is not None:
            return existing

        user = User(
            username=username,
            account=FederatedAccount(provider=provider, subject=subject),
            id=_new_id(),
            created_at=_now_iso(),
        )
        try:
            with store_errors("create federated user"):
                with self.engine.begin() as conn:
                    conn.execute(
                        _users.insert().values(
                            id=user.id,
                            username=username,
                            federated_provider=provider,
                            federated_subject=subject,
                            created_at=user.created_at,
                        )
                    )
        except IntegrityError:
            # A concurrent first login inserted the row between our SELECT
            # and INSERT. Its row is the user.
            winner = self.get_by_federated(provider, subject)
            if winner is None:
                raise
            return winner
        return user

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with store_errors("get user by id"):
            with self.engine.connect() as conn:
                row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive).

        When a local and a federated user share the username, the local one
        is returned: password login can only ever match the local record.
        """
        stmt = (
            _users.select()
            .where(_users.c.username == username)
            .order_by(_users.c.password_hash.is_(None), _users.c.created_at)
        )
        with store_errors("get user by username"):
            with self.engine.connect() as conn:
                row = conn.execute(stmt).first()
        return _row_to_user(row) if row is not None else None

    def get_by_federated(self, provider: str, subject: str) -> User | None:
        """Look up a user by (federated_provider, federated_subject)."""
        with store_errors("get user by federated identity"):
            with self.engine.connect() as conn:
                row = conn.execute(
                    _users.select().where(
                        (_users.c.federated_provider == provider) & (_users.c.federated_subject == subject)
                    )
                ).fetchone()
        return _row_to_user(row) if row is not None else None

    def count_users(self) -> int:
        with store_errors("count users"):
            with self.engine.connect() as conn:
                result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /api/v1/health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("SELECT 1"))
        except Exception:
            return False
        return True

    def close(self) -> None:
        """Dispose of the SQLAlchemy engine and release all pooled connections."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    m = row._mapping
    account: LocalAccount | FederatedAccount
    if m["password_hash"] is not None:
        account = LocalAccount(password_hash=m["password_hash"])
    else:
        account = FederatedAccount(provider=m["federated_provider"], subject=m["federated_subject"])
    return User(
        username=m["username"],
        account=account,
        id=m["id"],
        created_at=m["created_at"],
    )
