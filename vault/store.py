"""
vault/store.py -- SQLAlchemy-backed persistence layer for secrets.

Uses SQLAlchemy Core (not ORM) so the dataclass in vault/models.py remains
the authoritative domain representation. Swapping SQLite for PostgreSQL is a
connection string change, not a rewrite.

Pattern: Repository + Data Mapper. SecretStore is the repository;
_row_to_secret is the mapper. Route handlers never touch SQL directly.

Ownership: every read is scoped by owner_id. There is no query that returns
another user's secrets.

Security: all queries use bound parameters. No f-strings in SQL.

Usage:
    store = SecretStore("sqlite:///secretkeeper.db")
    store.create_secret(Secret(owner_id=user.id, text="x"))
    secrets = store.list_for_owner(user.id)
    store.close()
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from core.db import create_store_engine, store_errors
from vault.models import Secret

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_secrets = Table(
    "secrets",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("owner_id", String(32), nullable=False, index=True),
    Column("text", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class SecretStore:
    def __init__(self, db_url: str) -> None:
        self.engine: Engine = create_store_engine(db_url)
        with store_errors("create secrets schema"):
            _metadata.create_all(self.engine)

    def create_secret(self, secret: Secret) -> str:
        """Insert a secret and return its assigned id.

        Raises ValueError for an empty owner_id or text; raises
        StoreUnavailable if the database rejects the write.
        """
        if not secret.owner_id:
            raise ValueError("secret.owner_id is required")
        if not secret.text:
            raise ValueError("secret.text is required")
        secret_id = uuid.uuid4().hex
        created_at = _now_iso()
        with store_errors("create secret"):
            with self.engine.begin() as conn:
                conn.execute(
                    _secrets.insert().values(
                        id=secret_id,
                        owner_id=secret.owner_id,
                        text=secret.text,
                        created_at=created_at,
                    )
                )
        secret.id = secret_id
        secret.created_at = created_at
        return secret_id

    def list_for_owner(self, owner_id: str) -> list[Secret]:
        """Return owner_id's secrets, oldest first."""
        stmt = _secrets.select().where(_secrets.c.owner_id == owner_id).order_by(_secrets.c.created_at)
        with store_errors("list secrets"):
            with self.engine.connect() as conn:
                rows = conn.execute(stmt).fetchall()
        return [_row_to_secret(r) for r in rows]

    def close(self) -> None:
        """Dispose of the SQLAlchemy engine and release all pooled connections."""
        self.engine.dispose()


def _row_to_secret(row) -> Secret:
    return Secret(
        owner_id=row.owner_id,
        text=row.text,
        id=row.id,
        created_at=row.created_at,
    )
