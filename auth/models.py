"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Mirrors the approach
in vault/models.py -- dataclasses own domain shape; stores and routes do the
work.

A User carries exactly one account variant:
  LocalAccount     -- registered with a username/password on this site.
  FederatedAccount -- created on first login through an external provider.

Layer rule: no imports from api/, web/, core/, or vault/.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class LocalAccount:
    """Password credential. password_hash is a bcrypt hash, never plaintext."""

    password_hash: str


@dataclass(frozen=True)
class FederatedAccount:
    """External identity. (provider, subject) maps to exactly one User."""

    provider: str  # "google"
    subject: str  # provider's stable user ID ("sub" claim)


Account = Union[LocalAccount, FederatedAccount]


@dataclass
class User:
    """Represents an identity in SecretKeeper.

    username is unique among local users. Federated users get the provider's
    primary email as username at first login; it is never refreshed, and it
    may coincide with a local username (both accounts stay distinct).

    id is None before the record is written to the database.
    """

    username: str
    account: Account
    id: str | None = None
    created_at: str | None = None

    @property
    def is_local(self) -> bool:
        return isinstance(self.account, LocalAccount)

    @property
    def is_federated(self) -> bool:
        return isinstance(self.account, FederatedAccount)


@dataclass
class ProviderProfile:
    """A verified identity assertion returned by the OAuth client.

    Trust in these values comes from the OAuth/OIDC handshake performed by
    authlib; nothing here is re-verified.
    """

    provider: str
    subject: str
    primary_email: str


@dataclass
class SessionRecord:
    """Server-side binding of an opaque token to a user id.

    Only the id is stored. The User is re-read on every request so changes
    made out-of-band show up immediately.
    """

    token: str
    user_id: str
    created_at: float
    expires_at: float
