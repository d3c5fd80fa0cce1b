"""
auth/credentials.py -- Local (username/password) strategy.

CredentialVerifier owns two operations:

  verify(username, password) -> User
      Raises NotFound, WrongMethod or InvalidCredential. Empty input is an
      InvalidCredential and never reaches the store. No side effects on
      failure: no lockouts, no counters, no writes.

  register(username, password) -> User
      Raises InvalidRegistration or DuplicateUsername. Stores the bcrypt
      hash only. Does NOT log the user in -- the route chains to
      SessionManager.establish() after a successful register.

Security:
  [C1] verify() runs bcrypt on every path, against a dummy hash when there is
       no local credential to check, so timing does not reveal whether the
       username exists. NotFound and InvalidCredential also carry the same
       flash text.

Layer rule: no imports from api/, web/, or vault/.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from auth.errors import DuplicateUsername, InvalidCredential, InvalidRegistration, NotFound, WrongMethod
from auth.models import LocalAccount, User
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_LENGTH, hash_password, verify_password
from auth.store import UserStore

logger = logging.getLogger("secretkeeper.auth.credentials")


class CredentialVerifier:
    """Local strategy bound to a UserStore."""

    def __init__(self, user_store: UserStore) -> None:
        self.user_store = user_store

    def verify(self, username: str, password: str) -> User:
        """Return the local user matching username/password or raise an AuthFailure.

        The username is trimmed exactly as register() trims it.
        """
        username = username.strip()
        if not username or not password:
            logger.info("Login failed: empty username or password")
            raise InvalidCredential()
        user = self.user_store.get_by_username(username)
        if user is None:
            verify_password(password, DUMMY_HASH)  # [C1]
            logger.info("Login failed: unknown username")
            raise NotFound()
        if not isinstance(user.account, LocalAccount):
            verify_password(password, DUMMY_HASH)  # [C1]
            logger.info("Login failed: user %s has no password credential", user.id)
            raise WrongMethod()
        if not verify_password(password, user.account.password_hash):
            logger.info("Login failed: bad password for user %s", user.id)
            raise InvalidCredential()
        return user

    def register(self, username: str, password: str) -> User:
        """Create a local user. The caller establishes the session."""
        username = username.strip()
        if not username or not password:
            raise InvalidRegistration()
        if len(password.encode("utf-8")) > MAX_PASSWORD_LENGTH:
            raise InvalidRegistration(f"Password must be at most {MAX_PASSWORD_LENGTH} bytes.")

        existing = self.user_store.get_by_username(username)
        if existing is not None and existing.is_local:
            raise DuplicateUsername()

        try:
            user = self.user_store.create_local_user(username, hash_password(password))
        except IntegrityError as exc:
            # Concurrent registration won the unique index.
            raise DuplicateUsername() from exc
        logger.info("Registered local user %s", user.id)
        return user
