"""
tests/test_credentials.py -- Unit tests for the local strategy.

Covers:
  - register() stores a bcrypt hash, never the plaintext
  - register() with a taken username raises DuplicateUsername, count unchanged
  - register() rejects empty input
  - verify() success and the three failure kinds (NotFound, WrongMethod,
    InvalidCredential), empty input, whitespace trimmed like register()
  - a local username may equal a federated user's email-derived username
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from auth.credentials import CredentialVerifier
from auth.errors import DuplicateUsername, InvalidCredential, InvalidRegistration, NotFound, WrongMethod
from auth.models import LocalAccount
from auth.store import UserStore


@pytest.fixture
def verifier(user_store: UserStore) -> CredentialVerifier:
    return CredentialVerifier(user_store)


class TestRegister:
    def test_register_stores_hash_not_plaintext(self, verifier: CredentialVerifier, user_store: UserStore) -> None:
        user = verifier.register("alice", "pw1")
        stored = user_store.get_by_id(user.id)
        assert stored is not None
        assert isinstance(stored.account, LocalAccount)
        assert stored.account.password_hash != "pw1"
        assert stored.account.password_hash.startswith("$2")

    def test_duplicate_username_leaves_count_unchanged(
        self, verifier: CredentialVerifier, user_store: UserStore
    ) -> None:
        verifier.register("alice", "pw1")
        before = user_store.count_users()
        with pytest.raises(DuplicateUsername):
            verifier.register("alice", "another")
        assert user_store.count_users() == before

    def test_duplicate_detected_by_unique_index(self, user_store: UserStore) -> None:
        """A second insert that skipped the pre-check still fails on the index."""
        from sqlalchemy.exc import IntegrityError

        user_store.create_local_user("alice", "$2b$12$x")
        with pytest.raises(IntegrityError):
            user_store.create_local_user("alice", "$2b$12$y")

    @pytest.mark.parametrize("username,password", [("", "pw"), ("   ", "pw"), ("bob", "")])
    def test_empty_fields_rejected(self, verifier: CredentialVerifier, username: str, password: str) -> None:
        with pytest.raises(InvalidRegistration):
            verifier.register(username, password)

    def test_overlong_password_rejected(self, verifier: CredentialVerifier) -> None:
        with pytest.raises(InvalidRegistration):
            verifier.register("bob", "x" * 73)

    def test_local_username_may_match_federated_username(
        self, verifier: CredentialVerifier, user_store: UserStore
    ) -> None:
        federated = user_store.find_or_create_federated("google", "sub-1", "dave@example.com")
        local = verifier.register("dave@example.com", "pw")
        assert local.id != federated.id
        assert user_store.count_users() == 2


class TestVerify:
    def test_valid_pair_returns_user(self, verifier: CredentialVerifier) -> None:
        registered = verifier.register("alice", "pw1")
        user = verifier.verify("alice", "pw1")
        assert user.id == registered.id
        assert user.username == "alice"

    def test_unknown_username(self, verifier: CredentialVerifier) -> None:
        with pytest.raises(NotFound):
            verifier.verify("nobody", "pw")

    def test_wrong_password(self, verifier: CredentialVerifier) -> None:
        verifier.register("alice", "pw1")
        with pytest.raises(InvalidCredential):
            verifier.verify("alice", "wrong")

    def test_federated_only_account(self, verifier: CredentialVerifier, user_store: UserStore) -> None:
        user_store.find_or_create_federated("google", "sub-9", "erin@example.com")
        with pytest.raises(WrongMethod):
            verifier.verify("erin@example.com", "anything")

    def test_local_account_wins_when_username_shared(
        self, verifier: CredentialVerifier, user_store: UserStore
    ) -> None:
        user_store.find_or_create_federated("google", "sub-2", "frank@example.com")
        local = verifier.register("frank@example.com", "pw")
        assert verifier.verify("frank@example.com", "pw").id == local.id

    def test_not_found_and_invalid_share_message(self) -> None:
        assert NotFound().message == InvalidCredential().message

    def test_failed_verify_has_no_side_effects(self, verifier: CredentialVerifier, user_store: UserStore) -> None:
        verifier.register("alice", "pw1")
        for _ in range(5):
            with pytest.raises(InvalidCredential):
                verifier.verify("alice", "wrong")
        assert verifier.verify("alice", "pw1").username == "alice"
        assert user_store.count_users() == 1

    def test_surrounding_whitespace_logs_in_with_the_same_pair(self, verifier: CredentialVerifier) -> None:
        registered = verifier.register(" alice ", "pw1")
        assert registered.username == "alice"
        assert verifier.verify(" alice ", "pw1").id == registered.id
        assert verifier.verify("alice", "pw1").id == registered.id

    @pytest.mark.parametrize("username,password", [("", "pw"), ("   ", "pw"), ("alice", "")])
    def test_empty_input_rejected_without_lookup(self, username: str, password: str) -> None:
        store = MagicMock()
        with pytest.raises(InvalidCredential):
            CredentialVerifier(store).verify(username, password)
        store.get_by_username.assert_not_called()
