"""
auth/passwords.py -- bcrypt password hashing.

Passwords: bcrypt directly (no passlib wrapper). bcrypt salts every hash and
checkpw() compares in constant time, so this module is the whole of the
"salted hash + constant-time comparison" requirement.

Using bcrypt directly rather than passlib[bcrypt] because passlib's internal
wrap-bug detection creates a password longer than 72 bytes, which bcrypt 4.x
rejects with an explicit error.

Layer rule: no imports from api/, web/, or vault/.
"""

from __future__ import annotations

import bcrypt

# bcrypt ignores everything past 72 bytes; the registration form caps input
# well below that.
MAX_PASSWORD_LENGTH = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password."""
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    A malformed stored hash counts as a mismatch rather than an error.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


# Timing equalization dummy hash [C1].
# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones. verify() checks against it when the username
# does not exist, so response time does not reveal which branch ran.
DUMMY_HASH: str = hash_password("secretkeeper_timing_dummy")
