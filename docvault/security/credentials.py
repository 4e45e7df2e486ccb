"""Credential hashing for account login secrets (Argon2id)."""

from __future__ import annotations

from argon2 import PasswordHasher, Type
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

_hasher = PasswordHasher(
    time_cost=3,
    memory_cost=65536,
    parallelism=4,
    hash_len=32,
    salt_len=16,
    type=Type.ID,
)

# Compared against when the login id is unknown so both failure paths cost the same.
_DUMMY_HASH = _hasher.hash("docvault-dummy-credential")


def hash_credential(secret: str) -> str:
    if not secret:
        raise ValueError("credential must not be empty")
    return _hasher.hash(secret)


def verify_credential(stored_hash: str | None, secret: str) -> bool:
    """Return ``True`` when ``secret`` matches ``stored_hash``."""
    try:
        return _hasher.verify(stored_hash or _DUMMY_HASH, secret) and stored_hash is not None
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False
