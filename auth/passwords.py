"""
auth/passwords.py -- Credential hashing (Argon2id with a per-user salt).

Parameters are fixed: time cost 1, memory 64 MiB, 4 lanes, 32-byte output.
Changing any of them invalidates every stored hash, so they are constants
rather than settings.

The salt and hash are stored as separate hex columns, so the raw Argon2
primitive (argon2.low_level.hash_secret_raw) is used instead of the encoded
PHC string that PasswordHasher produces.

verify_password() fails closed: undecodable hex or any hashing error yields
False, never an exception the caller has to interpret.
"""

from __future__ import annotations

import hmac
import logging
import secrets

from argon2.exceptions import HashingError
from argon2.low_level import Type, hash_secret_raw

logger = logging.getLogger("servpanel.auth")

SALT_BYTES = 16
TIME_COST = 1
MEMORY_COST_KIB = 64 * 1024
PARALLELISM = 4
HASH_LEN = 32


def generate_salt() -> str:
    """Return 16 random bytes from the OS CSPRNG, hex-encoded."""
    return secrets.token_hex(SALT_BYTES)


def derive_key(password: str, salt: bytes) -> bytes:
    """Run Argon2id over password with the given raw salt bytes."""
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=TIME_COST,
        memory_cost=MEMORY_COST_KIB,
        parallelism=PARALLELISM,
        hash_len=HASH_LEN,
        type=Type.ID,
    )


def hash_password(password: str, salt: str) -> str:
    """Return the hex Argon2id hash of password under the hex-encoded salt.

    Raises ValueError if salt is not valid hex -- enrollment always passes a
    salt from generate_salt(), so this only fires on programming errors.
    """
    return derive_key(password, bytes.fromhex(salt)).hex()


def verify_password(password: str, salt: str, expected_hash: str) -> bool:
    """Return True if password hashes to expected_hash under salt.

    Comparison is constant-time over the raw bytes.
    """
    try:
        salt_bytes = bytes.fromhex(salt)
        expected = bytes.fromhex(expected_hash)
    except (TypeError, ValueError):
        logger.warning("Stored credential is not valid hex; rejecting")
        return False
    if not salt_bytes or not expected:
        return False
    try:
        computed = derive_key(password, salt_bytes)
    except HashingError:
        return False
    return hmac.compare_digest(computed, expected)


def new_credential(password: str) -> tuple[str, str]:
    """Return (password_hash, salt) for a fresh enrollment or password change."""
    salt = generate_salt()
    return hash_password(password, salt), salt
