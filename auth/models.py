"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Stores and services
do the work; these only own the shape.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class User:
    """A panel user together with its credential record.

    password_hash and salt are hex strings produced by auth.passwords. They
    are only ever derived from (plaintext, salt) and never serialized into
    API responses or audit snapshots.

    recovery_hash is HMAC-SHA256 of the raw recovery token (the raw token only
    exists in the e-mail). recovery_hash_time is the ISO 8601 issue instant.
    Both are None when no recovery is pending.

    rank is the privilege tier; higher is more privileged.
    """

    username: str
    email: str
    id: int | None = None
    name: str = ""
    rank: int = 0
    password_hash: str = ""
    salt: str = ""
    recovery_hash: str | None = None
    recovery_hash_time: str | None = None
    created_at: str | None = None
    updated_at: str | None = None


@dataclass(frozen=True)
class ServiceAccount:
    """The static service token and the pseudo-user it authenticates as.

    Built from SERVICE_TOKEN at startup; absent when the setting is empty.
    The user is fixed in configuration and is not looked up in the store.
    """

    token: str
    user: User
