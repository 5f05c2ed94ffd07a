"""
auth/tokens.py -- Bearer tokens, login verification, and recovery-token helpers.

Security design decisions:
  JWT: python-jose with HS256. Tokens carry the numeric user_id and an
       absolute expiry (issue time + TOKEN_EXPIRE_SECONDS, 24h by default).
       Nothing is persisted server-side; expiry is the only way a token ends.
       TokenService.verify() collapses every failure (bad signature, malformed
       token, expired, missing claim) into one AuthError so callers cannot be
       used as an oracle for which check failed.

  TokenService is constructed explicitly with its secret and handed to the
       app at startup. Rotating the secret invalidates all outstanding tokens;
       tests build one per case with their own secret.

  Login: authenticate_user() always runs Argon2, against _DUMMY_HASH when
       the username does not exist, so response time does not reveal which
       usernames are enrolled. Unknown user and wrong password return the same
       None.

  Recovery tokens: secrets.token_urlsafe(32) (256 bits). Only
       HMAC-SHA256(SECRET_KEY, raw_token) is stored, so a leaked users table
       does not expose live reset tokens. The hash is deterministic, enabling
       an indexed lookup by hash.

Layer rule: no imports from api/ or audit/.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from jose import JWTError, jwt

from auth.passwords import generate_salt, hash_password, verify_password
from core.errors import AuthError

if TYPE_CHECKING:
    from auth.models import User
    from auth.store import UserStore

logger = logging.getLogger("servpanel.auth")

_ALGORITHM = "HS256"

INVALID_TOKEN = "invalid or expired token"


# ---------------------------------------------------------------------------
# JWT issue / verify
# ---------------------------------------------------------------------------


class TokenService:
    """Issues and verifies signed, time-limited bearer tokens.

    Usage:
        tokens = TokenService(settings.secret_key, settings.token_expire_seconds)
        token = tokens.issue(user.id)
        user_id = tokens.verify(token)   # raises AuthError
    """

    def __init__(self, secret_key: str, expire_seconds: int = 24 * 3600) -> None:
        if not secret_key:
            raise ValueError("TokenService requires a non-empty signing secret.")
        self._secret_key = secret_key
        self.expire_seconds = expire_seconds

    def issue(self, user_id: int, now: datetime | None = None) -> str:
        """Return a signed JWT for user_id valid for expire_seconds from now.

        now is injectable so tests can mint already-expired tokens.
        """
        issued_at = now or datetime.now(timezone.utc)
        payload = {
            "user_id": user_id,
            "iat": int(issued_at.timestamp()),
            "exp": int((issued_at + timedelta(seconds=self.expire_seconds)).timestamp()),
        }
        return jwt.encode(payload, self._secret_key, algorithm=_ALGORITHM)

    def verify(self, token: str) -> int:
        """Return the user_id carried by a valid, unexpired token.

        Raises AuthError("invalid or expired token") on any failure.
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[_ALGORITHM])
        except JWTError as exc:
            logger.debug("Bearer token rejected: %s", exc)
            raise AuthError(INVALID_TOKEN) from None
        user_id = payload.get("user_id")
        if not isinstance(user_id, int) or isinstance(user_id, bool) or "exp" not in payload:
            raise AuthError(INVALID_TOKEN)
        return user_id

    def hash_recovery_token(self, raw_token: str) -> str:
        """Return HMAC-SHA256(secret, raw_token) as hex for storage and lookup."""
        return hmac.new(self._secret_key.encode(), raw_token.encode(), hashlib.sha256).hexdigest()


# ---------------------------------------------------------------------------
# User authentication (constant-time)
# ---------------------------------------------------------------------------

# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
_DUMMY_SALT: str = generate_salt()
_DUMMY_HASH: str = hash_password("servpanel_timing_dummy", _DUMMY_SALT)


def authenticate_user(store: UserStore, username: str, password: str) -> User | None:
    """Authenticate a username/password login with timing equalization.

    Returns the User on success, None on any failure. Never distinguishes
    "no such user" from "wrong password".
    """
    user = store.get_by_username(username)
    if user is None or not user.password_hash:
        # Do NOT return before running Argon2.
        verify_password(password, _DUMMY_SALT, _DUMMY_HASH)
        return None
    if not verify_password(password, user.salt, user.password_hash):
        return None
    return user


# ---------------------------------------------------------------------------
# Recovery tokens
# ---------------------------------------------------------------------------


def generate_recovery_token() -> str:
    """Return a fresh single-use recovery token (URL-safe, 256 bits)."""
    return secrets.token_urlsafe(32)
