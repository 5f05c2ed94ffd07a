"""
auth/recovery.py -- Password recovery: issue a single-use token, then reset.

Flow:
  request_recovery(email)
      Look up the user by e-mail (NotFoundError if absent), mint a random
      token, store HMAC(token) with the issue instant, and mail the raw token.
      Issuing again replaces any earlier pending token.

  reset_password(token, new_password)
      Look up the pending recovery by HMAC(token) (InvalidTokenError if empty,
      unknown or already consumed), reject with ExpiredError once the window
      has passed, then re-salt, re-hash and clear the token in one UPDATE
      that only matches while the token is still pending.

The clock is injectable so tests can move time forward without sleeping.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from auth.passwords import new_credential
from auth.store import UserStore
from auth.tokens import TokenService, generate_recovery_token
from core.errors import ExpiredError, InvalidTokenError, NotFoundError
from core.mailer import render_recovery_email

logger = logging.getLogger("servpanel.auth")

RECOVERY_SUBJECT = "Password recovery"


class Mailer(Protocol):
    def send(self, recipient: str, subject: str, html_body: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecoveryService:
    def __init__(
        self,
        store: UserStore,
        tokens: TokenService,
        mailer: Mailer,
        window_seconds: int = 24 * 3600,
        recovery_url: str = "{token}",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.tokens = tokens
        self.mailer = mailer
        self.window = timedelta(seconds=window_seconds)
        self.recovery_url = recovery_url
        self._clock = clock

    def request_recovery(self, email: str) -> str:
        """Issue and mail a recovery token for the account registered with email.

        Returns the raw token so callers other than the HTTP route (the CLI,
        tests) can use it directly. The HTTP route never echoes it.

        Raises NotFoundError for unknown e-mail addresses and
        MailDeliveryError when the mail provider fails. The token is stored
        before sending, so a failed send leaves a usable but undelivered token.
        """
        user = self.store.get_by_email(email)
        if user is None:
            raise NotFoundError("Email not found.")

        raw_token = generate_recovery_token()
        issued_at = self._clock().isoformat()
        self.store.set_recovery(user.id, self.tokens.hash_recovery_token(raw_token), issued_at)
        logger.info("Recovery token issued for user %d", user.id)

        self.mailer.send(user.email, RECOVERY_SUBJECT, render_recovery_email(raw_token, self.recovery_url))
        return raw_token

    def reset_password(self, token: str, new_password: str) -> int:
        """Consume a recovery token and set a new password. Returns the user id."""
        if not token:
            raise InvalidTokenError("Invalid recovery token.")
        recovery_hash = self.tokens.hash_recovery_token(token)
        user = self.store.get_by_recovery_hash(recovery_hash)
        if user is None or not user.recovery_hash_time:
            raise InvalidTokenError("Invalid recovery token.")

        issued_at = datetime.fromisoformat(user.recovery_hash_time)
        if issued_at.tzinfo is None:
            issued_at = issued_at.replace(tzinfo=timezone.utc)
        if self._clock() - issued_at > self.window:
            logger.info("Expired recovery token presented for user %d", user.id)
            raise ExpiredError("The recovery token has expired.")

        password_hash, salt = new_credential(new_password)
        if not self.store.consume_recovery(user.id, recovery_hash, password_hash, salt):
            logger.info("Recovery token for user %d was consumed concurrently", user.id)
            raise InvalidTokenError("Invalid recovery token.")
        logger.info("Password reset via recovery token for user %d", user.id)
        return user.id
