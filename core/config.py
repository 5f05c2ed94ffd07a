"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for ServPanel happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. secret_key -> SECRET_KEY). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a signing key with a
      warning; production mode refuses to start without one.

Security notes:
  SECRET_KEY shorter than 32 chars is rejected outright. JWT signing and the
  recovery-token HMAC both rely on key entropy.

  SERVICE_TOKEN is the static service-account credential. It is empty (and
  therefore disabled) unless an operator sets it explicitly.

Layer rule: core/ is the kernel. This module may not import from api/,
auth/, or audit/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("servpanel.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'servpanel.db'}"


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_expire_seconds: int = 24 * 3600
    recovery_window_seconds: int = 24 * 3600

    # Static service-account token. Requests whose Authorization header is
    # exactly this value skip JWT verification and act as the service user.
    service_token: str = ""
    service_user_id: int = 1
    service_username: str = "admin"
    service_email: str = "admin@example.com"

    # ------------------------------------------------------------------
    # Rate limiting (slowapi / limits syntax)
    # ------------------------------------------------------------------

    login_rate_limit: str = "3/3seconds"
    recovery_rate_limit: str = "3/3seconds"

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    # False: a failed audit write is logged and flagged on the response.
    # True: a failed audit write turns the request into a 500.
    audit_strict: bool = False
    log_timezone_offset_hours: int = -3

    # ------------------------------------------------------------------
    # Mail (empty domain or key selects the log-only mailer)
    # ------------------------------------------------------------------

    mailgun_domain: str = ""
    mailgun_api_key: str = ""
    mailgun_api_base: str = "https://api.mailgun.net/v3"
    mail_sender: str = "no-reply@servpanel.local"
    recovery_url: str = "http://localhost:3000/password-recovery/{token}/"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce the SECRET_KEY policy.

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Tokens will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning("WARNING: Using auto-generated SECRET_KEY. Tokens will not persist across restarts.")
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
