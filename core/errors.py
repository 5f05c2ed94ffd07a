"""
core/errors.py -- Typed failures shared by every layer.

Core components (auth/, audit/, core/mailer.py) raise these instead of
producing HTTP responses. api/main.py owns the mapping to status codes, so
the same failure always surfaces the same way regardless of which route
raised it.

Messages on AuthError are the exact reasons sent to clients. They must never
say which verification step failed beyond the three gate-level reasons.
"""


class ServPanelError(Exception):
    """Base class for all domain failures."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message)
        self.message = message


class AuthError(ServPanelError):
    """Missing, malformed, invalid or expired credentials. Surfaces as 401."""


class NotFoundError(ServPanelError):
    """A lookup (user by id, username, email) found nothing. Surfaces as 404."""


class ExpiredError(ServPanelError):
    """A recovery token is past its validity window. Surfaces as 400."""


class InvalidTokenError(ServPanelError):
    """A recovery token is empty, unknown or already consumed. Surfaces as 400."""


class AttributionError(ServPanelError):
    """The actor behind an audited change could not be resolved."""


class ConflictError(ServPanelError):
    """A unique constraint (username) would be violated. Surfaces as 409."""


class StorageError(ServPanelError):
    """Any underlying persistence failure. Surfaces as an opaque 500."""


class MailDeliveryError(ServPanelError):
    """The outbound mail provider rejected or failed a message. Surfaces as 502."""
