"""
api/limiter.py -- Shared slowapi rate limiter instance.

Import this in api/main.py (to mount as middleware) and in route modules
(to apply per-route limits with @limiter.limit()).

Using a single shared instance ensures all routes share the same in-memory
counter store. The store is process-wide state with its own locking; a
request over the limit is rejected with 429 immediately, never queued.

Strategy is moving-window: at most N hits in any trailing window span.

Limit strings come from Settings at request time (callables), so tests and
deployments can change them without re-importing route modules.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from core.config import get_settings

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://", strategy="moving-window")


def login_limit() -> str:
    return get_settings().login_rate_limit


def recovery_limit() -> str:
    return get_settings().recovery_rate_limit
