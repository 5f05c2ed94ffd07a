"""
audit/recorder.py -- Attribute a state change to its actor and write it down.

The recorder resolves the actor itself, from the request, with the same
resolve_actor() the auth gate uses. Handlers do not pass a user in: logging
often happens deep in business code, and an entry must be attributed by the
rules that admitted the request rather than by whatever the caller believes.

Failure policy:
  record()             -- strict. Raises AttributionError when the actor cannot
                          be resolved (nothing is written), StorageError when
                          the write itself fails.
  record_best_effort() -- what the route handlers call. The business write has
                          already happened and is not rolled back; a failed
                          audit write is logged at ERROR and reported as False
                          so the handler can flag the response. With
                          strict=True it re-raises instead.

old_value / new_value are opaque strings to this module. snapshot() is the
helper handlers use to produce them.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Callable
from typing import Any

from fastapi import Request

from audit.models import AuditEntry
from audit.store import AuditStore
from auth.dependencies import resolve_actor
from auth.models import User
from core.errors import AttributionError, AuthError, StorageError

logger = logging.getLogger("servpanel.audit")

# Credential material never enters the log, whatever the caller passes.
_REDACTED_FIELDS = frozenset({"password", "password_hash", "salt", "recovery_hash", "recovery_hash_time"})


def snapshot(value: Any) -> str:
    """Serialize a dataclass or mapping to the JSON text stored in a log entry.

    None serializes to "" (the empty side of a create or delete).
    """
    if value is None:
        return ""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        data = dataclasses.asdict(value)
    else:
        data = dict(value)
    clean = {k: v for k, v in data.items() if k not in _REDACTED_FIELDS}
    return json.dumps(clean, sort_keys=True, default=str)


class AuditRecorder:
    def __init__(
        self,
        store: AuditStore,
        resolve: Callable[[Request], User] = resolve_actor,
        strict: bool = False,
    ) -> None:
        self.store = store
        self._resolve = resolve
        self.strict = strict

    def record(self, log_type: str, old_value: str, new_value: str, request: Request) -> int:
        """Write one entry attributed to the request's actor. Returns the entry id."""
        try:
            actor = self._resolve(request)
        except (AuthError, StorageError) as exc:
            raise AttributionError(f"Cannot attribute '{log_type}': {exc.message}") from exc
        if actor is None or actor.id is None:
            raise AttributionError(f"Cannot attribute '{log_type}': no actor")

        return self.store.insert(
            AuditEntry(log_type=log_type, old_value=old_value, new_value=new_value, user_id=actor.id)
        )

    def record_best_effort(self, log_type: str, old_value: str, new_value: str, request: Request) -> bool:
        """record(), but a failure is logged and returned as False unless strict."""
        try:
            self.record(log_type, old_value, new_value, request)
        except AttributionError as exc:
            logger.error("Audit entry not written (attribution): %s", exc.message)
            if self.strict:
                raise
            return False
        except StorageError as exc:
            logger.error("Audit entry '%s' not written (storage): %s", log_type, exc.message)
            if self.strict:
                raise
            return False
        return True
