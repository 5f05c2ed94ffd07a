"""
audit/models.py -- Domain dataclass for audit log entries.

Entries are immutable once written: the store exposes insert and read
methods only, and the dataclass is frozen so code holding one cannot
"correct" it in place.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class AuditEntry:
    """One recorded state change.

    log_type   -- operation tag, e.g. "create_user", "update_client"
    old_value  -- caller-serialized snapshot before the change ("" for creates)
    new_value  -- caller-serialized snapshot after the change ("" for deletes)
    user_id    -- the resolved actor; never empty
    username   -- filled in by listing queries (join), None on insert
    """

    log_type: str
    old_value: str
    new_value: str
    user_id: int
    id: int | None = None
    created_at: str | None = None  # ISO 8601 UTC, set by store on insert
    username: str | None = None
