"""
api/routes/v1/logs.py -- Read-only audit log listing.

  GET /logs?order=created_at desc&limit=50&offset=0

order accepts created_at, id, type or user_id, optionally followed by asc or
desc (a "logs." prefix is tolerated). Anything else is a 400. Timestamps are
stored in UTC and shifted by LOG_TIMEZONE_OFFSET_HOURS for display.

There is deliberately no write route here: entries are only created by
audit.recorder as a side effect of mutations.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from api.models import AuditEntryResponse
from audit.store import MAX_LIMIT, AuditStore
from auth.dependencies import get_current_user

router = APIRouter(dependencies=[Depends(get_current_user)])


def shift_timestamp(created_at: str, offset_hours: int) -> str:
    """Return created_at (ISO 8601, naive means UTC) expressed at a fixed UTC offset."""
    stamp = datetime.fromisoformat(created_at)
    if stamp.tzinfo is None:
        stamp = stamp.replace(tzinfo=timezone.utc)
    return stamp.astimezone(timezone(timedelta(hours=offset_hours))).isoformat()


@router.get("/logs", response_model=list[AuditEntryResponse])
def list_logs(
    request: Request,
    order: Optional[str] = Query(default=None, max_length=40),
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_LIMIT),
    offset: int = Query(default=0, ge=0),
) -> list[AuditEntryResponse]:
    """Return audit entries, newest first unless order says otherwise."""
    audit_store: AuditStore = request.app.state.audit_store
    try:
        entries = audit_store.list_entries(order=order, limit=limit, offset=offset)
    except ValueError as exc:
        raise HTTPException(
            status_code=400,
            detail={"code": "bad_order", "message": str(exc)},
        ) from exc

    offset_hours = request.app.state.settings.log_timezone_offset_hours
    return [AuditEntryResponse.from_entry(e, shift_timestamp(e.created_at, offset_hours)) for e in entries]
