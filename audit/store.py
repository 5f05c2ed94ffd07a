"""
audit/store.py -- SQLAlchemy Core persistence for the audit log.

Append-only by construction: AuditStore has insert() and read methods and
nothing else. There is no code path that updates or deletes a log row.

Listing joins users (LEFT OUTER) for the actor's username. The join is outer
so entries written by the service pseudo-user, or by users deleted since,
are still listed.

Ordering comes from a query parameter, so it is parsed against a fixed
vocabulary (parse_order) and mapped to Column objects. Raw input never
reaches SQL text.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Column, Index, Integer, String, Table, Text, func, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from audit.models import AuditEntry
from auth.store import users
from core.database import metadata, now_iso
from core.errors import StorageError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

logs = Table(
    "logs",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("type", String(80), nullable=False),
    Column("old_value", Text, nullable=False, server_default=""),
    Column("new_value", Text, nullable=False, server_default=""),
    Column("user_id", Integer, nullable=False),
    Column("created_at", String(32), nullable=False),
    Index("ix_logs_created_at", "created_at"),
    Index("ix_logs_user_id", "user_id"),
)

_ORDER_COLUMNS = {
    "created_at": logs.c.created_at,
    "id": logs.c.id,
    "type": logs.c.type,
    "user_id": logs.c.user_id,
}

DEFAULT_ORDER = "created_at desc"
MAX_LIMIT = 500


def parse_order(order: str | None) -> tuple[str, str]:
    """Parse an order expression like "created_at desc" or "logs.id ASC".

    Returns (column, direction). Raises ValueError for anything outside the
    vocabulary in _ORDER_COLUMNS.
    """
    expr = (order or DEFAULT_ORDER).strip().lower()
    parts = expr.split()
    if not parts or len(parts) > 2:
        raise ValueError(f"Unsupported order expression: {order!r}")
    column = parts[0].removeprefix("logs.")
    direction = parts[1] if len(parts) == 2 else "asc"
    if column not in _ORDER_COLUMNS or direction not in ("asc", "desc"):
        raise ValueError(f"Unsupported order expression: {order!r}")
    return column, direction


class AuditStore:
    """Repository for AuditEntry rows.

    Usage:
        store = AuditStore(engine)
        entry_id = store.insert(AuditEntry("create_user", "", '{"id": 3}', user_id=1))
        recent = store.list_entries(limit=20)
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine, tables=[users, logs])

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    def insert(self, entry: AuditEntry) -> int:
        """Write one entry and return its id. created_at is always the store's clock."""
        with self._connect() as conn:
            result = conn.execute(
                logs.insert().values(
                    type=entry.log_type,
                    old_value=entry.old_value,
                    new_value=entry.new_value,
                    user_id=entry.user_id,
                    created_at=now_iso(),
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def get(self, entry_id: int) -> AuditEntry | None:
        with self._connect() as conn:
            row = conn.execute(_joined_select().where(logs.c.id == entry_id)).fetchone()
        return _row_to_entry(row) if row is not None else None

    def list_entries(self, order: str | None = None, limit: int | None = None, offset: int = 0) -> list[AuditEntry]:
        """Return entries in the requested order, newest first by default.

        limit is capped at MAX_LIMIT; None means MAX_LIMIT.
        """
        column, direction = parse_order(order)
        col = _ORDER_COLUMNS[column]
        tiebreak = logs.c.id.desc() if direction == "desc" else logs.c.id.asc()
        query = (
            _joined_select()
            .order_by(col.desc() if direction == "desc" else col.asc(), tiebreak)
            .limit(min(limit if limit is not None else MAX_LIMIT, MAX_LIMIT))
            .offset(max(offset, 0))
        )
        with self._connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_entry(r) for r in rows]

    def count(self, log_type: str | None = None) -> int:
        query = select(func.count()).select_from(logs)
        if log_type is not None:
            query = query.where(logs.c.type == log_type)
        with self._connect() as conn:
            return conn.execute(query).scalar() or 0


def _joined_select():
    return select(logs, users.c.username).select_from(logs.outerjoin(users, logs.c.user_id == users.c.id))


def _row_to_entry(row) -> AuditEntry:
    return AuditEntry(
        id=row.id,
        log_type=row.type,
        old_value=row.old_value or "",
        new_value=row.new_value or "",
        user_id=row.user_id,
        created_at=row.created_at,
        username=row.username,
    )
