"""
core/database.py -- Engine factory and shared schema metadata.

Every table (auth/store.py users, audit/store.py logs) registers on the one
`metadata` object below so a single engine owns the whole schema and the
audit listing can join logs to users.

SQLite specifics live here and nowhere else:
  - check_same_thread=False because FastAPI runs sync handlers in a thread pool.
  - WAL journal mode, set per connection (PRAGMAs are not inherited by new
    pooled connections).

Layer rule: no imports from api/, auth/, or audit/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import MetaData, create_engine, event
from sqlalchemy.engine import Engine

metadata = MetaData()


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an Engine for db_url with the SQLite tweaks applied when relevant.

    Usage:
        engine = make_engine("sqlite:///servpanel.db")
        engine = make_engine("postgresql://user:pw@host/db")
    """
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite") and ":memory:" not in db_url and "mode=memory" not in db_url:
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
