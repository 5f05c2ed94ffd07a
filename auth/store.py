"""
auth/store.py -- SQLAlchemy Core persistence layer for credential records.

Pattern: Repository + Data Mapper. UserStore is the repository; _row_to_user
is the mapper. Route, service and dependency code never touches SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

  get_by_recovery_hash() refuses empty input before querying, so a record
  with no pending recovery can never match a reset attempt.

Errors:
  Every SQLAlchemyError is re-raised as core.errors.StorageError. A unique
  username violation is re-raised as ConflictError; any other integrity
  failure (NOT NULL and the like) stays a StorageError.

The users table registers on core.database.metadata so the audit log listing
can join against it on the same engine.
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Column, Index, Integer, String, Table, Text, select
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from auth.models import User
from core.database import metadata, now_iso
from core.errors import ConflictError, StorageError

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

users = Table(
    "users",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("username", String(255), nullable=False, unique=True),
    Column("email", String(255), nullable=False),
    Column("name", String(255), nullable=False, server_default=""),
    Column("rank", Integer, nullable=False, server_default="0"),
    Column("password_hash", String(64), nullable=False),  # hex Argon2id output
    Column("salt", String(32), nullable=False),  # hex, 16 bytes
    Column("recovery_hash", String(64)),  # HMAC-SHA256 hex of the raw token
    Column("recovery_hash_time", String(32)),  # ISO 8601 issue instant
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
    Index("ix_users_email", "email"),
    Index("ix_users_recovery_hash", "recovery_hash"),
)

# Columns callers may change through update_profile(). Credential and
# recovery columns have dedicated methods.
_PROFILE_FIELDS = frozenset({"username", "email", "name", "rank"})


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User credential records.

    Usage:
        store = UserStore(make_engine("sqlite:///servpanel.db"))
        pw_hash, salt = new_credential("secret")
        user_id = store.create_user(User(username="alice", email="a@x.io", password_hash=pw_hash, salt=salt))
        user = store.get_by_username("alice")
    """

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        metadata.create_all(self.engine, tables=[users])

    @contextmanager
    def _connect(self) -> Iterator[Connection]:
        try:
            with self.engine.connect() as conn:
                yield conn
        except IntegrityError as exc:
            if _is_username_conflict(exc):
                raise ConflictError("A user with that username already exists.") from exc
            raise StorageError(str(exc)) from exc
        except SQLAlchemyError as exc:
            raise StorageError(str(exc)) from exc

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_by_id(self, user_id: int) -> User | None:
        with self._connect() as conn:
            row = conn.execute(users.select().where(users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_username(self, username: str) -> User | None:
        """Look up a user by exact username (case-sensitive)."""
        with self._connect() as conn:
            row = conn.execute(users.select().where(users.c.username == username)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_email(self, email: str) -> User | None:
        """Return the first user registered with email, or None."""
        with self._connect() as conn:
            row = conn.execute(users.select().where(users.c.email == email).order_by(users.c.id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def get_by_recovery_hash(self, recovery_hash: str) -> User | None:
        """Return the user holding this pending recovery hash.

        Empty input never reaches the database: records without a pending
        recovery store NULL, and "" must not be a usable key either.
        """
        if not recovery_hash:
            return None
        with self._connect() as conn:
            row = conn.execute(users.select().where(users.c.recovery_hash == recovery_hash)).fetchone()
        return _row_to_user(row) if row is not None else None

    def username_exists(self, username: str, exclude_id: int | None = None) -> bool:
        query = select(users.c.id).where(users.c.username == username)
        if exclude_id is not None:
            query = query.where(users.c.id != exclude_id)
        with self._connect() as conn:
            return conn.execute(query).first() is not None

    def list_users(self) -> list[User]:
        """Return all users ordered by id."""
        with self._connect() as conn:
            rows = conn.execute(users.select().order_by(users.c.id)).fetchall()
        return [_row_to_user(r) for r in rows]

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_user(self, user: User) -> int:
        """Insert a new user and return its assigned id.

        Raises ConflictError if the username is taken.
        """
        stamp = now_iso()
        with self._connect() as conn:
            result = conn.execute(
                users.insert().values(
                    username=user.username,
                    email=user.email,
                    name=user.name,
                    rank=user.rank,
                    password_hash=user.password_hash,
                    salt=user.salt,
                    created_at=stamp,
                    updated_at=stamp,
                )
            )
            conn.commit()
            return result.inserted_primary_key[0]

    def update_profile(self, user_id: int, **fields) -> bool:
        """Update username, email, name or rank. Returns False if user_id is unknown.

        Unknown field names raise ValueError rather than being ignored.
        """
        unknown = set(fields) - _PROFILE_FIELDS
        if unknown:
            raise ValueError(f"Unknown user fields: {unknown!r}")
        if not fields:
            return self.get_by_id(user_id) is not None
        with self._connect() as conn:
            result = conn.execute(users.update().where(users.c.id == user_id).values(updated_at=now_iso(), **fields))
            conn.commit()
        return result.rowcount > 0

    def update_password(self, user_id: int, password_hash: str, salt: str) -> bool:
        """Replace the credential and clear any pending recovery token."""
        with self._connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(
                    password_hash=password_hash,
                    salt=salt,
                    recovery_hash=None,
                    recovery_hash_time=None,
                    updated_at=now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def consume_recovery(self, user_id: int, recovery_hash: str, password_hash: str, salt: str) -> bool:
        """Replace the credential only while recovery_hash is still pending.

        The pending hash is part of the WHERE clause, so of two resets racing
        on one token only the first UPDATE matches. Returns False for the loser.
        """
        if not recovery_hash:
            return False
        with self._connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id, users.c.recovery_hash == recovery_hash)
                .values(
                    password_hash=password_hash,
                    salt=salt,
                    recovery_hash=None,
                    recovery_hash_time=None,
                    updated_at=now_iso(),
                )
            )
            conn.commit()
        return result.rowcount > 0

    def set_recovery(self, user_id: int, recovery_hash: str, issued_at: str) -> bool:
        """Store a pending recovery hash, replacing any earlier one."""
        with self._connect() as conn:
            result = conn.execute(
                users.update()
                .where(users.c.id == user_id)
                .values(recovery_hash=recovery_hash, recovery_hash_time=issued_at)
            )
            conn.commit()
        return result.rowcount > 0

    def delete_user(self, user_id: int) -> bool:
        """Permanently delete a user record. Returns True if a row was removed."""
        with self._connect() as conn:
            result = conn.execute(users.delete().where(users.c.id == user_id))
            conn.commit()
        return result.rowcount > 0

    def close(self) -> None:
        """Release pooled connections. Safe to call more than once."""
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mapper
# ---------------------------------------------------------------------------


def _is_username_conflict(exc: IntegrityError) -> bool:
    # SQLite: "UNIQUE constraint failed: users.username"
    # PostgreSQL: "duplicate key value violates unique constraint \"users_username_key\""
    message = str(exc.orig).lower()
    return "unique" in message and "username" in message


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        username=row.username,
        email=row.email,
        name=row.name or "",
        rank=row.rank,
        password_hash=row.password_hash,
        salt=row.salt,
        recovery_hash=row.recovery_hash,
        recovery_hash_time=row.recovery_hash_time,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
