"""
tests/conftest.py -- Shared test fixtures for ServPanel tests.

This module provides:
  - build_settings(): a Settings instance with a fixed test secret
  - FakeMailer: captures outgoing mail instead of sending it
  - memory_engine(): an isolated named shared-memory SQLite engine
  - api_env / api_env_factory: a TestClient over the real app with a patched
    lifespan that wires test stores into app.state

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker
thread. The named URI format (file:name?mode=memory&cache=shared&uri=true)
shares one in-memory instance across all connections in the same process.

The DEBUG env var must be set before any api/auth/core import so
get_settings() auto-generates SECRET_KEY in dev mode rather than raising.

The rate limiter is process-wide. It is disabled for API tests by default
(most tests log in more than three times); test_rate_limit.py turns it on.
"""

from __future__ import annotations

import os
import re
import uuid
from collections.abc import Callable, Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set DEBUG before any core/auth import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError.
os.environ.setdefault("DEBUG", "true")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.engine import Engine

from api.limiter import limiter
from api.main import app, init_app_state
from auth.models import User
from auth.passwords import new_credential
from core.config import Settings
from core.database import make_engine

TEST_SECRET = "servpanel-test-secret-0123456789abcdef"
SERVICE_TOKEN = "service-token-for-tests-only"


def build_settings(**overrides) -> Settings:
    values = {"debug": True, "secret_key": TEST_SECRET}
    values.update(overrides)
    return Settings(**values)


def memory_engine(prefix: str = "servpanel") -> Engine:
    """Return an engine on a fresh named shared-memory database."""
    name = f"{prefix}_{uuid.uuid4().hex}"
    return make_engine(f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true")


@dataclass
class SentMail:
    recipient: str
    subject: str
    html_body: str


class FakeMailer:
    """Records every message; optionally fails like an unreachable provider."""

    def __init__(self) -> None:
        self.sent: list[SentMail] = []
        self.error: Exception | None = None

    def send(self, recipient: str, subject: str, html_body: str) -> None:
        if self.error is not None:
            raise self.error
        self.sent.append(SentMail(recipient, subject, html_body))

    def last_token(self) -> str:
        """Extract the recovery token from the most recent message body."""
        match = re.search(r"<strong>([A-Za-z0-9_\-]+)</strong>", self.sent[-1].html_body)
        assert match, "recovery token not found in mail body"
        return match.group(1)


def add_user(store, username: str, password: str, email: str | None = None, rank: int = 0) -> User:
    """Enroll a user straight through the store (no audit entry)."""
    password_hash, salt = new_credential(password)
    user_id = store.create_user(
        User(
            username=username,
            email=email or f"{username}@example.com",
            rank=rank,
            password_hash=password_hash,
            salt=salt,
        )
    )
    return store.get_by_id(user_id)


@dataclass
class ApiEnv:
    client: TestClient
    settings: Settings
    mailer: FakeMailer
    users: dict[str, User] = field(default_factory=dict)

    @property
    def state(self):
        return app.state

    def add_user(self, username: str, password: str, email: str | None = None, rank: int = 0) -> User:
        user = add_user(app.state.user_store, username, password, email=email, rank=rank)
        self.users[username] = user
        return user

    def token_for(self, user: User) -> str:
        return app.state.token_service.issue(user.id)

    def auth(self, user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token_for(user)}"}


def _patch_lifespan(settings: Settings, engine: Engine, mailer: FakeMailer):
    """Return an async context manager that replaces the real lifespan.

    Wires the test engine, settings and mailer into app.state through the
    same init_app_state() the production lifespan uses.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        init_app_state(app, settings, engine, mailer=mailer)
        yield
        engine.dispose()

    return test_lifespan


@pytest.fixture
def api_env_factory() -> Generator[Callable[..., ApiEnv], None, None]:
    """Yield a factory building an ApiEnv; keyword arguments override Settings.

    Each call gets its own database: shared-memory unless an engine is
    passed (tests with concurrent writers pass a file-backed one). An "admin"
    user (rank 10) is enrolled before the client starts.
    """
    clients: list[TestClient] = []

    def _make(engine: Engine | None = None, **overrides) -> ApiEnv:
        settings = build_settings(**overrides)
        mailer = FakeMailer()
        app.router.lifespan_context = _patch_lifespan(settings, engine or memory_engine("api"), mailer)
        client = TestClient(app, raise_server_exceptions=True)
        client.__enter__()
        clients.append(client)
        env = ApiEnv(client=client, settings=settings, mailer=mailer)
        env.add_user("admin", "adminpass123", email="admin@example.com", rank=10)
        return env

    limiter.enabled = False
    limiter.reset()
    yield _make
    for client in clients:
        client.__exit__(None, None, None)
    limiter.enabled = True
    limiter.reset()


@pytest.fixture
def api_env(api_env_factory) -> ApiEnv:
    return api_env_factory()
