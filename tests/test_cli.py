"""
tests/test_cli.py -- Tests for the offline admin CLI in main.py.

Each test points the CLI at a throwaway SQLite file via --database-url, so
the settings singleton (and SECRET_KEY) is never consulted.
"""

from __future__ import annotations

import pytest

from auth.store import UserStore
from auth.tokens import authenticate_user
from core.database import make_engine
from main import main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _store(db_url: str) -> UserStore:
    return UserStore(make_engine(db_url))


def test_create_user(db_url, capsys):
    code = main(["--database-url", db_url, "create-user", "alice", "--email", "alice@example.com", "--password", "Secret123!", "--rank", "10"])
    assert code == 0
    assert "Created user 'alice'" in capsys.readouterr().out

    store = _store(db_url)
    user = authenticate_user(store, "alice", "Secret123!")
    assert user is not None
    assert user.rank == 10
    store.close()


def test_create_duplicate_fails(db_url):
    args = ["--database-url", db_url, "create-user", "alice", "--email", "a@example.com", "--password", "Secret123!"]
    assert main(args) == 0
    assert main(args) == 1


def test_short_password_rejected(db_url, capsys):
    code = main(["--database-url", db_url, "create-user", "bob", "--email", "b@example.com", "--password", "short"])
    assert code == 1
    assert "at least 8" in capsys.readouterr().out


def test_set_password(db_url):
    main(["--database-url", db_url, "create-user", "alice", "--email", "a@example.com", "--password", "Secret123!"])
    assert main(["--database-url", db_url, "set-password", "alice", "--password", "NewSecret456!"]) == 0

    store = _store(db_url)
    assert authenticate_user(store, "alice", "Secret123!") is None
    assert authenticate_user(store, "alice", "NewSecret456!") is not None
    store.close()


def test_set_password_unknown_user(db_url):
    assert main(["--database-url", db_url, "set-password", "ghost", "--password", "NewSecret456!"]) == 1


def test_prompted_password_mismatch(db_url, monkeypatch):
    answers = iter(["Secret123!", "Different1!"])
    monkeypatch.setattr("getpass.getpass", lambda prompt="": next(answers))
    assert main(["--database-url", db_url, "create-user", "carol", "--email", "c@example.com"]) == 1
