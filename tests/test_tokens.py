"""
tests/test_tokens.py -- Unit tests for auth/tokens.py.

Covers:
  - issue/verify round trip and claim shape (user_id, iat, exp = iat + 24h)
  - every verification failure collapses to one AuthError message
  - authenticate_user() for good, wrong and unknown credentials
  - recovery-token generation and HMAC hashing
"""

from __future__ import annotations

import base64
from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from auth.store import UserStore
from auth.tokens import INVALID_TOKEN, TokenService, authenticate_user, generate_recovery_token
from core.errors import AuthError
from conftest import TEST_SECRET, add_user, memory_engine


@pytest.fixture
def tokens() -> TokenService:
    return TokenService(TEST_SECRET)


class TestIssueVerify:
    def test_round_trip(self, tokens: TokenService) -> None:
        assert tokens.verify(tokens.issue(42)) == 42

    def test_expiry_is_24h_after_issue(self, tokens: TokenService) -> None:
        now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
        claims = jwt.get_unverified_claims(tokens.issue(7, now=now))
        assert claims["user_id"] == 7
        assert claims["exp"] - claims["iat"] == 24 * 3600
        assert claims["iat"] == int(now.timestamp())

    def test_uses_hs256(self, tokens: TokenService) -> None:
        assert jwt.get_unverified_header(tokens.issue(1))["alg"] == "HS256"

    def test_empty_secret_rejected(self) -> None:
        with pytest.raises(ValueError):
            TokenService("")


class TestVerifyFailures:
    """Every failure mode must surface with the same reason."""

    def _assert_rejected(self, tokens: TokenService, token: str) -> None:
        with pytest.raises(AuthError) as exc_info:
            tokens.verify(token)
        assert exc_info.value.message == INVALID_TOKEN

    def test_expired(self, tokens: TokenService) -> None:
        issued = datetime.now(timezone.utc) - timedelta(hours=25)
        self._assert_rejected(tokens, tokens.issue(1, now=issued))

    def test_wrong_secret(self, tokens: TokenService) -> None:
        other = TokenService("another-secret-0123456789abcdef0123")
        self._assert_rejected(tokens, other.issue(1))

    def test_tampered_payload(self, tokens: TokenService) -> None:
        header, payload, signature = tokens.issue(1).split(".")
        forged_payload = jwt.encode({"user_id": 2, "exp": 9999999999}, "x", algorithm="HS256").split(".")[1]
        self._assert_rejected(tokens, ".".join([header, forged_payload, signature]))

    def test_garbage(self, tokens: TokenService) -> None:
        self._assert_rejected(tokens, "not-a-jwt")

    def test_missing_user_id(self, tokens: TokenService) -> None:
        token = jwt.encode({"exp": 9999999999}, TEST_SECRET, algorithm="HS256")
        self._assert_rejected(tokens, token)

    def test_non_integer_user_id(self, tokens: TokenService) -> None:
        token = jwt.encode({"user_id": "1", "exp": 9999999999}, TEST_SECRET, algorithm="HS256")
        self._assert_rejected(tokens, token)

    def test_missing_exp(self, tokens: TokenService) -> None:
        token = jwt.encode({"user_id": 1}, TEST_SECRET, algorithm="HS256")
        self._assert_rejected(tokens, token)

    def test_alg_none_rejected(self, tokens: TokenService) -> None:
        _header, payload, _sig = tokens.issue(1).split(".")
        none_header = base64.urlsafe_b64encode(b'{"alg":"none","typ":"JWT"}').rstrip(b"=").decode()
        self._assert_rejected(tokens, f"{none_header}.{payload}.")


class TestAuthenticateUser:
    @pytest.fixture
    def store(self) -> UserStore:
        store = UserStore(memory_engine("tokens"))
        add_user(store, "alice", "Secret123!")
        yield store
        store.close()

    def test_correct_password(self, store: UserStore) -> None:
        user = authenticate_user(store, "alice", "Secret123!")
        assert user is not None
        assert user.username == "alice"

    def test_wrong_password(self, store: UserStore) -> None:
        assert authenticate_user(store, "alice", "Secret124!") is None

    def test_unknown_user(self, store: UserStore) -> None:
        assert authenticate_user(store, "mallory", "Secret123!") is None

    def test_username_is_case_sensitive(self, store: UserStore) -> None:
        assert authenticate_user(store, "Alice", "Secret123!") is None


class TestRecoveryTokens:
    def test_tokens_are_long_and_unique(self) -> None:
        batch = {generate_recovery_token() for _ in range(50)}
        assert len(batch) == 50
        assert all(len(t) >= 43 for t in batch)

    def test_hash_is_deterministic_and_secret_bound(self, tokens: TokenService) -> None:
        raw = generate_recovery_token()
        assert tokens.hash_recovery_token(raw) == tokens.hash_recovery_token(raw)
        assert tokens.hash_recovery_token(raw) != raw
        other = TokenService("another-secret-0123456789abcdef0123")
        assert other.hash_recovery_token(raw) != tokens.hash_recovery_token(raw)
