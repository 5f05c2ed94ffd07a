"""
tests/test_health.py -- Integration tests for GET /health and app-wide headers.

Covers:
  - 200 response with status and version
  - No authentication required
  - Security headers present on success and error responses
  - Unknown routes use the standard error envelope
"""

from __future__ import annotations

from api.main import VERSION


def test_health_returns_200_with_version(api_env):
    resp = api_env.client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "version": VERSION}


def test_health_no_auth_required(api_env):
    resp = api_env.client.get("/health", headers={})
    assert resp.status_code == 200


def test_security_headers_on_success(api_env):
    headers = api_env.client.get("/health").headers
    assert headers["Content-Security-Policy"] == "default-src 'self'"
    assert headers["X-Frame-Options"] == "DENY"
    assert headers["X-Content-Type-Options"] == "nosniff"
    assert headers["Strict-Transport-Security"].startswith("max-age=")
    assert headers["X-XSS-Protection"] == "1; mode=block"


def test_security_headers_on_error(api_env):
    resp = api_env.client.get("/me")
    assert resp.status_code == 401
    assert resp.headers["X-Frame-Options"] == "DENY"


def test_unknown_route_uses_error_envelope(api_env):
    resp = api_env.client.get("/no-such-route")
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "http_404"
