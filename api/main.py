"""
api/main.py -- FastAPI application entry point for ServPanel.

Run with:      uvicorn api.main:app --reload

Middleware stack (outermost to innermost):
  1. log_requests        -- one log line per request with latency
  2. security_headers    -- CSP, frame, sniffing and HSTS headers on every response
  3. CORSMiddleware      -- adds CORS headers for allowed browser origins
  4. SlowAPIMiddleware   -- lets api.limiter enforce per-route limits

Lifespan builds every collaborator once (engine, stores, token service,
mailer, recovery service, audit recorder) and hangs it on app.state. Route
handlers and the auth gate read them from there; nothing is a module-level
singleton except the settings and the rate limiter.

Error mapping: core/errors.py failures are translated to HTTP here and only
here, always into the same {"error": {...}} envelope.
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy.engine import Engine
from starlette.exceptions import HTTPException

from api.limiter import limiter
from api.models import ErrorDetail, ErrorResponse, HealthResponse
from api.routes.v1.auth import router as auth_router
from api.routes.v1.logs import router as logs_router
from api.routes.v1.users import router as users_router
from audit.recorder import AuditRecorder
from audit.store import AuditStore
from auth.models import ServiceAccount, User
from auth.recovery import Mailer, RecoveryService
from auth.store import UserStore
from auth.tokens import TokenService
from core.config import Settings, get_settings
from core.database import make_engine
from core.errors import (
    AttributionError,
    AuthError,
    ConflictError,
    ExpiredError,
    InvalidTokenError,
    MailDeliveryError,
    NotFoundError,
    ServPanelError,
    StorageError,
)
from core.mailer import build_mailer

VERSION = "0.1.0"

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("servpanel.api")

# ---------------------------------------------------------------------------
# Wiring
# ---------------------------------------------------------------------------


def build_service_account(settings: Settings) -> ServiceAccount | None:
    """Return the static service account, or None when SERVICE_TOKEN is empty."""
    if not settings.service_token:
        return None
    return ServiceAccount(
        token=settings.service_token,
        user=User(
            id=settings.service_user_id,
            username=settings.service_username,
            email=settings.service_email,
        ),
    )


def init_app_state(app: FastAPI, settings: Settings, engine: Engine, mailer: Mailer | None = None) -> None:
    """Build every request-time collaborator and attach it to app.state.

    Shared by the real lifespan and the test fixtures, which pass their own
    engine and a capturing mailer.
    """
    user_store = UserStore(engine)
    token_service = TokenService(settings.secret_key, settings.token_expire_seconds)

    app.state.settings = settings
    app.state.user_store = user_store
    app.state.audit_store = AuditStore(engine)
    app.state.token_service = token_service
    app.state.service_account = build_service_account(settings)
    app.state.mailer = mailer or build_mailer(settings)
    app.state.recovery_service = RecoveryService(
        user_store,
        token_service,
        app.state.mailer,
        window_seconds=settings.recovery_window_seconds,
        recovery_url=settings.recovery_url,
    )
    app.state.audit_recorder = AuditRecorder(app.state.audit_store, strict=settings.audit_strict)

    if app.state.service_account is not None:
        logger.warning(
            "SERVICE_TOKEN is set: requests presenting it act as user %d (%s)",
            settings.service_user_id,
            settings.service_username,
        )


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build collaborators on startup; release the connection pool on shutdown."""
    settings = get_settings()
    logging.getLogger("servpanel").setLevel(settings.log_level.upper())
    logger.info("ServPanel API starting up")

    init_app_state(app, settings, make_engine(settings.database_url))
    logger.info("Stores initialized (%d users)", len(app.state.user_store.list_users()))

    yield

    app.state.user_store.close()
    logger.info("ServPanel API shutdown complete")


# ---------------------------------------------------------------------------
# App instantiation
# ---------------------------------------------------------------------------

app = FastAPI(
    title="ServPanel API",
    description="Authentication, password recovery and audit logging for the ServPanel back office.",
    version=VERSION,
    lifespan=lifespan,
)

# ---------------------------------------------------------------------------
# Middleware stack
#
# add_middleware() wraps the current stack, so the last one added is the
# outermost. @app.middleware("http") functions below are added after these
# and therefore run first on the way in.
# ---------------------------------------------------------------------------

app.add_middleware(SlowAPIMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost", "http://localhost:3000", "http://127.0.0.1"],
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Accept", "Content-Type", "Authorization", "X-CSRF-Token"],
    expose_headers=["X-Audit-Status", "Retry-After"],
    max_age=3600,
)

# SlowAPI looks for app.state.limiter by convention.
app.state.limiter = limiter

_SECURITY_HEADERS = {
    "Content-Security-Policy": "default-src 'self'",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Strict-Transport-Security": "max-age=63072000; includeSubDomains",
    "X-XSS-Protection": "1; mode=block",
}


@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    for name, value in _SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    start = time.perf_counter()
    response = await call_next(request)
    ms = (time.perf_counter() - start) * 1000
    logger.info(
        "%s %s %d %.1fms %s",
        request.method,
        request.url.path,
        response.status_code,
        ms,
        request.client.host if request.client else "unknown",
    )
    return response


# ---------------------------------------------------------------------------
# Router registration
#
# Paths are unprefixed: /login, /request-recovery, /change-password, /me,
# /users, /logs. Gated routers carry get_current_user as a router dependency.
# ---------------------------------------------------------------------------

app.include_router(auth_router, tags=["Auth"])
app.include_router(users_router, tags=["Users"])
app.include_router(logs_router, tags=["Audit Log"])


# ---------------------------------------------------------------------------
# Exception handlers
#
# All handlers return the same ErrorResponse envelope so API clients can parse
# errors uniformly without inspecting status codes to choose a schema.
# ---------------------------------------------------------------------------

# Most specific class first; lookup walks this in order.
_ERROR_STATUS: list[tuple[type[ServPanelError], int, str]] = [
    (AuthError, 401, "unauthorized"),
    (NotFoundError, 404, "not_found"),
    (ExpiredError, 400, "token_expired"),
    (InvalidTokenError, 400, "invalid_token"),
    (ConflictError, 409, "conflict"),
    (MailDeliveryError, 502, "mail_delivery_failed"),
    (AttributionError, 500, "audit_failed"),
    (StorageError, 500, "storage_error"),
]


def _error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )


@app.exception_handler(ServPanelError)
async def domain_error_handler(request: Request, exc: ServPanelError) -> JSONResponse:
    """Translate a core failure into its HTTP status.

    5xx bodies are opaque: storage and audit failures can carry SQL text or
    internal identifiers, so the detail goes to the log and not the client.
    """
    status_code, code = 500, "internal_error"
    for cls, mapped_status, mapped_code in _ERROR_STATUS:
        if isinstance(exc, cls):
            status_code, code = mapped_status, mapped_code
            break

    if status_code >= 500:
        logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return _error_response(status_code, code, "An unexpected error occurred.")

    response = _error_response(status_code, code, exc.message or code)
    if status_code == 401:
        response.headers["WWW-Authenticate"] = "Bearer"
    return response


@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return 429 with a structured error when a rate limit is exceeded.

    Retry-After is the length of the limit's window in seconds.
    """
    retry_after = exc.limit.limit.get_expiry() if exc.limit is not None else 1
    response = _error_response(429, "rate_limited", "Too many requests.", detail=str(exc.detail))
    response.headers["Retry-After"] = str(retry_after)
    return response


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with structured error when request body or query params fail validation."""
    return _error_response(422, "validation_error", "Request validation failed.", detail=str(exc.errors()))


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Return a structured error for all FastAPI/Starlette HTTP exceptions.

    Route handlers raise HTTPException with a {"code", "message"} dict as
    detail. When detail is already a dict, use it directly as the error field
    rather than stringifying it.
    """
    if isinstance(exc.detail, dict):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail}, headers=exc.headers)
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(error=ErrorDetail(code=f"http_{exc.status_code}", message=str(exc.detail))).model_dump(),
        headers=exc.headers,
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all handler for unexpected server errors.

    The raw exception is written to the log only, never to the response body.
    """
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return _error_response(500, "internal_error", "An unexpected error occurred.")


# ---------------------------------------------------------------------------
# Health endpoint
#
# Defined directly in main.py (not in a router) so it is always reachable.
# No auth and no rate limit: monitoring must not be throttled.
# ---------------------------------------------------------------------------


@app.get("/health", tags=["Health"])
async def health() -> HealthResponse:
    """Return API liveness and current version."""
    return HealthResponse(version=VERSION)
