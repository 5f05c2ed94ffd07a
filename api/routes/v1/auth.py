"""
api/routes/v1/auth.py -- Login and password-recovery REST endpoints.

Routes:
  POST /login              -- username/password -> bearer token
  POST /request-recovery   -- mail a recovery token to a registered e-mail
  POST /change-password    -- consume a recovery token, set a new password
  GET  /me                 -- current user info (requires auth)

Security:
  POST /login and POST /request-recovery are rate-limited per client address.
  authenticate_user() provides timing equalization -- use it, never inline.
  Unknown username and wrong password return the same 401 bad_credentials.
  Cache-Control: no-store on every response that carries or consumes a secret.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.limiter import limiter, login_limit, recovery_limit
from api.models import LoginRequest, LoginResponse, MeResponse, MessageResponse, PasswordChangeRequest, RecoveryRequest
from auth.dependencies import get_current_user
from auth.models import User
from auth.recovery import RecoveryService
from auth.store import UserStore
from auth.tokens import TokenService, authenticate_user

logger = logging.getLogger("servpanel.api")

# Auth policy:
# - POST /login:            public -- login endpoint must be unauthenticated
# - POST /request-recovery: public -- the user has no password by definition
# - POST /change-password:  public -- the recovery token is the credential
# - GET  /me:               requires auth (get_current_user)
router = APIRouter()


# ---------------------------------------------------------------------------
# Public endpoints
# ---------------------------------------------------------------------------


@router.post("/login", response_model=LoginResponse)
@limiter.limit(login_limit)  # below @router so the router registers the limited wrapper
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with username and password; return a 24h bearer token."""
    user_store: UserStore = request.app.state.user_store
    token_service: TokenService = request.app.state.token_service

    user = authenticate_user(user_store, body.username, body.password)
    if user is None:
        logger.info("Failed login for username %r", body.username)
        resp = JSONResponse(
            status_code=401,
            content={"error": {"code": "bad_credentials", "message": "Invalid credentials."}},
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    token = token_service.issue(user.id)
    resp = JSONResponse(
        status_code=200,
        content=LoginResponse(access_token=token, expires_in=token_service.expire_seconds).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.post("/request-recovery", response_model=MessageResponse)
@limiter.limit(recovery_limit)
def request_recovery(request: Request, body: RecoveryRequest) -> MessageResponse:
    """Mail a recovery token to the account registered with body.email.

    Unknown addresses are a 404 (NotFoundError handler in api/main.py).
    The token is never included in the response.
    """
    recovery: RecoveryService = request.app.state.recovery_service
    recovery.request_recovery(body.email)
    return MessageResponse(message="Recovery instructions sent.")


@router.post("/change-password", response_model=MessageResponse)
def change_password(request: Request, body: PasswordChangeRequest) -> JSONResponse:
    """Reset a password with a recovery token.

    ExpiredError (past the 24h window) and InvalidTokenError (unknown, empty
    or already used) both surface as 400 through api/main.py.
    """
    recovery: RecoveryService = request.app.state.recovery_service
    recovery.reset_password(body.token, body.new_password)
    resp = JSONResponse(content=MessageResponse(message="Password updated.").model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Authenticated endpoints
# ---------------------------------------------------------------------------


@router.get("/me", response_model=MeResponse)
async def me(current_user: User = Depends(get_current_user)) -> MeResponse:
    """Return identity information for the currently authenticated user."""
    return MeResponse(
        user_id=current_user.id,
        username=current_user.username,
        email=current_user.email,
        rank=current_user.rank,
    )
