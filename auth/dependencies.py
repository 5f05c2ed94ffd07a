"""
auth/dependencies.py -- The auth gate: FastAPI Depends() helpers.

The Authorization header is checked in this order:
  1. Empty                          -> AuthError("no token provided")
  2. Equal to the static service token (when configured)
                                    -> the fixed service pseudo-user
  3. Not exactly "Bearer <token>"   -> AuthError("invalid token format")
  4. Token fails verification, or its user no longer exists
                                    -> AuthError("invalid or expired token")

resolve_actor() is the plain function both the gate and the audit recorder
use, so an audit entry is attributed by exactly the rules that admitted the
request. get_current_user() is the FastAPI dependency: it stores the user on
request.state.user and lets AuthError propagate to the 401 handler in
api/main.py.

Collaborators are read from request.app.state:
  user_store       auth.store.UserStore
  token_service    auth.tokens.TokenService
  service_account  auth.models.ServiceAccount | None
"""

from __future__ import annotations

import hmac

from fastapi import Request

from auth.models import User
from auth.tokens import INVALID_TOKEN
from core.errors import AuthError

NO_TOKEN = "no token provided"
BAD_FORMAT = "invalid token format"


def resolve_actor(request: Request) -> User:
    """Return the user behind the request's Authorization header.

    Raises AuthError with one of the three gate reasons. StorageError from
    the user lookup is not converted; it is a server fault, not a bad token.
    """
    state = request.app.state
    header = request.headers.get("Authorization", "")
    if not header:
        raise AuthError(NO_TOKEN)

    service = getattr(state, "service_account", None)
    if service is not None and hmac.compare_digest(header.encode(), service.token.encode()):
        return service.user

    parts = header.split(" ")
    if len(parts) != 2 or parts[0] != "Bearer" or not parts[1]:
        raise AuthError(BAD_FORMAT)

    user_id = state.token_service.verify(parts[1])
    user = state.user_store.get_by_id(user_id)
    if user is None:
        raise AuthError(INVALID_TOKEN)
    return user


def get_current_user(request: Request) -> User:
    """Require authentication. AuthError becomes HTTP 401 in api/main.py.

    Use as a FastAPI dependency:
        router = APIRouter(dependencies=[Depends(get_current_user)])
        async def route(user: User = Depends(get_current_user)): ...
    """
    user = resolve_actor(request)
    request.state.user = user
    return user
