"""
api/routes/v1/users.py -- User enrollment and maintenance routes.

Routes:
  GET    /users             -- list users
  POST   /users             -- enroll a user (audited: create_user)
  GET    /users/{user_id}   -- user detail
  PUT    /users/{user_id}   -- update profile and optionally password (audited: update_user)
  DELETE /users/{user_id}   -- delete (audited: delete_user)

Audit contract for every mutation:
  create -> old ""              new snapshot(after)
  update -> old snapshot(before) new snapshot(after)
  delete -> old snapshot(before) new ""

The business write and the audit write are separate statements. If the
audit write fails the mutation stands; the response carries
X-Audit-Status: failed (or is a 500 when AUDIT_STRICT is on).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response

from api.models import UserCreate, UserResponse, UserUpdate
from audit.recorder import AuditRecorder, snapshot
from auth.dependencies import get_current_user
from auth.models import User
from auth.passwords import new_credential
from auth.store import UserStore
from core.errors import ConflictError, NotFoundError

# All user routes require authentication.
router = APIRouter(dependencies=[Depends(get_current_user)])

AUDIT_HEADER = "X-Audit-Status"


def _audit(request: Request, response: Response, log_type: str, old: User | None, new: User | None) -> None:
    recorder: AuditRecorder = request.app.state.audit_recorder
    if not recorder.record_best_effort(log_type, snapshot(old), snapshot(new), request):
        response.headers[AUDIT_HEADER] = "failed"


def _get_or_404(store: UserStore, user_id: int) -> User:
    user = store.get_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found.")
    return user


@router.get("/users", response_model=list[UserResponse])
def list_users(request: Request) -> list[UserResponse]:
    user_store: UserStore = request.app.state.user_store
    return [UserResponse.from_user(u) for u in user_store.list_users()]


@router.post("/users", response_model=UserResponse, status_code=201)
def create_user(request: Request, response: Response, body: UserCreate) -> UserResponse:
    """Enroll a new user with a freshly salted credential."""
    user_store: UserStore = request.app.state.user_store
    if user_store.username_exists(body.username):
        raise ConflictError("A user with that username already exists.")

    password_hash, salt = new_credential(body.password)
    user_id = user_store.create_user(
        User(
            username=body.username,
            email=body.email,
            name=body.name,
            rank=body.rank,
            password_hash=password_hash,
            salt=salt,
        )
    )
    created = _get_or_404(user_store, user_id)
    _audit(request, response, "create_user", None, created)
    return UserResponse.from_user(created)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user(request: Request, user_id: int) -> UserResponse:
    user_store: UserStore = request.app.state.user_store
    return UserResponse.from_user(_get_or_404(user_store, user_id))


@router.put("/users/{user_id}", response_model=UserResponse)
def update_user(request: Request, response: Response, user_id: int, body: UserUpdate) -> UserResponse:
    """Update profile fields; a password in the body re-salts the credential."""
    user_store: UserStore = request.app.state.user_store
    old = _get_or_404(user_store, user_id)

    fields = body.model_dump(exclude_none=True, exclude={"password"})
    if "username" in fields and user_store.username_exists(fields["username"], exclude_id=user_id):
        raise ConflictError("A user with that username already exists.")
    user_store.update_profile(user_id, **fields)
    if body.password:
        password_hash, salt = new_credential(body.password)
        user_store.update_password(user_id, password_hash, salt)

    updated = _get_or_404(user_store, user_id)
    _audit(request, response, "update_user", old, updated)
    return UserResponse.from_user(updated)


@router.delete("/users/{user_id}", status_code=204)
def delete_user(request: Request, user_id: int) -> Response:
    user_store: UserStore = request.app.state.user_store
    old = _get_or_404(user_store, user_id)
    user_store.delete_user(user_id)

    response = Response(status_code=204)
    _audit(request, response, "delete_user", old, None)
    return response
