"""
API request and response models for the ServPanel REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
audit/models.py, which own the internal domain representation. Route handlers
map between the two.

No response model has a password, hash, salt or recovery field.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from audit.models import AuditEntry
from auth.models import User

# ---------------------------------------------------------------------------
# Auth -- request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /login."""

    username: str = Field(min_length=1, max_length=255)
    password: str = Field(min_length=1, max_length=255)


class RecoveryRequest(BaseModel):
    """Request body for POST /request-recovery."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=3, max_length=255)


class PasswordChangeRequest(BaseModel):
    """Request body for POST /change-password.

    The wire name of the new password is camelCase (newPassword); the
    snake_case name is accepted too.
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(max_length=255)
    new_password: str = Field(alias="newPassword", min_length=8, max_length=255)


# ---------------------------------------------------------------------------
# Auth -- response models
# ---------------------------------------------------------------------------


class LoginResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class MeResponse(BaseModel):
    """Response for GET /me."""

    model_config = ConfigDict(frozen=True)

    user_id: int
    username: str
    email: str
    rank: int


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


class UserCreate(BaseModel):
    """Request body for POST /users."""

    model_config = ConfigDict(str_strip_whitespace=True)

    username: str = Field(min_length=1, max_length=255)
    email: str = Field(min_length=3, max_length=255)
    name: str = Field(default="", max_length=255)
    rank: int = Field(default=0, ge=0)
    password: str = Field(min_length=8, max_length=255)


class UserUpdate(BaseModel):
    """Request body for PUT /users/{id}. Omitted fields are left unchanged.

    A non-empty password re-salts and re-hashes the credential.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    username: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = Field(default=None, min_length=3, max_length=255)
    name: Optional[str] = Field(default=None, max_length=255)
    rank: Optional[int] = Field(default=None, ge=0)
    password: Optional[str] = Field(default=None, min_length=8, max_length=255)


class UserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    username: str
    email: str
    name: str
    rank: int
    recovery_pending: bool
    created_at: str
    updated_at: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            name=user.name,
            rank=user.rank,
            recovery_pending=bool(user.recovery_hash),
            created_at=user.created_at or "",
            updated_at=user.updated_at or "",
        )


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------


class AuditEntryResponse(BaseModel):
    """One row of GET /logs. created_at is already shifted to the display offset."""

    model_config = ConfigDict(frozen=True)

    id: int
    type: str
    old_value: str
    new_value: str
    user_id: int
    username: Optional[str] = None
    created_at: str

    @classmethod
    def from_entry(cls, entry: AuditEntry, created_at: str) -> "AuditEntryResponse":
        return cls(
            id=entry.id,
            type=entry.log_type,
            old_value=entry.old_value,
            new_value=entry.new_value,
            user_id=entry.user_id,
            username=entry.username,
            created_at=created_at,
        )


# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
