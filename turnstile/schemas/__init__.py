"""Pydantic request/response schemas and internal records."""

from turnstile.schemas.auth import (
    IdentityResponse,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    PasswordResetConfirm,
    PasswordResetRequest,
    PasswordResetRequestedResponse,
    SessionItem,
    SessionsListResponse,
)
from turnstile.schemas.health import HealthResponse
from turnstile.schemas.users import (
    Identity,
    RoleRecord,
    SessionRecord,
    SessionState,
    UserRecord,
)

__all__ = [
    "HealthResponse",
    "Identity",
    "IdentityResponse",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "PasswordResetConfirm",
    "PasswordResetRequest",
    "PasswordResetRequestedResponse",
    "RoleRecord",
    "SessionItem",
    "SessionRecord",
    "SessionState",
    "SessionsListResponse",
    "UserRecord",
]
