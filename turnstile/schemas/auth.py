"""Request/response schemas for auth endpoints."""

from datetime import datetime
from urllib.parse import unquote, urlsplit

from pydantic import BaseModel, Field, field_validator

from turnstile.core.security import PASSWORD_MAX_LEN, PASSWORD_MIN_LEN


def is_local_path(value: str) -> bool:
    """True for a same-origin absolute path such as /reports/7?tab=1."""
    # Browsers read "\" as "/", so "/\host" and "/%5Chost" are network-path references.
    decoded = unquote(value)
    if "\\" in decoded or any(ord(c) < 0x20 for c in decoded):
        return False
    if not value.startswith("/") or value.startswith("//"):
        return False
    parts = urlsplit(value)
    return not parts.scheme and not parts.netloc


class LoginRequest(BaseModel):
    """Credentials for login, plus the optional path to return to afterwards."""

    # No length limits: empty or over-long values must fail like any other bad credential, not as a 422.
    username: str = Field(default="", description="Username")
    password: str = Field(default="", description="Password")
    rp: str | None = Field(default=None, description="Path to redirect to after login")

    @field_validator("rp")
    @classmethod
    def validate_rp(cls, v: str | None) -> str | None:
        # Only local paths; anything else falls back to the default route.
        if v is None or not is_local_path(v):
            return None
        return v


class IdentityResponse(BaseModel):
    """Authenticated user as returned to the client (no secrets)."""

    id: int
    username: str
    email: str
    status: str
    last_login: datetime | None = None
    login_count: int
    roles: list[str]

    class Config:
        from_attributes = True


class LoginResponse(BaseModel):
    """Successful login: who logged in and where the client should go next."""

    user: IdentityResponse
    redirect_to: str = Field(..., description="Requested return path or the default route")
    expires: datetime = Field(..., description="Session expiry (UTC)")


class PasswordResetRequest(BaseModel):
    """Start a password reset for an email address or username."""

    identifier: str = Field(..., min_length=1, max_length=255, description="Email or username")


class PasswordResetRequestedResponse(BaseModel):
    """Same response whether or not an account matched."""

    message: str
    reset_token: str | None = Field(
        default=None,
        description="Only populated when RESET_TOKEN_IN_RESPONSE is enabled (development)",
    )


class PasswordResetConfirm(BaseModel):
    """Redeem a reset token with a new password."""

    token: str = Field(..., min_length=1, max_length=255, description="Reset token")
    new_password: str = Field(
        ...,
        min_length=PASSWORD_MIN_LEN,
        max_length=PASSWORD_MAX_LEN,
        description="New password",
    )


class MessageResponse(BaseModel):
    message: str


class SessionItem(BaseModel):
    """A live session of the current user; `current` marks the one making the request."""

    expires: datetime
    current: bool


class SessionsListResponse(BaseModel):
    sessions: list[SessionItem]
