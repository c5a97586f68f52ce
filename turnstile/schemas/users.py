"""Pydantic records exchanged between the core services and the stores."""

from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

UserStatus = Literal["active", "suspended"]

ACTIVE = "active"
SUSPENDED = "suspended"


def ensure_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes (some drivers drop tzinfo) as UTC; convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class UserRecord(BaseModel):
    """
    Full user row as seen by the core, password hash and reset token included.

    Never returned to API callers as-is.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    password_hash: str
    # Administrative states other than the two known ones are kept verbatim and treated as not active.
    status: str = ACTIVE
    must_reset_password: bool = False
    bad_login_attempts: int = Field(default=0, ge=0)
    last_login: datetime | None = None
    login_count: int = Field(default=0, ge=0)
    reset_password_token: str | None = None
    reset_password_token_expires: datetime | None = None
    version: int = 1

    @field_validator("last_login", "reset_password_token_expires")
    @classmethod
    def validate_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE


class RoleRecord(BaseModel):
    """A single role label assigned to a user."""

    model_config = ConfigDict(from_attributes=True)

    user_id: int
    role: str


class Identity(BaseModel):
    """Authenticated user plus resolved role labels (no secrets)."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    status: str
    must_reset_password: bool = False
    last_login: datetime | None = None
    login_count: int = 0
    roles: list[str] = Field(default_factory=list)

    @field_validator("last_login")
    @classmethod
    def validate_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v)

    @classmethod
    def from_user(cls, user: UserRecord, roles: list[str]) -> "Identity":
        """Build an identity from a user record; roles are de-duplicated and sorted."""
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            status=user.status,
            must_reset_password=user.must_reset_password,
            last_login=user.last_login,
            login_count=user.login_count,
            roles=sorted(set(roles)),
        )


class SessionRecord(BaseModel):
    """Persisted session: opaque id, owning user id, expiry and identity snapshot."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: int
    expires: datetime
    data: dict[str, Any] | None = None

    @field_validator("expires")
    @classmethod
    def validate_utc(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class SessionState(BaseModel):
    """Session as seen by the route guard: the record plus its decoded identity (if any)."""

    id: str
    user_id: int
    expires: datetime
    identity: Identity | None = None

    @classmethod
    def from_record(cls, record: SessionRecord) -> "SessionState":
        identity = None
        if record.data and record.data.get("identity"):
            identity = Identity.model_validate(record.data["identity"])
        return cls(
            id=record.id,
            user_id=record.user_id,
            expires=record.expires,
            identity=identity,
        )
