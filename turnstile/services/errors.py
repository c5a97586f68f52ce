"""Error kinds raised by the login, reset and store layers."""

from typing import Literal

AuthErrorKind = Literal[
    "invalid_credentials",
    "account_suspended",
    "password_reset_required",
    "user_not_found",
    "invalid_reset_token",
    "expired_reset_token",
    "store_error",
]

INVALID_CREDENTIALS: AuthErrorKind = "invalid_credentials"
ACCOUNT_SUSPENDED: AuthErrorKind = "account_suspended"
PASSWORD_RESET_REQUIRED: AuthErrorKind = "password_reset_required"
USER_NOT_FOUND: AuthErrorKind = "user_not_found"
INVALID_RESET_TOKEN: AuthErrorKind = "invalid_reset_token"
EXPIRED_RESET_TOKEN: AuthErrorKind = "expired_reset_token"
STORE_ERROR: AuthErrorKind = "store_error"

# Messages that are safe to show an end user for each kind.
# invalid_credentials covers both unknown users and wrong passwords.
CALLER_MESSAGES: dict[str, str] = {
    INVALID_CREDENTIALS: "Invalid credentials.",
    ACCOUNT_SUSPENDED: "Your account has been suspended. Please contact your administrator.",
    PASSWORD_RESET_REQUIRED: "Your password has expired and must be reset.",
    USER_NOT_FOUND: "Unable to reset password.",
    INVALID_RESET_TOKEN: "This password reset link is invalid.",
    EXPIRED_RESET_TOKEN: "This password reset link has expired.",
    STORE_ERROR: "The request could not be processed. Please try again later.",
}


class AuthError(Exception):
    """
    Failure of a core operation, tagged with a kind the caller can match on.

    message is always the caller-safe text for the kind. reason is an internal
    detail (e.g. unknown_user vs bad_password) for logs only; it must not be
    rendered to end users.
    """

    def __init__(self, kind: AuthErrorKind, reason: str | None = None) -> None:
        self.kind = kind
        self.message = CALLER_MESSAGES[kind]
        self.reason = reason
        super().__init__(self.message)

    def __repr__(self) -> str:
        return f"AuthError(kind={self.kind!r}, reason={self.reason!r})"


class StoreError(Exception):
    """Raised by store implementations when the persistence layer fails."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StaleRecordError(StoreError):
    """Raised when an update lost an optimistic version check to a concurrent writer."""
