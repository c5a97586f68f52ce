"""Password reset: issue single-use, time-boxed tokens and redeem them exactly once."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from turnstile.core.config import AuthOptions
from turnstile.core.locks import KeyedLock
from turnstile.core.security import PasswordHasher, generate_token
from turnstile.schemas.users import UserRecord
from turnstile.services.errors import (
    EXPIRED_RESET_TOKEN,
    INVALID_RESET_TOKEN,
    STORE_ERROR,
    USER_NOT_FOUND,
    AuthError,
    StoreError,
)
from turnstile.services.stores import CredentialStore, mutate_user


def _utcnow() -> datetime:
    return datetime.now(UTC)


def is_token_expired(user: UserRecord, now: datetime) -> bool:
    """A token is valid strictly before its expiry; a missing expiry counts as expired."""
    expires = user.reset_password_token_expires
    return expires is None or now >= expires


class PasswordResetService:
    """
    Two independent operations correlated only by the token value.

    generate_reset_password_token stores a fresh token on the user (replacing
    any previous one) and returns the record so the caller can deliver it
    out of band. reset_password redeems it: new hash, token cleared, counters
    reset, all in a single store write.
    """

    def __init__(
        self,
        users: CredentialStore,
        hasher: PasswordHasher,
        options: AuthOptions,
        locks: KeyedLock,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = _utcnow,
        token_factory: Callable[[], str] = generate_token,
    ) -> None:
        self.users = users
        self.hasher = hasher
        self.options = options
        self.locks = locks
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.token_factory = token_factory

    def generate_reset_password_token(self, identifier: str | None) -> UserRecord:
        """
        Issue a reset token for the user matching identifier (email first, then username).

        Raises AuthError(user_not_found) when neither matches. Callers should not
        reveal that outcome to the requester.
        """
        user = self._find_for_reset(identifier)
        if user is None:
            self.logger.debug("Requested user was not found.")
            raise AuthError(USER_NOT_FOUND)

        token = self.token_factory()
        expires = self.clock() + self.options.reset_token_ttl

        def issue(current: UserRecord) -> UserRecord:
            return current.model_copy(
                update={
                    "reset_password_token": token,
                    "reset_password_token_expires": expires,
                }
            )

        try:
            updated = mutate_user(self.users, self.locks, user.id, issue)
        except StoreError as e:
            self.logger.error("Unable to store reset token for user %s: %s", user.id, e.message)
            raise AuthError(STORE_ERROR, reason="update_failed") from e
        if updated is None:
            raise AuthError(USER_NOT_FOUND)
        self.logger.info(
            "Password reset token issued for user %s, expires at %s.",
            updated.id,
            expires.isoformat(),
        )
        return updated

    def _find_for_reset(self, identifier: str | None) -> UserRecord | None:
        if not identifier:
            return None
        try:
            user = self.users.find_one(email=identifier)
            if user is None:
                user = self.users.find_one(username=identifier)
        except StoreError as e:
            self.logger.error("Password reset lookup failed: %s", e.message)
            raise AuthError(STORE_ERROR, reason="lookup_failed") from e
        return user

    def reset_password(self, token: str | None, new_plain_password: str) -> UserRecord:
        """
        Redeem token and set a new password; return the updated user.

        An expired token is left on the record untouched. A redeemed token is
        cleared, so any replay fails with invalid_reset_token.
        """
        self.logger.debug("Resetting password...")
        user = self._find_by_token(token)
        if user is None:
            raise AuthError(INVALID_RESET_TOKEN)
        if is_token_expired(user, self.clock()):
            self.logger.info("Expired reset token presented for user %s.", user.id)
            raise AuthError(EXPIRED_RESET_TOKEN)

        self.logger.debug("Hashing password.")
        try:
            new_hash = self.hasher.hash(new_plain_password, self.options.cost_factor)
        except Exception as e:
            self.logger.exception("Password hashing failed for user %s", user.id)
            raise AuthError(STORE_ERROR, reason="hasher_failed") from e

        def redeem(current: UserRecord) -> UserRecord:
            # Another request may have redeemed or replaced the token meanwhile.
            if current.reset_password_token != token:
                raise AuthError(INVALID_RESET_TOKEN, reason="token_replaced")
            if is_token_expired(current, self.clock()):
                raise AuthError(EXPIRED_RESET_TOKEN)
            return current.model_copy(
                update={
                    "password_hash": new_hash,
                    "must_reset_password": False,
                    "reset_password_token": None,
                    "reset_password_token_expires": None,
                    "bad_login_attempts": 0,
                }
            )

        self.logger.debug("Updating user.")
        try:
            updated = mutate_user(self.users, self.locks, user.id, redeem)
        except StoreError as e:
            self.logger.error("Unable to complete password reset for user %s: %s", user.id, e.message)
            raise AuthError(STORE_ERROR, reason="update_failed") from e
        if updated is None:
            raise AuthError(INVALID_RESET_TOKEN, reason="user_gone")
        self.logger.info("Password reset complete for user %s.", updated.id)
        return updated

    def _find_by_token(self, token: str | None) -> UserRecord | None:
        if not token:
            return None
        try:
            return self.users.find_one(reset_password_token=token)
        except StoreError as e:
            self.logger.error("Reset token lookup failed: %s", e.message)
            raise AuthError(STORE_ERROR, reason="lookup_failed") from e
