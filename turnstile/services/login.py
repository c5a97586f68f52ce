"""
Login state machine: credential check, account status gates, bad-login throttle.

Flow for login(username, password):

1. missing argument, unknown or         -> invalid_credentials
   over-long username
2. status not active                    -> account_suspended
3. must_reset_password                  -> password_reset_required (hash untouched)
4. wrong or over-long password          -> bad_login_attempts += 1, suspend at the
                                           threshold, persist, invalid_credentials
5. right password, fresh status active  -> reset counter, stamp last_login,
                                           login_count += 1, persist, attach roles

Steps 4 and 5 re-read the user under a per-user lock so concurrent attempts
neither lose increments nor act on a stale status.
"""

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from turnstile.core.config import AuthOptions
from turnstile.core.locks import KeyedLock
from turnstile.core.security import PASSWORD_MAX_LEN, USERNAME_MAX_LEN, PasswordHasher
from turnstile.schemas.users import SUSPENDED, Identity, UserRecord
from turnstile.services.errors import (
    ACCOUNT_SUSPENDED,
    INVALID_CREDENTIALS,
    PASSWORD_RESET_REQUIRED,
    STORE_ERROR,
    AuthError,
    StoreError,
)
from turnstile.services.stores import CredentialStore, RoleStore, mutate_user


def _utcnow() -> datetime:
    return datetime.now(UTC)


class LoginService:
    """Authenticates username/password pairs against the credential store."""

    def __init__(
        self,
        users: CredentialStore,
        roles: RoleStore,
        hasher: PasswordHasher,
        options: AuthOptions,
        locks: KeyedLock,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.users = users
        self.roles = roles
        self.hasher = hasher
        self.options = options
        self.locks = locks
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def login(self, username: str | None, plain_password: str | None) -> Identity:
        """
        Return the authenticated identity with its roles, or raise AuthError.

        Unknown users and wrong passwords both raise invalid_credentials with the
        same message; only AuthError.reason (for logs) tells them apart.
        """
        if not username or not plain_password:
            self.logger.debug("Login rejected: both a username and a password are required.")
            raise AuthError(INVALID_CREDENTIALS, reason="missing_credentials")

        self.logger.debug("Beginning login process...")
        user = None if len(username) > USERNAME_MAX_LEN else self._find_user(username)
        if user is None:
            self.logger.info("Login failed: no user named %r.", username[:USERNAME_MAX_LEN])
            raise AuthError(INVALID_CREDENTIALS, reason="unknown_user")
        if not user.is_active:
            self.logger.info("Login refused for user %s: status=%s.", user.id, user.status)
            raise AuthError(ACCOUNT_SUSPENDED, reason=f"status={user.status}")
        if user.must_reset_password:
            self.logger.info("Login refused for user %s: password must be reset.", user.id)
            raise AuthError(PASSWORD_RESET_REQUIRED)

        self.logger.debug("Attempting password comparison...")
        # No stored password is longer than PASSWORD_MAX_LEN, so longer input is a mismatch.
        matched = len(plain_password) <= PASSWORD_MAX_LEN and self._verify(plain_password, user)
        if not matched:
            self._record_bad_login(user)
            raise AuthError(INVALID_CREDENTIALS, reason="bad_password")

        return self._record_success(user)

    def _verify(self, plain_password: str, user: UserRecord) -> bool:
        try:
            return self.hasher.verify(plain_password, user.password_hash)
        except Exception as e:
            self.logger.exception("Password verification failed for user %s", user.id)
            raise AuthError(STORE_ERROR, reason="hasher_failed") from e

    def _find_user(self, username: str) -> UserRecord | None:
        try:
            return self.users.find_one(username=username)
        except StoreError as e:
            self.logger.error("Login processing error: user lookup failed: %s", e.message)
            raise AuthError(STORE_ERROR, reason="lookup_failed") from e

    def _record_bad_login(self, user: UserRecord) -> None:
        """Persist the incremented counter (and suspension); never raises."""
        max_bad_logins = self.options.max_bad_logins

        def bump(current: UserRecord) -> UserRecord:
            attempts = current.bad_login_attempts + 1
            status = current.status
            if attempts >= max_bad_logins:
                status = SUSPENDED
            return current.model_copy(
                update={"bad_login_attempts": attempts, "status": status}
            )

        self.logger.debug("Updating invalid login statistics.")
        try:
            updated = mutate_user(self.users, self.locks, user.id, bump)
        except StoreError as e:
            # The authentication failure still stands; the counter is lost for this attempt.
            self.logger.error(
                "Unable to record invalid login for user %s: %s", user.id, e.message
            )
            return
        if updated is None:
            self.logger.warning("User %s disappeared while recording an invalid login.", user.id)
            return
        self.logger.info(
            "Login failed for user %s: bad password (%s of %s).",
            user.id,
            updated.bad_login_attempts,
            max_bad_logins,
        )
        if updated.status == SUSPENDED and user.status != SUSPENDED:
            self.logger.warning(
                "User %s suspended after %s bad login attempts.",
                user.id,
                updated.bad_login_attempts,
            )

    def _record_success(self, user: UserRecord) -> Identity:
        def stamp(current: UserRecord) -> UserRecord:
            # Status may have changed since the first read; the fresh value decides.
            if not current.is_active:
                raise AuthError(ACCOUNT_SUSPENDED, reason=f"status={current.status}")
            return current.model_copy(
                update={
                    "bad_login_attempts": 0,
                    "last_login": self.clock(),
                    "login_count": current.login_count + 1,
                }
            )

        try:
            updated = mutate_user(self.users, self.locks, user.id, stamp)
            if updated is None:
                raise AuthError(INVALID_CREDENTIALS, reason="unknown_user")
            roles = [r.role for r in self.roles.find_roles_for_user(updated.id)]
        except AuthError as e:
            self.logger.info("Login refused for user %s: %s.", user.id, e.reason)
            raise
        except StoreError as e:
            self.logger.error(
                "Login processing error for user %s: %s", user.id, e.message
            )
            raise AuthError(STORE_ERROR, reason="update_failed") from e

        self.logger.info("User %s logged in (login_count=%s).", updated.id, updated.login_count)
        return Identity.from_user(updated, roles)
