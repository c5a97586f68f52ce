"""Server-side sessions: create after login, load per request, refresh, logout."""

import logging
from collections.abc import Callable
from datetime import UTC, datetime, timedelta

from turnstile.core.security import generate_token
from turnstile.schemas.users import Identity, SessionRecord, SessionState
from turnstile.services.errors import STORE_ERROR, AuthError, StoreError
from turnstile.services.stores import SessionStore


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionManager:
    """Owns session records on behalf of the HTTP layer."""

    def __init__(
        self,
        store: SessionStore,
        ttl: timedelta,
        rolling: bool = True,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.ttl = ttl
        self.rolling = rolling
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def create(self, identity: Identity) -> SessionRecord:
        """Persist a new session carrying a snapshot of identity."""
        record = SessionRecord(
            id=generate_token(),
            user_id=identity.id,
            expires=self.clock() + self.ttl,
            data={"identity": identity.model_dump(mode="json")},
        )
        try:
            created = self.store.create(record)
        except StoreError as e:
            self.logger.error("Unable to create session for user %s: %s", identity.id, e.message)
            raise AuthError(STORE_ERROR, reason="session_create_failed") from e
        self.logger.debug("Session created for user %s, expires %s.", identity.id, record.expires)
        return created

    def load(self, session_id: str | None) -> SessionState | None:
        """Return the live session for session_id, or None if unknown or expired."""
        if not session_id:
            return None
        try:
            record = self.store.get(session_id)
        except StoreError as e:
            self.logger.error("Unable to load session: %s", e.message)
            return None
        if record is None or record.expires <= self.clock():
            return None
        return SessionState.from_record(record)

    def refresh(self, session: SessionState, identity: Identity | None = None) -> datetime:
        """
        Extend the session's expiry (rolling sessions) and optionally replace its snapshot.

        Returns the expiry now in effect. Failures keep the old expiry.
        """
        if not self.rolling and identity is None:
            return session.expires
        expires = self.clock() + self.ttl if self.rolling else session.expires
        data = {"identity": identity.model_dump(mode="json")} if identity is not None else None
        try:
            self.store.update_expiry(session.id, expires, data)
        except StoreError as e:
            self.logger.warning("Unable to refresh session for user %s: %s", session.user_id, e.message)
            return session.expires
        return expires

    def logout(self, session_id: str | None) -> bool:
        """Destroy the session; True if one was removed."""
        if not session_id:
            return False
        try:
            removed = self.store.delete(session_id)
        except StoreError as e:
            self.logger.error("Unable to delete session: %s", e.message)
            raise AuthError(STORE_ERROR, reason="session_delete_failed") from e
        if removed:
            self.logger.info("Session logged out.")
        return removed

    def sessions_for_user(self, user_id: int) -> list[SessionRecord]:
        """Live (unexpired) sessions belonging to user_id, soonest expiry first."""
        try:
            records = self.store.find(user_id)
        except StoreError as e:
            self.logger.error("Unable to list sessions for user %s: %s", user_id, e.message)
            raise AuthError(STORE_ERROR, reason="session_list_failed") from e
        now = self.clock()
        return sorted((r for r in records if r.expires > now), key=lambda r: r.expires)
