"""
Store contracts used by the core services and their SQLAlchemy implementations.

The core only talks to the Protocols below. SQL implementations wrap every
SQLAlchemyError in StoreError so raw driver text stays inside this module's
exception chain.
"""

import logging
from collections.abc import Callable, Hashable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from turnstile.core.locks import KeyedLock
from turnstile.models import User, UserRole, UserSession
from turnstile.schemas.users import RoleRecord, SessionRecord, UserRecord
from turnstile.services.errors import StaleRecordError, StoreError

logger = logging.getLogger(__name__)

# Columns a user can be looked up by.
USER_LOOKUP_FIELDS = frozenset({"id", "username", "email", "reset_password_token"})

# Columns written back by CredentialStore.update (full-row replace keyed by id).
USER_WRITABLE_FIELDS = (
    "username",
    "email",
    "password_hash",
    "status",
    "must_reset_password",
    "bad_login_attempts",
    "last_login",
    "login_count",
    "reset_password_token",
    "reset_password_token_expires",
)

# Re-read/re-apply attempts when an update loses a version check.
MAX_UPDATE_ATTEMPTS = 3


class CredentialStore(Protocol):
    def find_one(self, **criteria: Any) -> UserRecord | None: ...

    def update(self, record: UserRecord) -> UserRecord: ...


class RoleStore(Protocol):
    def find_roles_for_user(self, user_id: int) -> Sequence[RoleRecord]: ...


class SessionStore(Protocol):
    def find(self, user_id: int) -> Sequence[SessionRecord]: ...

    def get(self, session_id: str) -> SessionRecord | None: ...

    def create(self, record: SessionRecord) -> SessionRecord: ...

    def update_expiry(
        self, session_id: str, expires: datetime, data: dict[str, Any] | None = None
    ) -> bool: ...

    def delete(self, session_id: str) -> bool: ...

    def delete_where_expired(self, now: datetime) -> int: ...


def _single_criterion(criteria: dict[str, Any]) -> tuple[str, Any]:
    if len(criteria) != 1:
        raise ValueError("find_one takes exactly one lookup field")
    field, value = next(iter(criteria.items()))
    if field not in USER_LOOKUP_FIELDS:
        raise ValueError(
            f"find_one field must be one of {sorted(USER_LOOKUP_FIELDS)}, got {field!r}"
        )
    return field, value


class SqlCredentialStore:
    """CredentialStore over the users table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_one(self, **criteria: Any) -> UserRecord | None:
        field, value = _single_criterion(criteria)
        if value is None:
            # "= NULL" would otherwise become IS NULL and match every user without a token.
            return None
        stmt = (
            select(User)
            .where(getattr(User, field) == value)
            .execution_options(populate_existing=True)
        )
        try:
            row = self.db.execute(stmt).scalars().first()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"User lookup by {field} failed: {e}") from e
        return UserRecord.model_validate(row) if row is not None else None

    def update(self, record: UserRecord) -> UserRecord:
        """Replace the row with the record's values if its version is still current."""
        try:
            row = self.db.get(User, record.id)
            if row is None:
                raise StoreError(f"User {record.id} does not exist")
            if row.version != record.version:
                raise StaleRecordError(
                    f"User {record.id} changed (version {record.version} -> {row.version})"
                )
            for field in USER_WRITABLE_FIELDS:
                setattr(row, field, getattr(record, field))
            self.db.commit()
            self.db.refresh(row)
        except StaleDataError as e:
            self.db.rollback()
            raise StaleRecordError(f"User {record.id} was updated concurrently") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"User {record.id} update failed: {e}") from e
        return UserRecord.model_validate(row)


class SqlRoleStore:
    """RoleStore over the user_roles table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find_roles_for_user(self, user_id: int) -> list[RoleRecord]:
        try:
            rows = (
                self.db.execute(select(UserRole).where(UserRole.user_id == user_id))
                .scalars()
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Role lookup for user {user_id} failed: {e}") from e
        return [RoleRecord.model_validate(r) for r in rows]


class SqlSessionStore:
    """SessionStore over the user_sessions table."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def find(self, user_id: int) -> list[SessionRecord]:
        try:
            rows = (
                self.db.execute(
                    select(UserSession)
                    .where(UserSession.user_id == user_id)
                    .order_by(UserSession.expires)
                )
                .scalars()
                .all()
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Session lookup for user {user_id} failed: {e}") from e
        return [SessionRecord.model_validate(r) for r in rows]

    def get(self, session_id: str) -> SessionRecord | None:
        try:
            row = self.db.get(UserSession, session_id, populate_existing=True)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Session lookup failed: {e}") from e
        return SessionRecord.model_validate(row) if row is not None else None

    def create(self, record: SessionRecord) -> SessionRecord:
        row = UserSession(
            id=record.id,
            user_id=record.user_id,
            expires=record.expires,
            data=record.data,
        )
        try:
            self.db.add(row)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Session create for user {record.user_id} failed: {e}") from e
        return record

    def update_expiry(
        self, session_id: str, expires: datetime, data: dict[str, Any] | None = None
    ) -> bool:
        values: dict[str, Any] = {"expires": expires}
        if data is not None:
            values["data"] = data
        try:
            result = self.db.execute(
                update(UserSession).where(UserSession.id == session_id).values(**values)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Session refresh failed: {e}") from e
        return result.rowcount > 0

    def delete(self, session_id: str) -> bool:
        try:
            result = self.db.execute(delete(UserSession).where(UserSession.id == session_id))
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Session delete failed: {e}") from e
        return result.rowcount > 0

    def delete_where_expired(self, now: datetime) -> int:
        """Delete sessions whose expiry is at or before now; return rows removed."""
        try:
            result = self.db.execute(
                delete(UserSession)
                .where(UserSession.expires <= now)
                .execution_options(synchronize_session=False)
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise StoreError(f"Expired session purge failed: {e}") from e
        return result.rowcount


@contextmanager
def session_store_scope(session_factory: Callable[[], Session]) -> Iterator[SqlSessionStore]:
    """Open a DB session for a unit of work outside a request (e.g. the reaper) and close it after."""
    db = session_factory()
    try:
        yield SqlSessionStore(db)
    finally:
        db.close()


def mutate_user(
    store: CredentialStore,
    locks: KeyedLock,
    user_id: Hashable,
    mutate: Callable[[UserRecord], UserRecord | None],
    attempts: int = MAX_UPDATE_ATTEMPTS,
) -> UserRecord | None:
    """
    Re-read a user under its lock, apply mutate, and write the result back.

    mutate receives the freshest record and returns the record to persist, or
    None to leave the row untouched; it may raise to abort. A lost version
    check re-reads and re-applies, up to `attempts` times. Returns the
    persisted record, the unchanged record, or None when the user is gone.
    """
    with locks.hold(user_id):
        for attempt in range(1, attempts + 1):
            current = store.find_one(id=user_id)
            if current is None:
                return None
            changed = mutate(current)
            if changed is None:
                return current
            try:
                return store.update(changed)
            except StaleRecordError:
                if attempt == attempts:
                    raise
                logger.debug(
                    "User %s changed concurrently; retrying (attempt %s of %s)",
                    user_id,
                    attempt,
                    attempts,
                )
    return None
