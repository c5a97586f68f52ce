"""In-memory collaborators for service tests: stores, hasher and a controllable clock."""

import threading
from datetime import UTC, datetime, timedelta
from typing import Any

from turnstile.schemas.users import RoleRecord, SessionRecord, UserRecord
from turnstile.services.errors import StaleRecordError, StoreError
from turnstile.services.stores import USER_LOOKUP_FIELDS

T0 = datetime(2026, 1, 15, 12, 0, 0, tzinfo=UTC)


class FakeClock:
    """Callable returning a settable 'now'."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now = self.now + delta


class FakeHasher:
    """Cheap reversible stand-in for bcrypt."""

    def __init__(self) -> None:
        self.verify_calls = 0
        self.hash_calls: list[tuple[str, int]] = []

    def hash(self, plain_password: str, cost_factor: int) -> str:
        self.hash_calls.append((plain_password, cost_factor))
        return f"hashed:{plain_password}"

    def verify(self, plain_password: str, hashed: str) -> bool:
        self.verify_calls += 1
        return hashed == f"hashed:{plain_password}"


def make_user(user_id: int = 1, **overrides: Any) -> UserRecord:
    """Build an active user whose password is 'correct-horse'."""
    fields: dict[str, Any] = {
        "id": user_id,
        "username": f"user{user_id}",
        "email": f"user{user_id}@example.com",
        "password_hash": "hashed:correct-horse",
        "status": "active",
        "must_reset_password": False,
        "bad_login_attempts": 0,
        "last_login": None,
        "login_count": 0,
        "reset_password_token": None,
        "reset_password_token_expires": None,
        "version": 1,
    }
    fields.update(overrides)
    return UserRecord(**fields)


class InMemoryCredentialStore:
    """CredentialStore with the same version check as the SQL store."""

    def __init__(self, *users: UserRecord) -> None:
        self._lock = threading.Lock()
        self.users: dict[int, UserRecord] = {u.id: u for u in users}
        self.update_calls = 0
        self.fail_lookups = False
        self.fail_updates = False

    def find_one(self, **criteria: Any) -> UserRecord | None:
        if self.fail_lookups:
            raise StoreError("connection refused")
        assert len(criteria) == 1
        field, value = next(iter(criteria.items()))
        assert field in USER_LOOKUP_FIELDS
        if value is None:
            return None
        with self._lock:
            for user in self.users.values():
                if getattr(user, field) == value:
                    return user.model_copy(deep=True)
        return None

    def update(self, record: UserRecord) -> UserRecord:
        if self.fail_updates:
            raise StoreError("disk full")
        with self._lock:
            self.update_calls += 1
            current = self.users.get(record.id)
            if current is None:
                raise StoreError(f"User {record.id} does not exist")
            if current.version != record.version:
                raise StaleRecordError("version mismatch")
            stored = record.model_copy(update={"version": record.version + 1}, deep=True)
            self.users[record.id] = stored
            return stored.model_copy(deep=True)

    def get(self, user_id: int) -> UserRecord:
        return self.users[user_id]


class InMemoryRoleStore:
    def __init__(self, roles: dict[int, list[str]] | None = None) -> None:
        self.roles = roles or {}
        self.fail = False

    def find_roles_for_user(self, user_id: int) -> list[RoleRecord]:
        if self.fail:
            raise StoreError("roles table missing")
        return [RoleRecord(user_id=user_id, role=r) for r in self.roles.get(user_id, [])]


class InMemorySessionStore:
    def __init__(self, *records: SessionRecord) -> None:
        self.records: dict[str, SessionRecord] = {r.id: r for r in records}
        self.fail = False

    def _check(self) -> None:
        if self.fail:
            raise StoreError("session store unavailable")

    def find(self, user_id: int) -> list[SessionRecord]:
        self._check()
        return [r for r in self.records.values() if r.user_id == user_id]

    def get(self, session_id: str) -> SessionRecord | None:
        self._check()
        return self.records.get(session_id)

    def create(self, record: SessionRecord) -> SessionRecord:
        self._check()
        self.records[record.id] = record
        return record

    def update_expiry(
        self, session_id: str, expires: datetime, data: dict[str, Any] | None = None
    ) -> bool:
        self._check()
        record = self.records.get(session_id)
        if record is None:
            return False
        changes: dict[str, Any] = {"expires": expires}
        if data is not None:
            changes["data"] = data
        self.records[session_id] = record.model_copy(update=changes)
        return True

    def delete(self, session_id: str) -> bool:
        self._check()
        return self.records.pop(session_id, None) is not None

    def delete_where_expired(self, now: datetime) -> int:
        self._check()
        expired = [sid for sid, r in self.records.items() if r.expires <= now]
        for sid in expired:
            del self.records[sid]
        return len(expired)
