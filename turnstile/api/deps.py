"""FastAPI dependencies: service construction per request and the route guard."""

from datetime import timedelta
from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from turnstile.core.config import Settings, get_settings
from turnstile.core.database import get_db
from turnstile.core.locks import KeyedLock
from turnstile.core.security import BcryptPasswordHasher
from turnstile.schemas.users import SessionState
from turnstile.services.login import LoginService
from turnstile.services.password_reset import PasswordResetService
from turnstile.services.route_guard import Deny, authorize
from turnstile.services.sessions import SessionManager
from turnstile.services.stores import SqlCredentialStore, SqlRoleStore, SqlSessionStore

# Shared by every request in this process so same-user mutations serialize.
user_locks = KeyedLock()
password_hasher = BcryptPasswordHasher()


class LoginRequired(Exception):
    """Raised by require_session when the route guard denies; rendered as a redirect."""

    def __init__(self, redirect_url: str, reason: str) -> None:
        self.redirect_url = redirect_url
        self.reason = reason
        super().__init__(redirect_url)


def get_login_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LoginService:
    return LoginService(
        users=SqlCredentialStore(db),
        roles=SqlRoleStore(db),
        hasher=password_hasher,
        options=settings.auth_options(),
        locks=user_locks,
    )


def get_password_reset_service(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PasswordResetService:
    return PasswordResetService(
        users=SqlCredentialStore(db),
        hasher=password_hasher,
        options=settings.auth_options(),
        locks=user_locks,
    )


def get_session_manager(
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionManager:
    return SessionManager(
        store=SqlSessionStore(db),
        ttl=timedelta(minutes=settings.SESSION_TTL_MINUTES),
        rolling=settings.SESSION_ROLLING,
    )


def get_current_session(
    request: Request,
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionState | None:
    """The live session named by the session cookie, if any."""
    return sessions.load(request.cookies.get(settings.SESSION_COOKIE_NAME))


def require_session(
    request: Request,
    session: Annotated[SessionState | None, Depends(get_current_session)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionState:
    """
    Dependency for protected routes: allow active sessions, otherwise redirect to login.

    Allowed sessions get their expiry extended when rolling sessions are on.
    """
    decision = authorize(session, request.url.path)
    if isinstance(decision, Deny):
        raise LoginRequired(decision.redirect_url(settings.LOGIN_PATH), decision.reason)
    sessions.refresh(session)
    return session
