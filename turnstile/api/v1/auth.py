"""Login, logout, password reset and session endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from turnstile.api.deps import (
    get_login_service,
    get_password_reset_service,
    get_session_manager,
    require_session,
)
from turnstile.core.config import Settings, get_settings
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
from turnstile.schemas.users import SessionState
from turnstile.services.errors import (
    ACCOUNT_SUSPENDED,
    EXPIRED_RESET_TOKEN,
    INVALID_CREDENTIALS,
    INVALID_RESET_TOKEN,
    PASSWORD_RESET_REQUIRED,
    STORE_ERROR,
    USER_NOT_FOUND,
    AuthError,
)
from turnstile.services.login import LoginService
from turnstile.services.password_reset import PasswordResetService
from turnstile.services.sessions import SessionManager

router = APIRouter()
logger = logging.getLogger(__name__)

# HTTP status for each error kind surfaced by the auth endpoints.
ERROR_STATUS = {
    INVALID_CREDENTIALS: status.HTTP_401_UNAUTHORIZED,
    ACCOUNT_SUSPENDED: status.HTTP_403_FORBIDDEN,
    PASSWORD_RESET_REQUIRED: status.HTTP_403_FORBIDDEN,
    INVALID_RESET_TOKEN: status.HTTP_400_BAD_REQUEST,
    EXPIRED_RESET_TOKEN: status.HTTP_400_BAD_REQUEST,
    STORE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
}

RESET_REQUESTED_MESSAGE = (
    "If an account matches, instructions to reset the password have been sent."
)


def _http_error(err: AuthError) -> HTTPException:
    """Caller-safe rendering of an AuthError: kind and message only, never the reason."""
    return HTTPException(
        status_code=ERROR_STATUS.get(err.kind, status.HTTP_400_BAD_REQUEST),
        detail={"error": err.kind, "message": err.message},
    )


@router.post("/login", response_model=LoginResponse)
def login(
    body: LoginRequest,
    response: Response,
    login_service: Annotated[LoginService, Depends(get_login_service)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> LoginResponse:
    """
    Authenticate with username and password; starts a session on success.

    The session id is returned in an HttpOnly cookie. `redirect_to` is the
    posted `rp` path when present, otherwise the default post-login route.
    """
    try:
        identity = login_service.login(body.username, body.password)
        record = sessions.create(identity)
    except AuthError as e:
        logger.info("Login failure: kind=%s reason=%s", e.kind, e.reason)
        raise _http_error(e) from e

    response.set_cookie(
        key=settings.SESSION_COOKIE_NAME,
        value=record.id,
        max_age=settings.SESSION_TTL_MINUTES * 60,
        httponly=True,
        secure=settings.SESSION_COOKIE_SECURE,
        samesite="lax",
    )
    return LoginResponse(
        user=IdentityResponse.model_validate(identity),
        redirect_to=body.rp or settings.DEFAULT_ROUTE_AFTER_LOGIN,
        expires=record.expires,
    )


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    request: Request,
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> Response:
    """End the current session (if any) and clear the cookie."""
    try:
        sessions.logout(request.cookies.get(settings.SESSION_COOKIE_NAME))
    except AuthError as e:
        raise _http_error(e) from e
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    response.delete_cookie(settings.SESSION_COOKIE_NAME)
    return response


@router.post(
    "/password-reset",
    response_model=PasswordResetRequestedResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
def request_password_reset(
    body: PasswordResetRequest,
    reset_service: Annotated[PasswordResetService, Depends(get_password_reset_service)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> PasswordResetRequestedResponse:
    """
    Issue a reset token for the account matching an email address or username.

    The response is the same whether or not an account matched. Delivering the
    token (e.g. by email) is left to the deployment.
    """
    try:
        user = reset_service.generate_reset_password_token(body.identifier)
    except AuthError as e:
        if e.kind != USER_NOT_FOUND:
            raise _http_error(e) from e
        return PasswordResetRequestedResponse(message=RESET_REQUESTED_MESSAGE)

    token = user.reset_password_token if settings.RESET_TOKEN_IN_RESPONSE else None
    return PasswordResetRequestedResponse(message=RESET_REQUESTED_MESSAGE, reset_token=token)


@router.post("/password-reset/confirm", response_model=MessageResponse)
def confirm_password_reset(
    body: PasswordResetConfirm,
    reset_service: Annotated[PasswordResetService, Depends(get_password_reset_service)],
) -> MessageResponse:
    """Redeem a reset token and set the new password. Each token works once."""
    try:
        reset_service.reset_password(body.token, body.new_password)
    except AuthError as e:
        raise _http_error(e) from e
    return MessageResponse(message="Your password has been reset. Please log in.")


@router.get("/me", response_model=IdentityResponse)
def me(
    session: Annotated[SessionState, Depends(require_session)],
) -> IdentityResponse:
    """The identity attached to the current session."""
    return IdentityResponse.model_validate(session.identity)


@router.get("/sessions", response_model=SessionsListResponse)
def list_sessions(
    session: Annotated[SessionState, Depends(require_session)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> SessionsListResponse:
    """Live sessions of the current user."""
    try:
        records = sessions.sessions_for_user(session.user_id)
    except AuthError as e:
        raise _http_error(e) from e
    return SessionsListResponse(
        sessions=[SessionItem(expires=r.expires, current=r.id == session.id) for r in records]
    )
