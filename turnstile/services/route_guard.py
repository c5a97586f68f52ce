"""Route guard: decide whether a request's session may reach a protected handler."""

from dataclasses import dataclass
from urllib.parse import urlencode

from turnstile.schemas.users import ACTIVE, SessionState

# Query parameter carrying the originally requested path back to the login page.
RETURN_TO_PARAM = "rp"


@dataclass(frozen=True)
class Allow:
    """Proceed to the requested handler."""


@dataclass(frozen=True)
class Deny:
    """Send the client to the login entry point, remembering where it was going."""

    requested_path: str
    reason: str

    def redirect_url(self, login_path: str) -> str:
        return f"{login_path}?{urlencode({RETURN_TO_PARAM: self.requested_path})}"


GuardDecision = Allow | Deny


def authorize(session: SessionState | None, requested_path: str) -> GuardDecision:
    """
    Evaluate the session snapshot. Pure: no store access and no mutation.

    The identity is the one captured at login or last refresh; a suspension
    applied since then is not seen until the session is refreshed or expires.
    """
    if session is None:
        return Deny(requested_path=requested_path, reason="no_session")
    if session.identity is None:
        return Deny(requested_path=requested_path, reason="no_identity")
    if session.identity.status != ACTIVE:
        return Deny(requested_path=requested_path, reason="inactive")
    return Allow()
