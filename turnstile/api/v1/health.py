"""Health check endpoint with database and session reaper status."""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from turnstile.core.config import Settings, get_settings
from turnstile.core.database import check_db_connected, get_db
from turnstile.schemas.health import HealthResponse

router = APIRouter()


@router.get("/", response_model=HealthResponse)
def get_health(
    request: Request,
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> HealthResponse:
    """
    Return service health, database connectivity and whether expired
    sessions are being purged. Used by load balancers and monitoring.
    """
    db_status = "connected" if check_db_connected(db) else "disconnected"

    reaper = getattr(request.app.state, "session_reaper", None)
    if not settings.SESSION_MONITOR_ENABLED:
        reaper_status = "disabled"
    elif reaper is not None and reaper.running:
        reaper_status = "running"
    else:
        reaper_status = "stopped"

    return HealthResponse(
        status="ok",
        environment=settings.APP_ENV,
        database=db_status,
        session_reaper=reaper_status,
    )
