"""FastAPI application entrypoint. No business logic; only wiring and middleware."""

from dotenv import load_dotenv

load_dotenv()

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import RedirectResponse

from turnstile.api.deps import LoginRequired
from turnstile.api.v1 import router as v1_router
from turnstile.core.config import settings
from turnstile.core.database import SessionLocal
from turnstile.services.reaper import SessionReaper
from turnstile.services.stores import session_store_scope


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the session reaper for the lifetime of the app when enabled."""
    reaper = None
    if settings.SESSION_MONITOR_ENABLED:
        reaper = SessionReaper(
            store_scope=lambda: session_store_scope(SessionLocal),
            options=settings.auth_options(),
        )
        reaper.start()
    app.state.session_reaper = reaper
    try:
        yield
    finally:
        if reaper is not None:
            reaper.stop()


app = FastAPI(
    title="Turnstile API",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.APP_ENV == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(v1_router, prefix=settings.API_V1_PREFIX)


@app.exception_handler(LoginRequired)
async def login_required_handler(request: Request, exc: LoginRequired) -> RedirectResponse:
    """Route guard denial: send the client to the login page with its requested path."""
    return RedirectResponse(exc.redirect_url, status_code=303)


@app.get("/")
def root() -> dict[str, str]:
    """Root route; minimal payload for discovery."""
    return {"message": "Turnstile API"}
