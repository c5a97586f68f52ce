"""
CLI entrypoint for a single session reaper run, for deployments that purge
from cron instead of the in-process scheduler:

  python -m turnstile.reaper

Or every minute: * * * * * cd /path/to/turnstile && .venv/bin/python -m turnstile.reaper
"""

import logging
import sys

from turnstile.core.config import get_settings
from turnstile.core.database import SessionLocal
from turnstile.services.reaper import SessionReaper
from turnstile.services.stores import session_store_scope

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
    datefmt="%Y-%m-%dT%H:%M:%SZ",
)
logger = logging.getLogger(__name__)


def main() -> int:
    """Delete every session whose expiry has passed."""
    settings = get_settings()
    reaper = SessionReaper(
        store_scope=lambda: session_store_scope(SessionLocal),
        options=settings.auth_options(),
    )
    try:
        deleted = reaper.reap_expired_sessions()
        logger.info("Session reaper completed: sessions_deleted=%s", deleted)
        return 0
    except Exception as e:
        logger.exception("Session reaper failed: %s", e)
        return 1


if __name__ == "__main__":
    sys.exit(main())
