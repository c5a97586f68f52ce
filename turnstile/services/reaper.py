"""Session reaper: periodically delete sessions whose expiry has passed."""

import logging
from collections.abc import Callable
from contextlib import AbstractContextManager
from datetime import UTC, datetime

from apscheduler.schedulers.background import BackgroundScheduler

from turnstile.core.config import AuthOptions
from turnstile.services.stores import SessionStore

REAPER_JOB_ID = "session_reaper"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class SessionReaper:
    """
    Purge expired sessions on a fixed interval.

    store_scope opens a SessionStore for one run and releases it afterwards
    (each tick gets its own DB session). A failing tick is logged and the
    schedule keeps going.
    """

    def __init__(
        self,
        store_scope: Callable[[], AbstractContextManager[SessionStore]],
        options: AuthOptions,
        logger: logging.Logger | None = None,
        scheduler: BackgroundScheduler | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store_scope = store_scope
        self.options = options
        self.logger = logger or logging.getLogger(__name__)
        self.scheduler = scheduler or BackgroundScheduler(timezone=UTC)
        self.clock = clock

    def reap_expired_sessions(self) -> int:
        """Delete sessions expiring at or before now. Idempotent: safe to run repeatedly."""
        now = self.clock()
        with self.store_scope() as store:
            deleted_count = store.delete_where_expired(now)
        if deleted_count > 0:
            self.logger.info(
                "Session reaper run: cutoff=%s, sessions_deleted=%s",
                now.isoformat(),
                deleted_count,
            )
        return deleted_count

    def tick(self) -> int | None:
        """One scheduled run; returns the count removed, or None if the run failed."""
        try:
            return self.reap_expired_sessions()
        except Exception:
            self.logger.exception("Error removing expired sessions; will retry next period.")
            return None

    def start(self) -> None:
        """Schedule tick every session_monitor_period_seconds and start the scheduler."""
        period = self.options.session_monitor_period_seconds
        self.scheduler.add_job(
            self.tick,
            trigger="interval",
            seconds=period,
            id=REAPER_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if not self.scheduler.running:
            self.scheduler.start()
        self.logger.info("Session reaper started: period=%ss", period)

    def stop(self) -> None:
        """Stop the scheduler without waiting for a running tick."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("Session reaper stopped.")

    @property
    def running(self) -> bool:
        return bool(self.scheduler.running)
