"""Engine and sessions backing the credential, role and session stores."""

import logging
from collections.abc import Generator

from sqlalchemy import Engine, create_engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from turnstile.core.config import settings

logger = logging.getLogger(__name__)

# Pooled connections older than this many seconds are replaced on checkout.
POOL_RECYCLE_SECONDS = 1800


def build_engine(database_url: str, debug: bool = False) -> Engine:
    """Engine for the auth tables. Connections are pinged before each checkout."""
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_recycle=POOL_RECYCLE_SECONDS,
        echo=debug,
    )


def build_session_factory(bind: Engine) -> sessionmaker[Session]:
    """Sessions never autoflush; each store method commits or rolls back its own unit of work."""
    return sessionmaker(bind=bind, autoflush=False)


engine = build_engine(settings.DATABASE_URL, settings.DEBUG)
SessionLocal = build_session_factory(engine)


def get_db() -> Generator[Session, None, None]:
    """Request-scoped session for the stores; closed (and rolled back if still open) afterwards."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def check_db_connected(db: Session) -> bool:
    """Query the users table; False (logged) when the database or schema is unavailable."""
    try:
        db.execute(text("SELECT 1 FROM users LIMIT 1"))
        return True
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Database health check failed: %s", e.__class__.__name__)
        return False
