"""Core app configuration, database, hashing and locking."""

from turnstile.core.config import AuthOptions, get_settings, settings
from turnstile.core.database import get_db

__all__ = ["AuthOptions", "get_settings", "settings", "get_db"]
