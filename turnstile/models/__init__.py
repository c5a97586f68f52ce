"""SQLAlchemy ORM models."""

from turnstile.models.base import Base
from turnstile.models.user import User
from turnstile.models.user_role import UserRole
from turnstile.models.user_session import UserSession

__all__ = ["Base", "User", "UserRole", "UserSession"]
