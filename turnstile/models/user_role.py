"""ORM model for role labels assigned to users."""

from sqlalchemy import Column, ForeignKey, Integer, String

from turnstile.models.base import Base


class UserRole(Base):
    """One role label for one user (many rows per user)."""

    __tablename__ = "user_roles"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    role = Column(String(255), nullable=False)
