"""ORM model for server-side login sessions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from turnstile.models.base import Base, JSONType


class UserSession(Base):
    """
    Session keyed by an opaque id, expiring at `expires`.

    data holds the identity snapshot taken at login (or last refresh); the
    route guard evaluates that snapshot without re-reading the user row.
    """

    __tablename__ = "user_sessions"

    id = Column(String(100), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    expires = Column(DateTime(timezone=True), nullable=False, index=True)
    data = Column(JSONType, nullable=True)
