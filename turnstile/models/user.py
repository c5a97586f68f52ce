"""ORM model for user accounts and their authentication state."""

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Integer, String, func

from turnstile.models.base import Base


class User(Base):
    """
    User account: credentials, status, login telemetry and reset token.

    status: 'active' or 'suspended'. The two reset token columns are either
    both null or both set. version is bumped by SQLAlchemy on every UPDATE and
    checked in its WHERE clause (optimistic concurrency).
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False, default="active")
    must_reset_password = Column(Boolean, nullable=False, default=False)
    bad_login_attempts = Column(Integer, nullable=False, default=0)
    last_login = Column(DateTime(timezone=True), nullable=True)
    login_count = Column(Integer, nullable=False, default=0)
    reset_password_token = Column(String(255), nullable=True, unique=True, index=True)
    reset_password_token_expires = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint(
            "(reset_password_token IS NULL) = (reset_password_token_expires IS NULL)",
            name="ck_users_reset_token_pair",
        ),
    )
    __mapper_args__ = {"version_id_col": version}
