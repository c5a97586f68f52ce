"""
Create a user (e.g. first admin). Run from project root:
  python -m turnstile.scripts.create_user USERNAME EMAIL PASSWORD [--role ROLE ...] [--must-reset]
Example:
  python -m turnstile.scripts.create_user admin admin@example.com your-secure-password --role admin
"""
import argparse
import sys

from sqlalchemy import or_
from sqlalchemy.orm import Session

from turnstile.core.config import get_settings
from turnstile.core.database import SessionLocal
from turnstile.core.security import (
    PASSWORD_MAX_LEN,
    PASSWORD_MIN_LEN,
    USERNAME_MAX_LEN,
    BcryptPasswordHasher,
    PasswordHasher,
)
from turnstile.models import User, UserRole


class UserExistsError(Exception):
    """Raised when the username or email is already taken."""


def create_user(
    db: Session,
    username: str,
    email: str,
    password: str,
    roles: list[str],
    hasher: PasswordHasher,
    cost_factor: int,
    must_reset_password: bool = False,
) -> User:
    """Insert an active user with its role rows; raises UserExistsError on a duplicate."""
    existing = (
        db.query(User)
        .filter(or_(User.username == username, User.email == email))
        .first()
    )
    if existing is not None:
        raise UserExistsError(f"User '{username}' or email '{email}' already exists.")
    user = User(
        username=username,
        email=email,
        password_hash=hasher.hash(password, cost_factor),
        status="active",
        must_reset_password=must_reset_password,
        bad_login_attempts=0,
        login_count=0,
    )
    db.add(user)
    db.flush()
    for role in sorted(set(roles)):
        db.add(UserRole(user_id=user.id, role=role))
    db.commit()
    return user


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create a Turnstile user (no registration UI).")
    parser.add_argument("username", help=f"Username (1-{USERNAME_MAX_LEN} chars)")
    parser.add_argument("email", help="Email address (unique)")
    parser.add_argument("password", help=f"Password ({PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} chars)")
    parser.add_argument("--role", action="append", default=[], help="Role label (repeatable)")
    parser.add_argument(
        "--must-reset",
        action="store_true",
        help="Require a password reset before the first login",
    )
    args = parser.parse_args(argv)

    username = args.username.strip()
    email = args.email.strip()
    if not username or len(username) > USERNAME_MAX_LEN:
        print("Invalid username length.", file=sys.stderr)
        return 1
    if "@" not in email or len(email) > 255:
        print("Invalid email address.", file=sys.stderr)
        return 1
    if len(args.password) < PASSWORD_MIN_LEN or len(args.password) > PASSWORD_MAX_LEN:
        print(f"Password must be {PASSWORD_MIN_LEN}-{PASSWORD_MAX_LEN} characters.", file=sys.stderr)
        return 1

    settings = get_settings()
    db = SessionLocal()
    try:
        create_user(
            db,
            username=username,
            email=email,
            password=args.password,
            roles=args.role,
            hasher=BcryptPasswordHasher(),
            cost_factor=settings.BCRYPT_ROUNDS,
            must_reset_password=args.must_reset,
        )
    except UserExistsError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        db.close()
    roles = ", ".join(sorted(set(args.role))) or "none"
    print(f"Created user '{username}' with roles: {roles}.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
