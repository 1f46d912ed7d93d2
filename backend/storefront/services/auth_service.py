# Overview: Service-layer operations for accounts, passwords and admin roles.

"""
Authentication Service

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor from BCRYPT_ROUNDS, default 12)
- Minimum 8 characters with at least one letter and one digit
- Admin rights are rows in user_roles; they are resolved once per request
  into an AuthContext (see decorators.require_auth), never ad hoc in handlers
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, UserRole
from ..models.auth import ROLE_ADMIN
from ..time_utils import utcnow
from . import activity_service


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class UserError(Exception):
    """Raised for account and role management errors."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r'[A-Za-z]', password):
        raise PasswordValidationError("Password must contain at least one letter")
    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt."""
    validate_password_strength(password)
    rounds = int(current_app.config.get("BCRYPT_ROUNDS", 12))
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison. Malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(email: str, password: str, name: str | None = None, is_admin: bool = False) -> User:
    """
    Create a user account.

    Raises:
        UserError: email already registered
        PasswordValidationError: weak password
    """
    email = email.strip().lower()
    if db.session.query(User).filter_by(email=email).first():
        raise UserError("Email already registered")

    user = User(email=email, name=name, password_hash=hash_password(password))
    db.session.add(user)
    db.session.flush()

    if is_admin:
        db.session.add(UserRole(user_id=user.id, role=ROLE_ADMIN))

    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for these credentials, or None."""
    user = db.session.query(User).filter_by(email=email.strip().lower(), is_active=True).first()
    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def is_admin(user_id: int) -> bool:
    return db.session.query(UserRole).filter_by(user_id=user_id, role=ROLE_ADMIN).first() is not None


def grant_admin(user_id: int, actor_id: str) -> User:
    """Give a user the admin role (no-op if already granted) and audit it."""
    user = db.session.get(User, user_id)
    if not user:
        raise UserError(f"User {user_id} not found")

    if not is_admin(user_id):
        db.session.add(UserRole(user_id=user_id, role=ROLE_ADMIN))
        activity_service.log_activity(
            user_id=actor_id,
            action="role_granted",
            entity_type="user",
            entity_id=str(user_id),
            details={"role": ROLE_ADMIN, "email": user.email},
            commit=False,
        )
        db.session.commit()
    return user


def revoke_admin(user_id: int, actor_id: str) -> User:
    """Remove the admin role and audit it. Admins cannot revoke themselves."""
    user = db.session.get(User, user_id)
    if not user:
        raise UserError(f"User {user_id} not found")
    if str(user_id) == str(actor_id):
        raise UserError("Admins cannot revoke their own role")

    role = db.session.query(UserRole).filter_by(user_id=user_id, role=ROLE_ADMIN).first()
    if role:
        db.session.delete(role)
        activity_service.log_activity(
            user_id=actor_id,
            action="role_revoked",
            entity_type="user",
            entity_id=str(user_id),
            details={"role": ROLE_ADMIN, "email": user.email},
            commit=False,
        )
        db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id).all()
