# Overview: Service-layer operations for accounts: password hashing, sign-in, role changes.

"""
Authentication and account management.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters with upper, lower, digit and special character
- Session tokens managed separately (see session_service.py)
- Role changes and deactivation revoke the user's live sessions
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES, ROLE_CUSTOMER
from . import session_service
from .permission_service import log_security_event
from groupbuy.time_utils import utcnow


EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AccountError(Exception):
    """Raised for invalid account operations (duplicate email, unknown role, ...)."""
    pass


def validate_password_strength(password: str) -> None:
    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>?_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """Validate strength, then hash with bcrypt (cost 12)."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode('utf-8'), salt).decode('utf-8')


def verify_password(password: str, password_hash: str | None) -> bool:
    """Timing-safe bcrypt check; provider-only accounts (no hash) never match."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str | None) -> str:
    value = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise AccountError("A valid email address is required")
    return value


def create_user(
    email: str,
    password: str,
    first_name: str | None = None,
    last_name: str | None = None,
    role: str = ROLE_CUSTOMER,
    external_auth_id: str | None = None,
) -> User:
    """
    Create a new account.

    Raises:
        AccountError: invalid/duplicate email or unknown role
        PasswordValidationError: weak password
    """
    email = normalize_email(email)
    if role not in USER_ROLES:
        raise AccountError(f"Unknown role: {role}")

    existing = db.session.query(User).filter(User.email == email).first()
    if existing:
        raise AccountError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
        role=role,
        external_auth_id=external_auth_id,
        is_active=True,
    )

    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """
    Returns the User if credentials are valid and the account is active.
    Updates last_login_at on success.
    """
    user = db.session.query(User).filter(
        User.email == (email or "").strip().lower(),
        User.is_active.is_(True),
    ).first()

    if not user:
        return None

    if verify_password(password, user.password_hash):
        user.last_login_at = utcnow()
        db.session.commit()
        return user

    return None


def set_role(user_id: int, role: str, *, actor_user_id: int | None = None) -> User:
    """Change a user's role and revoke their sessions so the change applies immediately."""
    if role not in USER_ROLES:
        raise AccountError(f"Unknown role: {role}")

    user = db.session.get(User, user_id)
    if not user:
        raise AccountError("User not found")

    if actor_user_id is not None and actor_user_id == user_id and role != user.role:
        raise AccountError("You cannot change your own role")

    previous = user.role
    if previous == role:
        return user

    user.role = role
    db.session.commit()

    session_service.revoke_all_user_sessions(user.id, reason="Role changed")
    log_security_event(
        user_id=actor_user_id,
        event_type="ROLE_CHANGED",
        success=True,
        resource=f"user:{user.id}",
        action=f"{previous}->{role}",
    )
    current_app.logger.info("User %s role changed %s -> %s", user.id, previous, role)
    return user


def set_active(user_id: int, is_active: bool, *, actor_user_id: int | None = None) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise AccountError("User not found")
    if actor_user_id is not None and actor_user_id == user_id and not is_active:
        raise AccountError("You cannot deactivate your own account")

    user.is_active = bool(is_active)
    db.session.commit()

    if not user.is_active:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")
    return user


def list_users(role: str | None = None, search: str | None = None) -> list[User]:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(db.or_(
            User.email.ilike(like),
            User.first_name.ilike(like),
            User.last_name.ilike(like),
        ))
    return query.order_by(User.created_at.desc(), User.id.desc()).all()
