# Overview: Service-layer operations for auth and user accounts; encapsulates business logic and database work.

"""
Authentication and User Account Service

Every action must be attributable. Uses bcrypt for password hashing and
validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Password hashes never leave this module (User.to_dict omits them)
"""

import bcrypt
import re

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import VALID_ROLES, ROLE_CASHIER
from ..validation import ValidationError, ConflictError, NotFoundError
from . import session_service
from retailpos.time_utils import utcnow


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class InactiveUserError(Exception):
    """Correct credentials for a deactivated account."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str):
        raise PasswordValidationError("Password must be a string")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=current_app.config["BCRYPT_ROUNDS"])
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    bcrypt.checkpw() is timing-safe. A malformed stored hash never matches.
    """
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def _normalize_role(role) -> str:
    if role is None:
        return ROLE_CASHIER
    role = str(role).strip()
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(VALID_ROLES)}")
    return role


def create_user(
    username: str,
    password: str,
    name: str | None = None,
    role: str | None = None,
    email: str | None = None,
) -> User:
    """
    Create new user with bcrypt password hashing.

    Raises:
        ValidationError: blank username or unknown role
        ConflictError: username already taken
        PasswordValidationError: password doesn't meet requirements
    """
    username = (username or "").strip()
    if not username:
        raise ValidationError("username is required")
    if len(username) > 64:
        raise ValidationError("username exceeds max length 64")

    role = _normalize_role(role)

    if db.session.query(User.id).filter(User.username == username).first():
        raise ConflictError("Username already exists")

    user = User(
        username=username,
        name=(name or "").strip() or username,
        email=(email or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )

    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Username already exists")

    current_app.logger.info("User created: %s (%s)", user.username, user.role)
    return user


def list_users(include_inactive: bool = True) -> list[User]:
    query = db.session.query(User)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username).all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def update_user(user_id: int, data: dict, *, acting_user_id: int | None = None) -> User:
    """
    Patch name, email, role, is_active and/or password.

    Deactivation revokes every auth token of the user.
    """
    user = get_user(user_id)

    unknown = set(data) - {"name", "email", "role", "is_active", "password"}
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}")

    try:
        _apply_user_patch(user, data, acting_user_id)
    except (ValidationError, PasswordValidationError):
        db.session.rollback()
        raise

    db.session.commit()
    return user


def _apply_user_patch(user: User, data: dict, acting_user_id: int | None) -> None:
    if "name" in data:
        name = (data["name"] or "").strip()
        if not name:
            raise ValidationError("name cannot be blank")
        user.name = name

    if "email" in data:
        user.email = (data["email"] or "").strip() or None

    if "role" in data:
        role = _normalize_role(data["role"])
        if acting_user_id == user.id and role != user.role:
            raise ValidationError("You cannot change your own role")
        user.role = role

    if "password" in data:
        user.password_hash = hash_password(data["password"])
        session_service.revoke_all_user_sessions(user.id, reason="Password changed", commit=False)

    if "is_active" in data:
        if not isinstance(data["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        if not data["is_active"]:
            _check_can_deactivate(user, acting_user_id)
            session_service.revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)
        user.is_active = data["is_active"]


def _check_can_deactivate(user: User, acting_user_id: int | None) -> None:
    if acting_user_id is not None and user.id == acting_user_id:
        raise ValidationError("You cannot deactivate your own account")


def deactivate_user(user_id: int, *, acting_user_id: int | None = None) -> User:
    """Soft delete: is_active=False and every auth token revoked."""
    user = get_user(user_id)
    _check_can_deactivate(user, acting_user_id)

    user.is_active = False
    session_service.revoke_all_user_sessions(user.id, reason="User deactivated", commit=False)
    db.session.commit()

    current_app.logger.info("User deactivated: %s", user.username)
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Authenticate user with username and password.

    Username match is exact (case-sensitive).
    Returns User if credentials valid, None otherwise.
    Raises InactiveUserError when the password is right but the account is deactivated.
    Updates last_login_at timestamp on successful authentication.
    """
    user = db.session.query(User).filter(User.username == username).first()

    if not user:
        return None

    if not verify_password(password, user.password_hash):
        return None

    if not user.is_active:
        raise InactiveUserError("Account is deactivated")

    user.last_login_at = utcnow()
    db.session.commit()
    return user
