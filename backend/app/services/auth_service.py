# Overview: Service-layer operations for auth; registration, login checks and profile updates.

"""
Authentication Service

Passwords are hashed with bcrypt (cost factor 12) and must pass the
strength rules below. Sessions are handled separately in session_service.
"""

import re

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_ADMIN, ROLE_CUSTOMER, VALID_ROLES
from ..validation import ConflictError, ValidationError
from .errors import NotFoundError
from app.time_utils import utcnow

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

PROFILE_FIELDS = ("full_name", "phone", "address")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


class AuthenticationError(Exception):
    """Bad credentials or disabled account."""

    def __init__(self, message: str, http_status: int = 401):
        super().__init__(message)
        self.http_status = http_status


def validate_password_strength(password: str) -> None:
    """
    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter, one lowercase letter and one digit
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")
    if not re.search(r"[A-Z]", password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")
    if not re.search(r"[a-z]", password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")
    if not re.search(r"\d", password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """Validate strength, then bcrypt-hash for storage."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except (ValueError, TypeError):
        return False


def normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("A valid email is required")
    return email


def register_user(
    full_name: str,
    email: str,
    password: str,
    phone: str | None = None,
    address: str | None = None,
    role: str = ROLE_CUSTOMER,
) -> User:
    """
    Create an account.

    Raises ValidationError for missing fields or weak passwords and
    ConflictError when the email is taken.
    """
    full_name = (full_name or "").strip()
    if not full_name:
        raise ValidationError("full_name is required")
    if role not in VALID_ROLES:
        raise ValidationError(f"role must be one of {', '.join(VALID_ROLES)}")

    email = normalize_email(email)
    if db.session.query(User).filter_by(email=email).first():
        raise ConflictError("Email is already registered")

    user = User(
        full_name=full_name,
        email=email,
        password_hash=hash_password(password),
        phone=(phone or "").strip() or None,
        address=(address or "").strip() or None,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email is already registered")
    return user


def create_admin(full_name: str, email: str, password: str) -> User:
    return register_user(full_name, email, password, role=ROLE_ADMIN)


def authenticate(email: str, password: str) -> User:
    """Return the user for valid credentials; AuthenticationError otherwise."""
    if not email or not password:
        raise AuthenticationError("Email and password are required", http_status=400)

    user = db.session.query(User).filter_by(email=(email or "").strip().lower()).first()
    if not user or not verify_password(password, user.password_hash):
        raise AuthenticationError("Invalid email or password")
    if not user.is_active:
        raise AuthenticationError("Account is disabled", http_status=403)

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_profile(user: User, data: dict) -> User:
    """Update name/phone/address; omitted or null fields keep their value."""
    for field in PROFILE_FIELDS:
        value = data.get(field)
        if value is None:
            continue
        value = str(value).strip()
        if field == "full_name" and not value:
            raise ValidationError("full_name cannot be blank")
        setattr(user, field, value or None)
    db.session.commit()
    return user


def change_password(user: User, old_password: str, new_password: str) -> None:
    if not old_password or not new_password:
        raise ValidationError("old_password and new_password are required")
    if not verify_password(old_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()


def list_users(role: str | None = None) -> list[User]:
    query = db.session.query(User).order_by(User.id.asc())
    if role is not None:
        if role not in VALID_ROLES:
            raise ValidationError(f"role must be one of {', '.join(VALID_ROLES)}")
        query = query.filter(User.role == role)
    return query.all()


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user
