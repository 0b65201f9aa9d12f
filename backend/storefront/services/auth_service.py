# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

Passwords are hashed with bcrypt (cost from BCRYPT_ROUNDS, 12 by default).
Emails are stored lower-cased and are unique. Self-registration always
creates a customer; staff and admin accounts are created from the CLI.

Password rules:
- Minimum 8 characters
- At least one uppercase letter, one lowercase letter and one digit
"""

import re

import bcrypt
from flask import current_app, has_app_context

from ..extensions import db
from ..models import ROLES, User
from storefront.time_utils import utcnow
from storefront.validation import ConflictError, ValidationError

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_ROUNDS", 12) if has_app_context() else 12
    salt = bcrypt.gensalt(rounds=rounds)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """Returns True if password matches hash, False otherwise."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def normalize_email(email: str | None) -> str:
    email = (email or "").strip().lower()
    if not EMAIL_RE.match(email):
        raise ValidationError("Invalid email address")
    return email


def create_user(
    *,
    name: str | None,
    email: str | None,
    password: str,
    phone: str | None = None,
    role: str = "customer",
) -> User:
    """Create a user. Raises ConflictError when the email is taken."""
    name = (name or "").strip()
    if len(name) < 2:
        raise ValidationError("Name must be at least 2 characters")
    email = normalize_email(email)
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("User with this email already exists")

    user = User(
        name=name,
        email=email,
        phone=(phone or "").strip() or None,
        password_hash=hash_password(password),
        role=role,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str | None, password: str | None) -> User | None:
    """
    Authenticate a user by email and password.

    Returns the User if credentials are valid and the account is active, None otherwise.
    """
    if not email or not password:
        return None
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def update_profile(user: User, payload: dict) -> User:
    """Customers may edit their own name and phone."""
    if "name" in payload:
        name = (payload.get("name") or "").strip()
        if len(name) < 2:
            raise ValidationError("Name must be at least 2 characters")
        user.name = name
    if "phone" in payload:
        user.phone = (payload.get("phone") or "").strip() or None
    db.session.commit()
    return user
