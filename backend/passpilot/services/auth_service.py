# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service with Multi-Tenant Support

WHY: Every action must be attributable. Uses bcrypt for password, PIN and
invite-code hashing and validates password strength.

MULTI-TENANT: Users belong to exactly one school (school_id).
Login requires the school id as well as email and password; a correct
password for a different school is a failed login.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Sessions are signed cookies (see session_service.py)
- Authentication validates the school is active
"""

import re

import bcrypt
from flask import current_app

from ..extensions import db
from ..models import User, School
from ..validation import ValidationError, AuthenticationError, ConflictError
from passpilot.time_utils import utcnow


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""
    pass


class PinValidationError(ValidationError):
    """Raised when a kiosk PIN is not 4-8 digits."""
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
        raise PasswordValidationError("Password is required", field="password")

    if len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long", field="password")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter", field="password")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter", field="password")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit", field="password")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character", field="password")


def validate_pin(pin) -> str:
    pin = str(pin).strip() if pin is not None else ""
    if not re.fullmatch(r"\d{4,8}", pin):
        raise PinValidationError("PIN must be 4 to 8 digits", field="pin")
    return pin


def _hash_secret(secret: str) -> str:
    salt = bcrypt.gensalt(rounds=current_app.config.get("BCRYPT_ROUNDS", 12))
    return bcrypt.hashpw(secret.encode('utf-8'), salt).decode('utf-8')


def check_secret(secret: str, secret_hash: str | None) -> bool:
    """
    Compare a plaintext secret against a bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    Malformed hashes count as a mismatch.
    """
    if not secret or not secret_hash:
        return False
    try:
        return bcrypt.checkpw(secret.encode('utf-8'), secret_hash.encode('utf-8'))
    except ValueError:
        return False


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    return _hash_secret(password)


def verify_password(password: str, password_hash: str) -> bool:
    return check_secret(password, password_hash)


def hash_pin(pin) -> str:
    return _hash_secret(validate_pin(pin))


def hash_code(code: str) -> str:
    """Hash an invite code. Codes are case-insensitive, stored upper-case."""
    return _hash_secret(code.strip().upper())


def normalize_email(email) -> str:
    if not isinstance(email, str) or not email.strip():
        raise ValidationError("Email is required", field="email")
    email = email.strip().lower()
    if "@" not in email or len(email) > 255:
        raise ValidationError("Email is invalid", field="email")
    return email


def authenticate(email: str, password: str, school_id: int) -> User | None:
    """
    Authenticate user by email, password and school.

    Returns User if credentials are valid, None otherwise.

    MULTI-TENANT: The user must belong to school_id, and both the user and
    the school must be active. Every failure returns None so callers cannot
    tell which check failed.
    """
    if not email or not password or school_id is None:
        return None

    user = db.session.query(User).filter_by(email=email.strip().lower()).first()

    if not user or not user.active:
        return None

    if user.school_id != school_id:
        return None

    school = db.session.get(School, user.school_id)
    if not school or not school.active:
        return None

    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    """
    Change a user's own password.

    Raises AuthenticationError if current_password is wrong and
    PasswordValidationError if new_password is too weak.
    """
    if not current_password or not new_password:
        raise ValidationError("Current password and new password are required")

    if not verify_password(current_password, user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    user.password_hash = hash_password(new_password)
    db.session.commit()


def update_profile(user: User, *, email=None, display_name=None) -> User:
    """Update the caller's own email and/or display name."""
    if email is not None:
        email = normalize_email(email)
        if email != user.email:
            taken = db.session.query(User.id).filter(User.email == email, User.id != user.id).first()
            if taken:
                raise ConflictError("Email already in use", field="email")
            user.email = email

    if display_name is not None:
        if not isinstance(display_name, str):
            raise ValidationError("displayName must be a string", field="displayName")
        display_name = display_name.strip()
        if len(display_name) > 120:
            raise ValidationError("displayName exceeds max length 120", field="displayName")
        user.display_name = display_name or None

    db.session.commit()
    return user
