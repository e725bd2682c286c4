# Overview: Service-layer operations for registration invites; encapsulates business logic and database work.

"""
Invite codes for self-activation.

WHY: Invites live in registration_tokens so they survive restarts and work
across instances.

FLOW:
1. Admin creates an invite: a 6-character hex code, shown once, stored
   only as a bcrypt hash with expires_at
2. The invitee POSTs /api/auth/activate with email, schoolId, code and a
   password; the newest unused, unexpired token for (email, school) is
   checked, the user is created and the token marked used
"""

import secrets
from datetime import timedelta
from urllib.parse import quote

from flask import current_app

from ..extensions import db
from ..models import User, RegistrationToken
from ..models.auth import ROLE_TEACHER, ROLE_ADMIN
from ..validation import ValidationError, ConflictError, AuthenticationError
from passpilot.time_utils import utcnow
from . import audit_service
from .auth_service import hash_code, check_secret, hash_password, normalize_email
from .school_service import get_school, ensure_seat_available


INVITE_ROLES = (ROLE_TEACHER, ROLE_ADMIN)
MAX_INVITE_MINUTES = 7 * 24 * 60


def generate_code() -> str:
    """6 upper-case hex characters (3 random bytes)."""
    return secrets.token_hex(3).upper()


def create_invite(
    *,
    email,
    role: str,
    school_id: int,
    created_by_user_id: int | None,
    expires_in_minutes: int | None = None,
) -> tuple[RegistrationToken, str]:
    """
    Create an invite. Returns (token_row, plaintext_code).

    Raises ConflictError if the email already has an account or the school
    has no free seat.
    """
    email = normalize_email(email)
    if role not in INVITE_ROLES:
        raise ValidationError("role must be 'teacher' or 'admin'", field="role")

    if expires_in_minutes is None:
        expires_in_minutes = current_app.config.get("INVITE_EXPIRY_MINUTES", 1440)
    if isinstance(expires_in_minutes, bool) or not isinstance(expires_in_minutes, int) \
            or not (1 <= expires_in_minutes <= MAX_INVITE_MINUTES):
        raise ValidationError(
            f"expiresInMinutes must be an integer between 1 and {MAX_INVITE_MINUTES}",
            field="expiresInMinutes",
        )

    school = get_school(school_id)

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already in use", field="email")
    ensure_seat_available(school)

    code = generate_code()
    token = RegistrationToken(
        email=email,
        school_id=school.id,
        role=role,
        code_hash=hash_code(code),
        created_by_user_id=created_by_user_id,
        expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
    )
    db.session.add(token)
    db.session.flush()

    audit_service.record(created_by_user_id, school.id, "INVITE_CREATE", "invite", token.id,
                         {"email": email, "role": role})
    db.session.commit()
    return token, code


def activation_url(school_id: int, email: str) -> str:
    return f"/activate?schoolId={school_id}&email={quote(email.lower())}"


def redeem_invite(email, school_id: int, code, password) -> User:
    """
    Create the invited user and consume the invite.

    Raises AuthenticationError when there is no matching live invite (wrong
    code, expired, or already used), ConflictError when the email already
    has an account.
    """
    email = normalize_email(email)
    if not code or not isinstance(code, str):
        raise ValidationError("code is required", field="code")

    now = utcnow()
    token = db.session.query(RegistrationToken).filter(
        RegistrationToken.email == email,
        RegistrationToken.school_id == school_id,
        RegistrationToken.used_at.is_(None),
        RegistrationToken.expires_at > now,
    ).order_by(RegistrationToken.created_at.desc(), RegistrationToken.id.desc()).first()

    if token is None or not check_secret(code.strip().upper(), token.code_hash):
        current_app.logger.warning("Invite activation failed for %s in school %s", email, school_id)
        raise AuthenticationError("Invalid or expired invite code")

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already in use", field="email")

    school = get_school(school_id)
    if not school.active:
        raise AuthenticationError("Invalid or expired invite code")
    # The invite itself already holds a seat
    ensure_seat_available(school, include_pending_invites=False)

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=token.role,
        school_id=school.id,
        active=True,
        last_login_at=now,
    )
    db.session.add(user)
    token.used_at = now
    db.session.flush()

    audit_service.record(user.id, school.id, "INVITE_REDEEMED", "user", user.id, {"inviteId": token.id})
    db.session.commit()

    current_app.logger.info("Invite %s redeemed by user %s in school %s", token.id, user.id, school.id)
    return user
