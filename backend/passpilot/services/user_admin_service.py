# Overview: Service-layer operations for user administration; encapsulates business logic and database work.

"""
User administration.

MULTI-TENANT: school admins manage users of their own school (school_id is
always g.school_id); superadmins pass the target user's school explicitly.

SAFETY INVARIANTS:
- A school keeps at least one active admin: deactivating or demoting an
  admin when count_admins(school) <= 1 is a 409
- Nobody can deactivate their own account
- Only superadmins grant or remove the superadmin role
- Creating or reactivating a user needs a free seat
"""

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import User
from ..models.auth import ROLE_TEACHER, ROLE_ADMIN, ROLE_SUPERADMIN, ROLES
from ..validation import ValidationError, ConflictError, AuthorizationError, NotFoundError
from . import audit_service
from .auth_service import hash_password, normalize_email
from .school_service import get_school, ensure_seat_available
from .tenant_service import get_user_in_school


ROLE_RANK = {ROLE_TEACHER: 0, ROLE_ADMIN: 1, ROLE_SUPERADMIN: 2}


def count_admins(school_id: int) -> int:
    """Active users with the admin role in the school."""
    return db.session.query(User).filter(
        User.school_id == school_id,
        User.role == ROLE_ADMIN,
        User.active.is_(True),
    ).count()


def _ensure_not_last_admin(target: User, verb: str) -> None:
    if target.role == ROLE_ADMIN and target.active and count_admins(target.school_id) <= 1:
        raise ConflictError(f"Cannot {verb} the last admin")


def get_user(user_id: int, school_id: int | None) -> User:
    """school_id=None is the superadmin's cross-tenant lookup."""
    if school_id is not None:
        return get_user_in_school(user_id, school_id)
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_users(school_id: int) -> list[User]:
    return db.session.query(User).filter(User.school_id == school_id).order_by(User.id.asc()).all()


def create_user(
    *,
    email,
    password,
    role: str,
    school_id: int,
    actor: User | None = None,
    display_name: str | None = None,
) -> User:
    """
    Create an active user directly (superadmin, CLI bootstrap).

    Raises ConflictError on duplicate email or when the seat limit is reached.
    """
    if role not in ROLES:
        raise ValidationError(f"role must be one of: {', '.join(ROLES)}", field="role")
    if role == ROLE_SUPERADMIN and actor is not None and actor.role != ROLE_SUPERADMIN:
        raise AuthorizationError("Only a superadmin can create superadmins")

    email = normalize_email(email)
    school = get_school(school_id)

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already in use", field="email")
    if role != ROLE_SUPERADMIN:
        ensure_seat_available(school)

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        school_id=school.id,
        display_name=display_name,
        active=True,
    )
    db.session.add(user)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Email already in use", field="email")

    audit_service.record(actor.id if actor else None, school.id, "USER_CREATED", "user", user.id,
                         {"email": email, "role": role})
    db.session.commit()
    return user


def set_active(target: User, active, actor: User) -> User:
    if not isinstance(active, bool):
        raise ValidationError("active must be true or false", field="active")

    if active == target.active:
        return target

    if not active:
        if target.id == actor.id:
            raise ConflictError("You cannot deactivate your own account")
        _ensure_not_last_admin(target, "deactivate")
    elif target.role != ROLE_SUPERADMIN:
        ensure_seat_available(get_school(target.school_id), include_pending_invites=False)

    target.active = active
    audit_service.record(actor.id, target.school_id, "USER_ACTIVATE" if active else "USER_DEACTIVATE",
                         "user", target.id, None)
    db.session.commit()
    return target


def promote(target: User, actor: User, new_role: str | None = None) -> User:
    """
    Raise a user's role. Default target role is admin.

    Admins can promote teachers to admin; superadmins can also grant
    superadmin.
    """
    new_role = new_role or ROLE_ADMIN
    if new_role not in (ROLE_ADMIN, ROLE_SUPERADMIN):
        raise ValidationError("role must be 'admin' or 'superadmin'", field="role")
    if new_role == ROLE_SUPERADMIN and actor.role != ROLE_SUPERADMIN:
        raise AuthorizationError("Only a superadmin can grant superadmin")
    if ROLE_RANK[new_role] <= ROLE_RANK[target.role]:
        raise ValidationError(f"User is already {target.role}", field="role")

    old_role = target.role
    target.role = new_role
    audit_service.record(actor.id, target.school_id, "USER_PROMOTE", "user", target.id,
                         {"from": old_role, "to": new_role})
    db.session.commit()
    return target


def demote(target: User, actor: User, new_role: str | None = None) -> User:
    """
    Lower a user's role. Default target role is teacher.

    Demoting the last active admin of a school is refused.
    """
    new_role = new_role or ROLE_TEACHER
    if new_role not in (ROLE_TEACHER, ROLE_ADMIN):
        raise ValidationError("role must be 'teacher' or 'admin'", field="role")
    if target.role == ROLE_SUPERADMIN and actor.role != ROLE_SUPERADMIN:
        raise AuthorizationError("Only a superadmin can demote a superadmin")
    if ROLE_RANK[new_role] >= ROLE_RANK[target.role]:
        raise ValidationError(f"User is not above {new_role}", field="role")

    _ensure_not_last_admin(target, "demote")

    old_role = target.role
    target.role = new_role
    audit_service.record(actor.id, target.school_id, "USER_DEMOTE", "user", target.id,
                         {"from": old_role, "to": new_role})
    db.session.commit()
    return target


def reset_password(target: User, new_password, actor: User) -> None:
    if not new_password:
        raise ValidationError("newPassword is required", field="newPassword")
    if target.role == ROLE_SUPERADMIN and actor.role != ROLE_SUPERADMIN:
        raise AuthorizationError("Only a superadmin can reset a superadmin's password")

    target.password_hash = hash_password(new_password)
    audit_service.record(actor.id, target.school_id, "USER_PASSWORD_RESET", "user", target.id, None)
    db.session.commit()
