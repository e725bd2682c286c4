# Overview: Flask API routes for school administration; parses input and returns JSON responses.

"""
School admin routes (/api/admin).

MULTI-TENANT: Every route works on g.school_id only. The blueprint guard
requires role admin or superadmin and applies the tenant guard, and every
target id is resolved within the caller's school (404 otherwise).

Every mutation appends an audit row (see audit_service.record).
"""

from flask import Blueprint, g, request

from ..decorators import protect_blueprint
from ..extensions import db
from ..models import User, Pass, Grade, Student, KioskDevice
from ..models.auth import ADMIN_ROLES
from ..models.passes import STATUS_ACTIVE
from ..responses import ok
from ..services import (
    audit_service,
    kiosk_service,
    registration_service,
    school_service,
    user_admin_service,
)
from ..validation import optional_int


admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")
protect_blueprint(admin_bp, roles=ADMIN_ROLES)


@admin_bp.get("/overview")
def overview_route():
    """KPI cards for the admin dashboard."""
    school_id = g.school_id
    school = school_service.get_school(school_id)
    users = db.session.query(User).filter(User.school_id == school_id)
    return ok({
        "schoolId": school_id,
        "totalUsers": users.count(),
        "activeUsers": users.filter(User.active.is_(True)).count(),
        "activePasses": db.session.query(Pass).filter(
            Pass.school_id == school_id, Pass.status == STATUS_ACTIVE
        ).count(),
        "grades": db.session.query(Grade).filter(Grade.school_id == school_id, Grade.is_active.is_(True)).count(),
        "students": db.session.query(Student).filter(
            Student.school_id == school_id, Student.is_active.is_(True)
        ).count(),
        "kiosks": db.session.query(KioskDevice).filter(KioskDevice.school_id == school_id).count(),
        "seatsAllowed": school.seats_allowed,
        "seatsUsed": school_service.seats_in_use(school_id, include_pending_invites=False),
    })


# --- Settings ---------------------------------------------------------------

@admin_bp.get("/settings")
def get_settings_route():
    return ok(school_service.school_to_dict(school_service.get_school(g.school_id)))


@admin_bp.patch("/settings")
def update_settings_route():
    data = request.get_json(silent=True) or {}
    data.pop("schoolId", None)
    school = school_service.update_school(
        g.school_id, data, actor_user_id=g.current_user.id, policy=school_service.SCHOOL_SETTINGS_POLICY
    )
    return ok(school_service.school_to_dict(school))


# --- Users ------------------------------------------------------------------

@admin_bp.get("/users")
def list_users_route():
    return ok([u.to_dict() for u in user_admin_service.list_users(g.school_id)])


@admin_bp.post("/users/invite")
def invite_user_route():
    """Body: {email, role: teacher|admin, expiresInMinutes?}"""
    data = request.get_json(silent=True) or {}
    token, code = registration_service.create_invite(
        email=data.get("email"),
        role=data.get("role") or "teacher",
        school_id=g.school_id,
        created_by_user_id=g.current_user.id,
        expires_in_minutes=data.get("expiresInMinutes"),
    )
    return ok({
        "invite": token.to_dict(),
        "code": code,
        "expiresAt": token.to_dict()["expiresAt"],
        "activationUrl": registration_service.activation_url(g.school_id, token.email),
    }, 201)


@admin_bp.post("/users/<int:user_id>/promote")
def promote_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, g.school_id)
    user = user_admin_service.promote(target, g.current_user, data.get("role"))
    return ok(user.to_dict())


@admin_bp.post("/users/<int:user_id>/demote")
def demote_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, g.school_id)
    user = user_admin_service.demote(target, g.current_user, data.get("role"))
    return ok(user.to_dict())


@admin_bp.patch("/users/<int:user_id>/active")
def set_user_active_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, g.school_id)
    user = user_admin_service.set_active(target, data.get("active"), g.current_user)
    return ok(user.to_dict())


@admin_bp.post("/users/<int:user_id>/reset-password")
def reset_password_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, g.school_id)
    user_admin_service.reset_password(target, data.get("newPassword"), g.current_user)
    return ok({"userId": target.id})


# --- Audits -----------------------------------------------------------------

@admin_bp.get("/audits")
def list_audits_route():
    limit = optional_int(request.args.get("limit"), "limit")
    return ok([a.to_dict() for a in audit_service.list_audits(g.school_id, limit)])


# --- Kiosks -----------------------------------------------------------------

@admin_bp.get("/kiosks")
def list_kiosks_route():
    return ok([d.to_dict() for d in kiosk_service.list_devices(g.school_id)])


@admin_bp.post("/kiosks")
def create_kiosk_route():
    """Body: {room, pin}"""
    data = request.get_json(silent=True) or {}
    device = kiosk_service.create_device(g.school_id, data.get("room"), data.get("pin"), g.current_user.id)
    return ok(device.to_dict(), 201)


@admin_bp.patch("/kiosks/<int:device_id>/active")
def set_kiosk_active_route(device_id: int):
    data = request.get_json(silent=True) or {}
    device = kiosk_service.set_device_active(device_id, g.school_id, data.get("active"), g.current_user.id)
    return ok(device.to_dict())


@admin_bp.post("/kiosks/<int:device_id>/rotate")
def rotate_kiosk_route(device_id: int):
    """Body: {pin?} - new token always, new PIN when given."""
    data = request.get_json(silent=True) or {}
    device = kiosk_service.rotate_token(device_id, g.school_id, g.current_user.id, pin=data.get("pin"))
    return ok(device.to_dict())
