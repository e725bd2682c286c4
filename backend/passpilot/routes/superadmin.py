# Overview: Flask API routes for superadmin cross-tenant management; parses input and returns JSON responses.

"""
Superadmin routes (/api/sa).

Cross-tenant by definition: guarded by the superadmin role, not by the
tenant guard. Every mutation is audited against the school it touches.
"""

from flask import Blueprint, g, request

from ..decorators import protect_blueprint
from ..models.auth import ROLE_SUPERADMIN, ROLE_TEACHER
from ..responses import ok
from ..services import audit_service, registration_service, school_service, user_admin_service
from ..validation import ValidationError, optional_int, require_int


sa_bp = Blueprint("superadmin", __name__, url_prefix="/api/sa")
protect_blueprint(sa_bp, roles=(ROLE_SUPERADMIN,), tenant=False)


# --- Schools ----------------------------------------------------------------

@sa_bp.get("/schools")
def list_schools_route():
    return ok([school_service.school_to_dict(s) for s in school_service.list_schools()])


@sa_bp.post("/schools")
def create_school_route():
    """Body: {name, seatsAllowed?, active?}"""
    data = request.get_json(silent=True) or {}
    school = school_service.create_school(data, actor_user_id=g.current_user.id)
    return ok(school_service.school_to_dict(school), 201)


@sa_bp.patch("/schools/<int:school_id>")
def update_school_route(school_id: int):
    data = request.get_json(silent=True) or {}
    school = school_service.update_school(school_id, data, actor_user_id=g.current_user.id)
    return ok(school_service.school_to_dict(school))


@sa_bp.delete("/schools/<int:school_id>")
def delete_school_route(school_id: int):
    counts = school_service.delete_school(school_id, g.current_user)
    return ok({"schoolId": school_id, "deleted": counts})


# --- Users ------------------------------------------------------------------

@sa_bp.get("/users")
def list_users_route():
    school_id = optional_int(request.args.get("schoolId"), "schoolId")
    if school_id is None:
        raise ValidationError("schoolId is required", field="schoolId")
    school_service.get_school(school_id)
    return ok([u.to_dict() for u in user_admin_service.list_users(school_id)])


@sa_bp.post("/users")
def create_user_route():
    """
    Body: {email, role, schoolId, password?, displayName?}

    With a password the account is created directly; without one an invite
    is issued and its code returned once.
    """
    data = request.get_json(silent=True) or {}
    if data.get("schoolId") in (None, ""):
        raise ValidationError("schoolId is required", field="schoolId")
    school_id = require_int(data.get("schoolId"), "schoolId")
    role = data.get("role") or ROLE_TEACHER

    if data.get("password"):
        user = user_admin_service.create_user(
            email=data.get("email"),
            password=data.get("password"),
            role=role,
            school_id=school_id,
            actor=g.current_user,
            display_name=data.get("displayName"),
        )
        return ok({"user": user.to_dict()}, 201)

    token, code = registration_service.create_invite(
        email=data.get("email"),
        role=role,
        school_id=school_id,
        created_by_user_id=g.current_user.id,
        expires_in_minutes=data.get("expiresInMinutes"),
    )
    return ok({
        "invite": token.to_dict(),
        "code": code,
        "expiresAt": token.to_dict()["expiresAt"],
        "activationUrl": registration_service.activation_url(school_id, token.email),
    }, 201)


@sa_bp.post("/users/<int:user_id>/promote")
def promote_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, None)
    return ok(user_admin_service.promote(target, g.current_user, data.get("role")).to_dict())


@sa_bp.post("/users/<int:user_id>/demote")
def demote_user_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, None)
    return ok(user_admin_service.demote(target, g.current_user, data.get("role")).to_dict())


@sa_bp.patch("/users/<int:user_id>/active")
def set_user_active_route(user_id: int):
    data = request.get_json(silent=True) or {}
    target = user_admin_service.get_user(user_id, None)
    return ok(user_admin_service.set_active(target, data.get("active"), g.current_user).to_dict())


# --- Audits -----------------------------------------------------------------

@sa_bp.get("/audits")
def list_audits_route():
    school_id = optional_int(request.args.get("schoolId"), "schoolId")
    limit = optional_int(request.args.get("limit"), "limit")
    return ok([a.to_dict() for a in audit_service.list_audits(school_id, limit)])
