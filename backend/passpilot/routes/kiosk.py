# Overview: Flask routes for kiosk devices; parses input and returns JSON responses.

"""
Kiosk routes (/kiosk).

Two blueprints:
- kiosk_auth_bp: login/logout, no session required
- kiosk_bp: the kiosk API, authenticated by the device cookie with the
  tenant guard applied, like every other tenant-scoped blueprint

Kiosk-issued passes carry kiosk_device_id and no issuing user.
"""

from flask import Blueprint, current_app, g, request

from ..decorators import protect_blueprint, rate_limit
from ..responses import ok
from ..services import kiosk_service, pass_service, roster_service, session_service
from ..validation import AuthenticationError, ValidationError, require_int, optional_int


kiosk_auth_bp = Blueprint("kiosk_auth", __name__, url_prefix="/kiosk")
kiosk_bp = Blueprint("kiosk", __name__, url_prefix="/kiosk")
protect_blueprint(kiosk_bp, kiosk=True)


@kiosk_auth_bp.post("/login")
@rate_limit("KIOSK_LOGIN")
def kiosk_login_route():
    """Body: {schoolId, room, pin}"""
    data = request.get_json(silent=True) or {}
    if data.get("schoolId") in (None, "") or not data.get("room") or data.get("pin") in (None, ""):
        raise ValidationError("schoolId, room and pin are required")

    device = kiosk_service.authenticate_device(
        require_int(data.get("schoolId"), "schoolId"), data.get("room"), data.get("pin")
    )
    if device is None:
        raise AuthenticationError("Invalid room or PIN")

    response, status = ok({"kiosk": device.to_dict()})
    session_service.set_kiosk_cookie(response, device)
    current_app.logger.info("Kiosk %s signed in (school %s, room %s)", device.id, device.school_id, device.room)
    return response, status


@kiosk_auth_bp.post("/logout")
def kiosk_logout_route():
    response, status = ok(None)
    session_service.clear_kiosk_cookie(response)
    return response, status


@kiosk_bp.get("/me")
def kiosk_me_route():
    return ok({"kiosk": g.kiosk_device.to_dict()})


@kiosk_bp.get("/students")
def kiosk_students_route():
    grade_id = optional_int(request.args.get("gradeId"), "gradeId")
    students = roster_service.list_students(g.school_id, grade_id=grade_id)
    return ok([roster_service.student_to_dict(s) for s in students])


@kiosk_bp.get("/passes/active")
def kiosk_active_passes_route():
    return ok([pass_service.pass_to_dict(p) for p in pass_service.list_active_passes(g.school_id)])


@kiosk_bp.post("/passes")
@rate_limit("KIOSK_PASS")
def kiosk_create_pass_route():
    """Body: {studentId | studentName, reason?, type?, customReason?}"""
    data = request.get_json(silent=True) or {}
    p = pass_service.create_pass(
        g.school_id,
        student_id=data.get("studentId"),
        student_name=data.get("studentName"),
        reason=data.get("reason"),
        pass_type=data.get("type"),
        custom_reason=data.get("customReason"),
        kiosk_device_id=g.kiosk_device.id,
    )
    return ok(pass_service.pass_to_dict(p))


@kiosk_bp.patch("/passes/<int:pass_id>/return")
def kiosk_return_pass_route(pass_id: int):
    p = pass_service.return_pass(pass_id, g.school_id)
    return ok(pass_service.pass_to_dict(p))
