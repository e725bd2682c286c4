"""
Multi-Tenant Service: Tenant Validation and Scoping Helpers

WHY: Centralize tenant validation logic for reuse across services and routes.
Every request is scoped to a school, and cross-tenant access must be
explicitly denied.

SECURITY INVARIANTS:
1. Every authenticated request has g.school_id set (from the session)
2. A schoolId declared by the client (path, JSON body or query string)
   must equal g.school_id, or the request is rejected with 403
3. Ids from client input are resolved through get_*_in_school, which
   answers 404 for rows owned by another school so probing reveals nothing
4. Cross-tenant lookups are logged as warnings

USAGE:
    from passpilot.services.tenant_service import get_student_in_school

    student = get_student_in_school(student_id, g.school_id)
"""

from flask import current_app, request

from ..extensions import db
from ..models import Grade, Student, User, Pass, KioskDevice
from ..validation import AuthorizationError, NotFoundError


class TenantAccessError(AuthorizationError):
    """Raised when cross-tenant access is attempted."""
    pass


SCHOOL_ID_KEYS = ("schoolId", "school_id")


def declared_school_ids() -> list:
    """Collect every schoolId the client declared on this request."""
    declared = []

    view_args = request.view_args or {}
    for key in SCHOOL_ID_KEYS:
        if key in view_args:
            declared.append(view_args[key])
        if key in request.args:
            declared.append(request.args.get(key))
        if key in request.form:
            declared.append(request.form.get(key))

    if request.is_json:
        body = request.get_json(silent=True)
        if isinstance(body, dict):
            for key in SCHOOL_ID_KEYS:
                if body.get(key) is not None:
                    declared.append(body[key])

    return declared


def enforce_tenant(session_school_id: int, declared_school_id) -> None:
    """
    Reject a declared schoolId that differs from the session's.

    None/"" means nothing was declared. Values are compared as strings so
    "7" from a query string matches 7 from the session.
    """
    if declared_school_id is None or declared_school_id == "":
        return
    if str(declared_school_id).strip() != str(session_school_id):
        current_app.logger.warning(
            "Tenant guard rejected schoolId=%s for session school %s on %s %s",
            declared_school_id, session_school_id, request.method, request.path,
        )
        raise TenantAccessError("Forbidden: school mismatch")


def enforce_request_tenant(session_school_id: int) -> None:
    for declared in declared_school_ids():
        enforce_tenant(session_school_id, declared)


def _get_in_school(model, label: str, obj_id, school_id: int):
    obj = db.session.get(model, obj_id) if obj_id is not None else None

    if obj is None:
        raise NotFoundError(f"{label} not found")

    if obj.school_id != school_id:
        # Don't reveal it exists in another school
        current_app.logger.warning(
            "Cross-tenant lookup: %s %s belongs to school %s, not %s",
            label, obj_id, obj.school_id, school_id,
        )
        raise NotFoundError(f"{label} not found")

    return obj


def get_grade_in_school(grade_id: int, school_id: int) -> Grade:
    return _get_in_school(Grade, "Grade", grade_id, school_id)


def get_student_in_school(student_id: int, school_id: int) -> Student:
    return _get_in_school(Student, "Student", student_id, school_id)


def get_user_in_school(user_id: int, school_id: int) -> User:
    return _get_in_school(User, "User", user_id, school_id)


def get_pass_in_school(pass_id: int, school_id: int) -> Pass:
    return _get_in_school(Pass, "Pass", pass_id, school_id)


def get_kiosk_in_school(device_id: int, school_id: int) -> KioskDevice:
    return _get_in_school(KioskDevice, "Kiosk device", device_id, school_id)
