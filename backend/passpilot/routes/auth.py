# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

SECURITY FEATURES:
- Login requires email, password and schoolId; any mismatch is a plain 401
- Fixed-window rate limiting on login and invite activation
- Signed httpOnly session cookie (see session_service.py)
- Self-registration only through an admin-issued invite code
"""

from flask import Blueprint, current_app, g, request

from ..decorators import rate_limit, require_auth
from ..responses import ok
from ..services import auth_service, registration_service, session_service
from ..validation import AuthenticationError, ValidationError, require_int


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
@rate_limit("LOGIN")
def login_route():
    """
    Authenticate and set the session cookie.

    Body: {email, password, schoolId}
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")
    school_id = data.get("schoolId")

    if not email or not password or school_id in (None, ""):
        raise ValidationError("email, password and schoolId are required")

    user = auth_service.authenticate(str(email), str(password), require_int(school_id, "schoolId"))
    if not user:
        current_app.logger.warning("Failed login for %s (school %s) from %s", email, school_id, request.remote_addr)
        raise AuthenticationError("Invalid credentials")

    response, status = ok({"user": user.to_dict()})
    session_service.set_session_cookie(response, user)
    return response, status


@auth_bp.post("/logout")
def logout_route():
    response, status = ok(None)
    session_service.clear_session_cookie(response)
    return response, status


@auth_bp.get("/me")
@require_auth
def me_route():
    return ok({"user": g.current_user.to_dict()})


@auth_bp.post("/activate")
@rate_limit("ACTIVATE")
def activate_route():
    """
    Redeem an invite code and sign the new user in.

    Body: {email, schoolId, code, password}
    """
    data = request.get_json(silent=True) or {}
    if data.get("schoolId") in (None, ""):
        raise ValidationError("schoolId is required", field="schoolId")

    user = registration_service.redeem_invite(
        data.get("email"),
        require_int(data.get("schoolId"), "schoolId"),
        data.get("code"),
        data.get("password"),
    )

    response, status = ok({"user": user.to_dict()}, 201)
    session_service.set_session_cookie(response, user)
    return response, status
