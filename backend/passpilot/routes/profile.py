# Overview: Flask API routes for the caller's own profile; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import protect_blueprint
from ..responses import ok
from ..services import auth_service


profile_bp = Blueprint("profile", __name__, url_prefix="/api/profile")
protect_blueprint(profile_bp)


@profile_bp.get("/me")
def get_profile_route():
    return ok(g.current_user.to_dict())


@profile_bp.patch("/me")
def update_profile_route():
    data = request.get_json(silent=True) or {}
    user = auth_service.update_profile(
        g.current_user,
        email=data.get("email"),
        display_name=data.get("displayName"),
    )
    return ok(user.to_dict())


@profile_bp.post("/me/password")
def change_password_route():
    data = request.get_json(silent=True) or {}
    auth_service.change_password(g.current_user, data.get("currentPassword"), data.get("newPassword"))
    return ok({"message": "Password updated successfully"})
