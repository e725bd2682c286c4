# Overview: Flask API routes for hall passes; parses input and returns JSON responses.

"""
Pass routes (teacher and admin).

MULTI-TENANT: protect_blueprint authenticates every request and rejects a
declared schoolId that differs from the session's; the service filters by
g.school_id.
"""

from flask import Blueprint, g, request

from ..decorators import protect_blueprint
from ..responses import ok
from ..services import pass_service
from ..validation import ValidationError
from passpilot.time_utils import parse_iso_datetime, parse_range_end


passes_bp = Blueprint("passes", __name__, url_prefix="/api/passes")
protect_blueprint(passes_bp)


def parse_date_range(args) -> tuple:
    """from/to query values; a date-only `to` covers that whole day."""
    raw_from = args.get("from") or None
    raw_to = args.get("to") or None
    try:
        start = parse_iso_datetime(raw_from)
    except ValueError:
        raise ValidationError("from must be an ISO-8601 date or datetime", field="from")
    try:
        end = parse_range_end(raw_to)
    except ValueError:
        raise ValidationError("to must be an ISO-8601 date or datetime", field="to")
    return start, end


@passes_bp.get("")
def list_passes_route():
    start, end = parse_date_range(request.args)
    passes = pass_service.list_passes(
        g.school_id,
        scope=request.args.get("scope"),
        role=g.role,
        user_id=g.current_user.id,
        status=request.args.get("status") or None,
        start=start,
        end=end,
    )
    return ok([pass_service.pass_to_dict(p) for p in passes])


@passes_bp.post("")
def create_pass_route():
    """Body: {studentId | studentName, reason?, type?, customReason?}"""
    data = request.get_json(silent=True) or {}
    p = pass_service.create_pass(
        g.school_id,
        student_id=data.get("studentId"),
        student_name=data.get("studentName"),
        reason=data.get("reason"),
        pass_type=data.get("type"),
        custom_reason=data.get("customReason"),
        issued_by_user_id=g.current_user.id,
    )
    return ok(pass_service.pass_to_dict(p))


@passes_bp.patch("/<int:pass_id>/return")
def return_pass_route(pass_id: int):
    p = pass_service.return_pass(pass_id, g.school_id, actor_user_id=g.current_user.id)
    return ok(pass_service.pass_to_dict(p))
