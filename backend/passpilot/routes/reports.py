# Overview: Flask API routes for reports; parses input and returns JSON responses.

"""
Reporting routes: summary statistics and CSV export over the same filters.

Query parameters: from, to, gradeId, teacherId, type, scope.
Teachers always get scope=mine; asking for school is a 403.
"""

from flask import Blueprint, Response, g, request, stream_with_context

from ..decorators import protect_blueprint
from ..responses import ok
from ..services import pass_service, reporting_service
from ..services.reporting_service import ReportFilters
from ..validation import optional_int
from passpilot.time_utils import utcnow
from .passes import parse_date_range


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")
protect_blueprint(reports_bp)


def _filters_from_request() -> ReportFilters:
    start, end = parse_date_range(request.args)
    return ReportFilters(
        school_id=g.school_id,
        scope=pass_service.resolve_scope(request.args.get("scope"), g.role),
        requesting_user_id=g.current_user.id,
        start=start,
        end=end,
        grade_id=optional_int(request.args.get("gradeId"), "gradeId"),
        teacher_id=optional_int(request.args.get("teacherId"), "teacherId"),
        pass_type=request.args.get("type") or None,
    )


@reports_bp.get("/summary")
def summary_route():
    return ok(reporting_service.generate_summary(_filters_from_request()))


@reports_bp.get("/export.csv")
def export_csv_route():
    # Rows are loaded up front so filter errors still answer with the JSON envelope
    rows = reporting_service.export_rows(_filters_from_request())
    filename = f"passes-{utcnow().strftime('%Y%m%d')}.csv"
    return Response(
        stream_with_context(reporting_service.render_csv(rows)),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )
