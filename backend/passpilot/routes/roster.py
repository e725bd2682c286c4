# Overview: Flask API routes for grades, students and teacher rosters; parses input and returns JSON responses.

"""
Roster routes.

Grade mutations and student deletion are admin-only; teachers can read the
roster, add students and manage their own grade selection.

Supports CSV and Excel (.xlsx) uploads for bulk student import.
"""

import csv
import io

from flask import Blueprint, Response, g, request
from openpyxl import load_workbook

from ..decorators import protect_blueprint, require_admin
from ..models.auth import ADMIN_ROLES
from ..responses import ok
from ..services import roster_service
from ..validation import ValidationError, optional_int


roster_bp = Blueprint("roster", __name__, url_prefix="/api")
protect_blueprint(roster_bp)

XLSX_EXTENSIONS = {"xlsx", "xlsm", "xltx", "xltm"}
UPLOAD_HEADERS = ["name", "studentCode", "grade"]


# --- Grades -----------------------------------------------------------------

@roster_bp.get("/grades")
def list_grades_route():
    include_inactive = request.args.get("includeInactive") == "true" and g.role in ADMIN_ROLES
    grades = roster_service.list_grades(g.school_id, include_inactive=include_inactive)
    return ok([gr.to_dict() for gr in grades])


@roster_bp.post("/grades")
@require_admin
def create_grade_route():
    data = request.get_json(silent=True) or {}
    grade = roster_service.create_grade(g.school_id, data.get("name"))
    return ok(grade.to_dict(), 201)


@roster_bp.patch("/grades/<int:grade_id>")
@require_admin
def rename_grade_route(grade_id: int):
    data = request.get_json(silent=True) or {}
    grade = roster_service.rename_grade(grade_id, g.school_id, data.get("name"))
    return ok(grade.to_dict())


@roster_bp.delete("/grades/<int:grade_id>")
@require_admin
def delete_grade_route(grade_id: int):
    grade = roster_service.deactivate_grade(grade_id, g.school_id)
    return ok(grade.to_dict())


# --- Students ---------------------------------------------------------------

@roster_bp.get("/students")
def list_students_route():
    grade_id = optional_int(request.args.get("gradeId"), "gradeId")
    students = roster_service.list_students(g.school_id, grade_id=grade_id)
    return ok([roster_service.student_to_dict(s) for s in students])


@roster_bp.post("/students")
def create_student_route():
    data = request.get_json(silent=True) or {}
    student = roster_service.create_student(
        g.school_id,
        data.get("gradeId"),
        data.get("name"),
        data.get("studentCode"),
    )
    return ok(roster_service.student_to_dict(student), 201)


@roster_bp.post("/students/bulk")
def bulk_create_students_route():
    """Body: [{name, gradeId, studentCode?}, ...] or {"students": [...]}"""
    data = request.get_json(silent=True)
    rows = data.get("students") if isinstance(data, dict) else data
    students = roster_service.bulk_create_students(g.school_id, rows)
    return ok({"inserted": len(students), "students": [s.to_dict() for s in students]}, 201)


def _read_upload(file) -> list[dict]:
    filename = file.filename or ""
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""

    if ext == "csv":
        try:
            text = file.stream.read().decode("utf-8-sig")
        except UnicodeDecodeError:
            raise ValidationError("CSV file must be UTF-8 encoded", field="file")
        return [row for row in csv.DictReader(io.StringIO(text))]

    if ext in XLSX_EXTENSIONS:
        try:
            wb = load_workbook(file.stream, read_only=True, data_only=True)
        except Exception:
            raise ValidationError("Failed to parse spreadsheet", field="file")
        sheet = wb.active
        data = list(sheet.values)
        wb.close()
        if not data:
            return []
        headers = [str(h).strip() if h is not None else "" for h in data[0]]
        return [
            {headers[i]: row[i] for i in range(min(len(headers), len(row))) if headers[i]}
            for row in data[1:]
        ]

    raise ValidationError("Unsupported file format (use .csv or .xlsx)", field="file")


@roster_bp.get("/students/upload/template")
def upload_template_route():
    """Column headers and sample rows for the roster upload; ?format=csv downloads it."""
    grades = roster_service.list_grades(g.school_id)
    grade_name = grades[0].name if grades else "6th Grade"
    example = [
        {"name": "John Doe", "studentCode": "JD001", "grade": grade_name},
        {"name": "Jane Smith", "studentCode": "JS002", "grade": grade_name},
    ]

    if request.args.get("format") == "csv":
        buf = io.StringIO()
        writer = csv.DictWriter(buf, fieldnames=UPLOAD_HEADERS, lineterminator="\n")
        writer.writeheader()
        writer.writerows(example)
        return Response(
            buf.getvalue(),
            mimetype="text/csv",
            headers={"Content-Disposition": 'attachment; filename="roster_template.csv"'},
        )

    return ok({"headers": UPLOAD_HEADERS, "example": example})


@roster_bp.post("/students/upload")
def upload_students_route():
    """
    Multipart upload: file (.csv or .xlsx) plus optional gradeId form field.

    Columns: name, studentCode (optional), grade (optional grade name).
    """
    if "file" not in request.files:
        raise ValidationError("file is required", field="file")

    rows = _read_upload(request.files["file"])
    if not rows:
        raise ValidationError("The uploaded file has no rows", field="file")

    students = roster_service.import_student_rows(g.school_id, rows, request.form.get("gradeId"))
    return ok({"inserted": len(students)}, 201)


@roster_bp.patch("/students/<int:student_id>")
def update_student_route(student_id: int):
    data = request.get_json(silent=True) or {}
    student = roster_service.update_student(student_id, g.school_id, data, role=g.role)
    return ok(roster_service.student_to_dict(student))


@roster_bp.delete("/students/<int:student_id>")
@require_admin
def delete_student_route(student_id: int):
    student = roster_service.deactivate_student(student_id, g.school_id)
    return ok(student.to_dict())


# --- Teacher selection ------------------------------------------------------

@roster_bp.get("/roster")
def get_roster_route():
    return ok(roster_service.get_roster(g.current_user.id, g.school_id))


@roster_bp.post("/roster/select")
def select_grades_route():
    data = request.get_json(silent=True) or {}
    selected = roster_service.set_teacher_grade_selection(g.current_user.id, g.school_id, data.get("gradeIds"))
    return ok({"selectedGradeIds": selected})


@roster_bp.post("/roster/toggle")
def toggle_grade_route():
    data = request.get_json(silent=True) or {}
    selected = roster_service.toggle_teacher_grade(
        g.current_user.id, g.school_id, data.get("gradeId"), data.get("selected")
    )
    return ok({"selectedGradeIds": selected})


@roster_bp.get("/myclass")
def my_class_route():
    return ok(roster_service.get_my_class(g.current_user.id, g.school_id))


@roster_bp.post("/myclass/switch")
def switch_grade_route():
    data = request.get_json(silent=True) or {}
    if data.get("gradeId") in (None, ""):
        raise ValidationError("gradeId is required", field="gradeId")
    grade_id = roster_service.switch_active_grade(g.current_user.id, g.school_id, data.get("gradeId"))
    return ok({
        "lastActiveGradeId": grade_id,
        "selectedGradeIds": roster_service.get_teacher_grade_ids(g.current_user.id, g.school_id),
    })
