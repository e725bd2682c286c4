# Overview: Service-layer operations for roster; encapsulates business logic and database work.

"""
Roster Store: grades, students and teacher grade selection.

MULTI-TENANT: every function takes school_id and resolves ids through the
tenant_service lookups, so an id from another school is a 404.

SOFT DELETE: grades and students are deactivated (is_active=False), never
removed, so historical passes keep resolving their student and grade.
"""

from ..extensions import db
from ..models import Grade, Student, TeacherGradeMap, Pass, User
from ..models.passes import STATUS_ACTIVE
from ..models.auth import ADMIN_ROLES, ROLE_ADMIN
from ..validation import ValidationError, ConflictError, AuthorizationError, require_int
from passpilot.time_utils import to_utc_z
from .tenant_service import get_grade_in_school, get_student_in_school


GRADE_NAME_MAX = 80
STUDENT_NAME_MAX = 140
STUDENT_CODE_MAX = 80


def _clean_text(value, label: str, max_len: int, required: bool = True) -> str | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        if required:
            raise ValidationError(f"{label} is required", field=label)
        return None
    if isinstance(value, (dict, list, bool)):
        raise ValidationError(f"{label} must be a string", field=label)
    text = str(value).strip()
    if len(text) > max_len:
        raise ValidationError(f"{label} exceeds max length {max_len}", field=label)
    return text


# ---------------------------------------------------------------------------
# Grades
# ---------------------------------------------------------------------------

def list_grades(school_id: int, include_inactive: bool = False) -> list[Grade]:
    query = db.session.query(Grade).filter(Grade.school_id == school_id)
    if not include_inactive:
        query = query.filter(Grade.is_active.is_(True))
    return query.order_by(Grade.name.asc(), Grade.id.asc()).all()


def create_grade(school_id: int, name) -> Grade:
    """
    Create a grade. Names are unique per school.

    Re-creating the name of a deactivated grade reactivates that row
    instead of failing, so its students and passes come back with it.
    """
    name = _clean_text(name, "name", GRADE_NAME_MAX)

    existing = db.session.query(Grade).filter_by(school_id=school_id, name=name).first()
    if existing:
        if existing.is_active:
            raise ConflictError("A grade with this name already exists", field="name")
        existing.is_active = True
        db.session.commit()
        return existing

    grade = Grade(school_id=school_id, name=name, is_active=True)
    db.session.add(grade)
    db.session.commit()
    return grade


def rename_grade(grade_id: int, school_id: int, name) -> Grade:
    grade = get_grade_in_school(grade_id, school_id)
    name = _clean_text(name, "name", GRADE_NAME_MAX)

    clash = db.session.query(Grade).filter(
        Grade.school_id == school_id,
        Grade.name == name,
        Grade.id != grade.id,
    ).first()
    if clash:
        raise ConflictError("A grade with this name already exists", field="name")

    grade.name = name
    db.session.commit()
    return grade


def deactivate_grade(grade_id: int, school_id: int) -> Grade:
    """Soft delete. Teacher selections of the grade are dropped."""
    grade = get_grade_in_school(grade_id, school_id)
    grade.is_active = False
    db.session.query(TeacherGradeMap).filter_by(school_id=school_id, grade_id=grade.id).delete(
        synchronize_session=False
    )
    db.session.commit()
    return grade


def _active_grade(grade_id, school_id: int, label: str = "gradeId") -> Grade:
    grade = get_grade_in_school(require_int(grade_id, label), school_id)
    if not grade.is_active:
        raise ValidationError("Grade is inactive", field=label)
    return grade


# ---------------------------------------------------------------------------
# Students
# ---------------------------------------------------------------------------

def list_students(school_id: int, grade_id: int | None = None, include_inactive: bool = False) -> list[Student]:
    query = db.session.query(Student).filter(Student.school_id == school_id)
    if grade_id is not None:
        get_grade_in_school(grade_id, school_id)
        query = query.filter(Student.grade_id == grade_id)
    if not include_inactive:
        query = query.filter(Student.is_active.is_(True))
    return query.order_by(Student.name.asc(), Student.id.asc()).all()


def create_student(school_id: int, grade_id, name, student_code=None) -> Student:
    grade = _active_grade(grade_id, school_id)
    student = Student(
        school_id=school_id,
        grade_id=grade.id,
        name=_clean_text(name, "name", STUDENT_NAME_MAX),
        student_code=_clean_text(student_code, "studentCode", STUDENT_CODE_MAX, required=False),
        is_active=True,
    )
    db.session.add(student)
    db.session.commit()
    return student


def bulk_create_students(school_id: int, rows, row_numbers: list[int] | None = None) -> list[Student]:
    """
    Insert many students in one transaction.

    All-or-nothing: every row is validated before anything is added.
    Errors name the zero-based row index, or row_numbers[index] when the
    rows were filtered out of a larger source (spreadsheet uploads).
    """
    if not isinstance(rows, list) or not rows:
        raise ValidationError("Expected a non-empty array of students")

    grades: dict[int, Grade] = {}
    students: list[Student] = []

    for index, row in enumerate(rows):
        label = row_numbers[index] if row_numbers else index
        if not isinstance(row, dict):
            raise ValidationError(f"Row {label}: expected an object", row=label)
        try:
            grade_id = require_int(row.get("gradeId"), "gradeId")
            if grade_id not in grades:
                grades[grade_id] = _active_grade(grade_id, school_id)
            name = _clean_text(row.get("name"), "name", STUDENT_NAME_MAX)
            code = _clean_text(row.get("studentCode"), "studentCode", STUDENT_CODE_MAX, required=False)
        except (ValidationError, LookupError) as e:
            raise ValidationError(f"Row {label}: {getattr(e, 'message', str(e))}", row=label)

        students.append(Student(
            school_id=school_id,
            grade_id=grade_id,
            name=name,
            student_code=code,
            is_active=True,
        ))

    db.session.add_all(students)
    db.session.commit()
    return students


def import_student_rows(school_id: int, rows: list[dict], default_grade_id=None) -> list[Student]:
    """
    Turn uploaded spreadsheet rows into bulk_create_students input.

    Columns: name, optional studentCode, optional grade (grade name).
    Rows without a grade column fall back to default_grade_id.
    """
    by_name = {g.name.lower(): g.id for g in list_grades(school_id)}
    fallback = require_int(default_grade_id, "gradeId") if default_grade_id not in (None, "") else None

    prepared = []
    sources = []
    for index, row in enumerate(rows):
        normalized = {str(k).strip().lower(): v for k, v in row.items() if k is not None}
        name = normalized.get("name")
        if name is None or str(name).strip() == "":
            # Blank spreadsheet lines
            if not any(v not in (None, "") for v in normalized.values()):
                continue
        grade_name = normalized.get("grade")
        if grade_name not in (None, ""):
            grade_id = by_name.get(str(grade_name).strip().lower())
            if grade_id is None:
                raise ValidationError(f"Row {index}: unknown grade {grade_name!r}", row=index)
        elif fallback is not None:
            grade_id = fallback
        else:
            raise ValidationError(f"Row {index}: grade is required", row=index)

        code = normalized.get("studentcode", normalized.get("student_code"))
        sources.append(index)
        prepared.append({
            "name": name,
            "gradeId": grade_id,
            "studentCode": str(code) if code not in (None, "") else None,
        })

    return bulk_create_students(school_id, prepared, row_numbers=sources)


def update_student(student_id: int, school_id: int, payload: dict, role: str = ROLE_ADMIN) -> Student:
    """Partial update. Only admins may flip isActive; that is a soft delete."""
    student = get_student_in_school(student_id, school_id)
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    unknown = set(payload) - {"name", "gradeId", "studentCode", "isActive"}
    if unknown:
        raise ValidationError(f"Field not allowed: {sorted(unknown)[0]}", field=sorted(unknown)[0])
    if "isActive" in payload and role not in ADMIN_ROLES:
        raise AuthorizationError("Forbidden: only admins can deactivate or restore students")

    if "name" in payload:
        student.name = _clean_text(payload["name"], "name", STUDENT_NAME_MAX)
    if "gradeId" in payload:
        student.grade_id = _active_grade(payload["gradeId"], school_id).id
    if "studentCode" in payload:
        student.student_code = _clean_text(payload["studentCode"], "studentCode", STUDENT_CODE_MAX, required=False)
    if "isActive" in payload:
        if not isinstance(payload["isActive"], bool):
            raise ValidationError("isActive must be true or false", field="isActive")
        student.is_active = payload["isActive"]

    db.session.commit()
    return student


def deactivate_student(student_id: int, school_id: int) -> Student:
    student = get_student_in_school(student_id, school_id)
    student.is_active = False
    db.session.commit()
    return student


def student_to_dict(student: Student) -> dict:
    data = student.to_dict()
    data["gradeName"] = student.grade.name if student.grade else None
    return data


# ---------------------------------------------------------------------------
# Teacher grade selection ("My Class")
# ---------------------------------------------------------------------------

def get_teacher_grade_ids(user_id: int, school_id: int) -> list[int]:
    rows = db.session.query(TeacherGradeMap.grade_id).filter_by(
        user_id=user_id, school_id=school_id
    ).order_by(TeacherGradeMap.grade_id.asc()).all()
    return [r[0] for r in rows]


def set_teacher_grade_selection(user_id: int, school_id: int, grade_ids) -> list[int]:
    """
    Replace-all: delete the prior mappings, insert the new set.

    Ids are de-duplicated and must all be active grades of the school;
    nothing changes if any id is invalid.
    """
    if not isinstance(grade_ids, list):
        raise ValidationError("gradeIds must be an array", field="gradeIds")

    wanted: list[int] = []
    for raw in grade_ids:
        gid = require_int(raw, "gradeIds")
        if gid not in wanted:
            wanted.append(gid)

    for gid in wanted:
        _active_grade(gid, school_id, "gradeIds")

    db.session.query(TeacherGradeMap).filter_by(user_id=user_id, school_id=school_id).delete(
        synchronize_session=False
    )
    for gid in wanted:
        db.session.add(TeacherGradeMap(user_id=user_id, school_id=school_id, grade_id=gid))
    db.session.commit()

    return sorted(wanted)


def toggle_teacher_grade(user_id: int, school_id: int, grade_id, selected) -> list[int]:
    """Idempotent add/remove of a single mapping. Returns the new selection."""
    if not isinstance(selected, bool):
        raise ValidationError("selected must be true or false", field="selected")
    grade_id = require_int(grade_id, "gradeId")

    existing = db.session.query(TeacherGradeMap).filter_by(
        user_id=user_id, school_id=school_id, grade_id=grade_id
    ).first()

    if selected:
        _active_grade(grade_id, school_id)
        if existing is None:
            db.session.add(TeacherGradeMap(user_id=user_id, school_id=school_id, grade_id=grade_id))
    else:
        get_grade_in_school(grade_id, school_id)
        if existing is not None:
            db.session.delete(existing)

    db.session.commit()
    return get_teacher_grade_ids(user_id, school_id)


def switch_active_grade(user_id: int, school_id: int, grade_id) -> int:
    """
    Remember which "My Class" grade tab the teacher is on.

    The grade must be an active grade of the school. It is added to the
    selection if it was not already there.
    """
    grade = _active_grade(grade_id, school_id)
    user = db.session.get(User, user_id)

    exists = db.session.query(TeacherGradeMap.id).filter_by(
        user_id=user_id, school_id=school_id, grade_id=grade.id
    ).first()
    if exists is None:
        db.session.add(TeacherGradeMap(user_id=user_id, school_id=school_id, grade_id=grade.id))

    user.last_active_grade_id = grade.id
    db.session.commit()
    return grade.id


def get_roster(user_id: int, school_id: int) -> dict:
    return {
        "grades": [g.to_dict() for g in list_grades(school_id)],
        "students": [student_to_dict(s) for s in list_students(school_id)],
        "selectedGradeIds": get_teacher_grade_ids(user_id, school_id),
    }


def get_my_class(user_id: int, school_id: int) -> dict:
    """Students of the selected grades, each flagged with its active pass."""
    selected = get_teacher_grade_ids(user_id, school_id)
    if not selected:
        return {
            "gradesActive": [],
            "lastActiveGradeId": None,
            "students": [],
            "stats": {"total": 0, "out": 0, "available": 0},
        }

    grades = db.session.query(Grade).filter(
        Grade.school_id == school_id,
        Grade.id.in_(selected),
        Grade.is_active.is_(True),
    ).order_by(Grade.name.asc()).all()

    students = db.session.query(Student).filter(
        Student.school_id == school_id,
        Student.grade_id.in_([g.id for g in grades]),
        Student.is_active.is_(True),
    ).order_by(Student.name.asc(), Student.id.asc()).all()

    active = db.session.query(Pass).filter(
        Pass.school_id == school_id,
        Pass.status == STATUS_ACTIVE,
        Pass.student_id.isnot(None),
    ).all()
    active_by_student = {p.student_id: p for p in active}
    last_active = db.session.get(User, user_id).last_active_grade_id

    rows = []
    for s in students:
        p = active_by_student.get(s.id)
        rows.append({
            "id": s.id,
            "name": s.name,
            "studentCode": s.student_code,
            "gradeId": s.grade_id,
            "isOut": p is not None,
            "activePassId": p.id if p else None,
            "since": to_utc_z(p.starts_at) if p else None,
            "passType": p.type if p else None,
        })

    out = sum(1 for r in rows if r["isOut"])
    return {
        "gradesActive": [g.to_dict() for g in grades],
        "lastActiveGradeId": last_active if last_active in {g.id for g in grades} else None,
        "students": rows,
        "stats": {"total": len(rows), "out": out, "available": len(rows) - out},
    }
