# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

import csv
import io
import math
from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, Iterator

from sqlalchemy.orm import joinedload

from passpilot.extensions import db
from passpilot.models import Grade, Pass, Student
from passpilot.time_utils import utcnow, to_utc_z
from passpilot.validation import ValidationError
from passpilot.models.passes import PASS_TYPES
from passpilot.services.pass_service import SCOPE_MINE, duration_minutes, scoped_pass_query
from passpilot.services.roster_service import get_teacher_grade_ids
from passpilot.services.tenant_service import get_grade_in_school


KIOSK_GROUP_NAME = "Kiosk"

CSV_HEADER = [
    "ID",
    "Student Name",
    "Student Code",
    "Grade",
    "Pass Type",
    "Custom Reason",
    "Issued By",
    "Start Time",
    "End Time",
    "Duration (Minutes)",
    "Status",
]


@dataclass
class ReportFilters:
    """
    Filters shared by the summary and the CSV export.

    scope must already be resolved against the caller's role
    (pass_service.resolve_scope). start is inclusive, end exclusive.
    """
    school_id: int
    scope: str
    requesting_user_id: int
    start: datetime | None = None
    end: datetime | None = None
    grade_id: int | None = None
    teacher_id: int | None = None
    pass_type: str | None = None


def _round1(value: float) -> float:
    """Half-up rounding to one decimal (Python's round() is half-even)."""
    return math.floor(value * 10 + 0.5) / 10


def _filtered_query(filters: ReportFilters):
    query = scoped_pass_query(filters.school_id, filters.scope, filters.requesting_user_id)

    if filters.start is not None:
        query = query.filter(Pass.starts_at >= filters.start)
    if filters.end is not None:
        query = query.filter(Pass.starts_at < filters.end)

    # Narrows within scope; never widens it
    if filters.grade_id is not None:
        get_grade_in_school(filters.grade_id, filters.school_id)
        query = query.filter(Student.grade_id == filters.grade_id)

    if filters.teacher_id is not None:
        query = query.filter(Pass.issued_by_user_id == filters.teacher_id)

    if filters.pass_type:
        if filters.pass_type not in PASS_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(PASS_TYPES)}", field="type")
        query = query.filter(Pass.type == filters.pass_type)

    return query.options(
        joinedload(Pass.student).joinedload(Student.grade),
        joinedload(Pass.issued_by),
        joinedload(Pass.kiosk_device),
    )


def _visible_grades(filters: ReportFilters) -> dict[int, str]:
    query = db.session.query(Grade).filter(Grade.school_id == filters.school_id)
    if filters.scope == SCOPE_MINE:
        ids = get_teacher_grade_ids(filters.requesting_user_id, filters.school_id)
        if not ids:
            return {}
        query = query.filter(Grade.id.in_(ids))
    return {g.id: g.name for g in query.all()}


def _peak_hour(passes: Iterable[Pass]) -> str | None:
    """Busiest UTC start hour as "HH:00"; ties go to the lowest hour."""
    counts = Counter(p.starts_at.hour for p in passes)
    if not counts:
        return None
    hour = min(counts, key=lambda h: (-counts[h], h))
    return f"{hour:02d}:00"


def generate_summary(filters: ReportFilters, now: datetime | None = None) -> dict:
    now = now or utcnow()
    passes = _filtered_query(filters).all()
    minutes = {p.id: duration_minutes(p, now) for p in passes}

    total = len(passes)
    avg = _round1(sum(minutes.values()) / total) if total else 0

    by_type: dict[str, int] = {}
    for p in passes:
        by_type[p.type] = by_type.get(p.type, 0) + 1

    teachers: dict[int | None, dict] = {}
    for p in passes:
        key = p.issued_by_user_id
        if key not in teachers:
            if p.issued_by is not None:
                name = p.issued_by.display_name or p.issued_by.email
            else:
                name = KIOSK_GROUP_NAME
            teachers[key] = {"teacherId": key, "name": name, "count": 0, "_minutes": 0}
        teachers[key]["count"] += 1
        teachers[key]["_minutes"] += minutes[p.id]

    by_teacher = []
    for key in sorted(teachers, key=lambda k: (k is None, k or 0)):
        row = teachers[key]
        by_teacher.append({
            "teacherId": row["teacherId"],
            "name": row["name"],
            "count": row["count"],
            "avgMinutes": _round1(row["_minutes"] / row["count"]),
        })

    grade_names = _visible_grades(filters)
    grade_counts: Counter = Counter()
    for p in passes:
        if p.student is not None and p.student.grade_id in grade_names:
            grade_counts[p.student.grade_id] += 1
    by_grade = [
        {"gradeId": gid, "name": grade_names[gid], "count": grade_counts[gid]}
        for gid in sorted(grade_counts)
    ]

    return {
        "totals": {
            "passes": total,
            "students": len({p.student_id for p in passes if p.student_id is not None}),
            "avgMinutes": avg,
            "peakHour": _peak_hour(passes),
        },
        "byType": by_type,
        "byTeacher": by_teacher,
        "byGrade": by_grade,
    }


def export_rows(filters: ReportFilters, now: datetime | None = None) -> list[dict]:
    """Same filtered set as the summary, newest first."""
    now = now or utcnow()
    passes = _filtered_query(filters).order_by(Pass.starts_at.desc(), Pass.id.desc()).all()

    rows = []
    for p in passes:
        if p.issued_by is not None:
            issued_by = p.issued_by.display_name or p.issued_by.email
        elif p.kiosk_device is not None:
            issued_by = f"{KIOSK_GROUP_NAME} ({p.kiosk_device.room})"
        else:
            issued_by = KIOSK_GROUP_NAME if p.kiosk_device_id else "Unknown"

        student = p.student
        rows.append({
            "id": p.id,
            "studentName": p.student_name,
            "studentCode": student.student_code if student else None,
            "gradeName": student.grade.name if student and student.grade else None,
            "type": p.type,
            "customReason": p.custom_reason,
            "issuedBy": issued_by,
            "startsAt": to_utc_z(p.starts_at),
            "endsAt": to_utc_z(p.ends_at),
            "durationMinutes": duration_minutes(p, now),
            "status": p.status,
        })
    return rows


def _csv_line(values: list) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="\n").writerow(["" if v is None else v for v in values])
    return buf.getvalue()


def render_csv(rows: Iterable[dict]) -> Iterator[str]:
    """Header line, then one line per pass. Standard CSV quoting."""
    yield _csv_line(CSV_HEADER)
    for r in rows:
        yield _csv_line([
            r["id"],
            r["studentName"],
            r["studentCode"],
            r["gradeName"],
            r["type"],
            r["customReason"],
            r["issuedBy"],
            r["startsAt"],
            r["endsAt"],
            r["durationMinutes"],
            r["status"],
        ])
