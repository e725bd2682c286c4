# Overview: Service-layer operations for passes; encapsulates business logic and database work.

"""
Pass Lifecycle Engine

STATE MACHINE:
    active --return--> returned   (terminal, ends_at set once)
    active --expire--> expired    (terminal, operator maintenance only)

INVARIANT: at most one active pass per student.
- Fast path: an existence check before insert gives a clean 409
- Enforcement: the uq_passes_active_student partial unique index. Two
  concurrent requests can both pass the fast path; the second flush then
  fails with IntegrityError, which is rolled back and reported as 409.

MULTI-TENANT: every read and write is filtered by school_id; ids from
another school resolve to 404 through tenant_service.

Duration is derived at response time from starts_at/ends_at (or now for
active passes) and never stored.
"""

import math
from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Pass, Student
from ..models.auth import ADMIN_ROLES
from ..models.passes import (
    PASS_TYPES,
    PASS_TYPE_CUSTOM,
    PASS_TYPE_GENERAL,
    PASS_STATUSES,
    STATUS_ACTIVE,
    STATUS_RETURNED,
    STATUS_EXPIRED,
)
from ..validation import ValidationError, ConflictError, AuthorizationError, require_int
from passpilot.time_utils import utcnow, to_utc_z
from . import audit_service
from .roster_service import get_teacher_grade_ids
from .tenant_service import get_student_in_school, get_pass_in_school


SCOPE_MINE = "mine"
SCOPE_SCHOOL = "school"
SCOPES = (SCOPE_MINE, SCOPE_SCHOOL)

STUDENT_NAME_MAX = 140
REASON_MAX = 200


def duration_minutes(p: Pass, now: datetime | None = None) -> int:
    """
    Whole minutes between starts_at and ends_at (or now while active).

    Rounded half-up: 90 seconds is 2 minutes, 89 seconds is 1.
    """
    end = p.ends_at or now or utcnow()
    seconds = (end - p.starts_at).total_seconds()
    if seconds <= 0:
        return 0
    return int(math.floor(seconds / 60 + 0.5))


def _issuer_name(p: Pass) -> str:
    if p.issued_by is not None:
        return p.issued_by.display_name or p.issued_by.email
    if p.kiosk_device is not None:
        return f"Kiosk ({p.kiosk_device.room})"
    if p.kiosk_device_id is not None:
        return "Kiosk"
    return "Unknown"


def pass_to_dict(p: Pass, now: datetime | None = None) -> dict:
    student = p.student
    return {
        "id": p.id,
        "schoolId": p.school_id,
        "studentId": p.student_id,
        "studentName": p.student_name,
        "studentCode": student.student_code if student else None,
        "gradeId": student.grade_id if student else None,
        "reason": p.reason,
        "type": p.type,
        "customReason": p.custom_reason,
        "issuedByUserId": p.issued_by_user_id,
        "kioskDeviceId": p.kiosk_device_id,
        "issuedBy": _issuer_name(p),
        "status": p.status,
        "startsAt": to_utc_z(p.starts_at),
        "endsAt": to_utc_z(p.ends_at),
        "durationMinutes": duration_minutes(p, now),
    }


def _optional_text(value, label: str, max_len: int) -> str | None:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{label} must be a string", field=label)
    value = value.strip()
    if len(value) > max_len:
        raise ValidationError(f"{label} exceeds max length {max_len}", field=label)
    return value or None


def has_active_pass(student_id: int) -> bool:
    return db.session.query(Pass.id).filter(
        Pass.student_id == student_id,
        Pass.status == STATUS_ACTIVE,
    ).first() is not None


def create_pass(
    school_id: int,
    *,
    student_id=None,
    student_name=None,
    reason=None,
    pass_type=None,
    custom_reason=None,
    issued_by_user_id: int | None = None,
    kiosk_device_id: int | None = None,
) -> Pass:
    """
    Issue a pass.

    Requires student_id (preferred) or a free-text student_name, and a
    reason or a type. type=custom requires custom_reason.

    Raises:
        ValidationError: missing or malformed input
        NotFoundError: student_id unknown, inactive, or in another school
        ConflictError: the student already has an active pass
    """
    reason = _optional_text(reason, "reason", REASON_MAX)
    custom_reason = _optional_text(custom_reason, "customReason", REASON_MAX)

    if pass_type is None and reason is None:
        raise ValidationError("Either reason or type is required", field="type")
    pass_type = pass_type or PASS_TYPE_GENERAL
    if pass_type not in PASS_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(PASS_TYPES)}", field="type")
    if pass_type == PASS_TYPE_CUSTOM and not custom_reason:
        raise ValidationError("customReason is required for custom passes", field="customReason")

    student = None
    if student_id is not None and student_id != "":
        student = get_student_in_school(require_int(student_id, "studentId"), school_id)
        if not student.is_active:
            raise ValidationError("Student is inactive", field="studentId")
        display_name = student.name

        if has_active_pass(student.id):
            raise ConflictError("Student already has an active pass", studentId=student.id)
    else:
        display_name = _optional_text(student_name, "studentName", STUDENT_NAME_MAX)
        if not display_name:
            raise ValidationError("Either studentId or studentName is required", field="studentId")

    p = Pass(
        school_id=school_id,
        student_id=student.id if student else None,
        student_name=display_name,
        reason=reason,
        type=pass_type,
        custom_reason=custom_reason,
        issued_by_user_id=issued_by_user_id,
        kiosk_device_id=kiosk_device_id,
        status=STATUS_ACTIVE,
        starts_at=utcnow(),
    )
    db.session.add(p)

    try:
        db.session.flush()
    except IntegrityError:
        # Lost the race against a concurrent insert for the same student
        db.session.rollback()
        raise ConflictError("Student already has an active pass", studentId=student.id if student else None)

    audit_service.record(
        issued_by_user_id,
        school_id,
        "PASS_CREATED",
        "pass",
        p.id,
        {"studentId": p.student_id, "type": p.type, "kioskDeviceId": kiosk_device_id},
    )
    db.session.commit()

    current_app.logger.info("Pass %s created for student %s in school %s", p.id, p.student_id, school_id)
    return p


def return_pass(pass_id: int, school_id: int, actor_user_id: int | None = None) -> Pass:
    """
    Return a pass. Idempotent.

    A pass that is already returned or expired comes back unchanged; its
    ends_at is never rewritten.

    CONCURRENCY: the transition is a conditional UPDATE ... WHERE status =
    'active', so of two racing returns (or a return racing the expire
    sweep) exactly one wins. The loser re-reads the row and gets the
    winner's result.
    """
    p = get_pass_in_school(pass_id, school_id)

    if not p.is_active:
        return p

    updated = db.session.query(Pass).filter(
        Pass.id == p.id,
        Pass.school_id == school_id,
        Pass.status == STATUS_ACTIVE,
    ).update({Pass.status: STATUS_RETURNED, Pass.ends_at: utcnow()}, synchronize_session=False)

    if not updated:
        db.session.refresh(p)
        return p

    audit_service.record(actor_user_id, school_id, "PASS_RETURNED", "pass", p.id, None)
    db.session.commit()
    db.session.refresh(p)

    current_app.logger.info("Pass %s returned in school %s", p.id, school_id)
    return p


def resolve_scope(scope: str | None, role: str) -> str:
    """
    Validate the requested scope against the caller's role.

    Default: school for admins, mine for teachers. A teacher asking for
    school scope is refused.
    """
    if scope in (None, ""):
        return SCOPE_SCHOOL if role in ADMIN_ROLES else SCOPE_MINE
    if scope not in SCOPES:
        raise ValidationError("scope must be 'mine' or 'school'", field="scope")
    if scope == SCOPE_SCHOOL and role not in ADMIN_ROLES:
        raise AuthorizationError("Forbidden: school scope requires admin")
    return scope


def scoped_pass_query(school_id: int, scope: str, user_id: int):
    """
    Base query for passes visible to the caller.

    mine: passes whose student's grade is in the caller's selection, plus
    passes the caller issued (covers free-text legacy passes).
    """
    query = db.session.query(Pass).outerjoin(Student, Pass.student_id == Student.id).filter(
        Pass.school_id == school_id
    )
    if scope == SCOPE_MINE:
        grade_ids = get_teacher_grade_ids(user_id, school_id)
        conditions = [Pass.issued_by_user_id == user_id]
        if grade_ids:
            conditions.append(Student.grade_id.in_(grade_ids))
        query = query.filter(or_(*conditions))
    return query


def list_passes(
    school_id: int,
    *,
    scope: str | None,
    role: str,
    user_id: int,
    status: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
) -> list[Pass]:
    """
    Passes visible to the caller, newest first (starts_at desc, id desc).

    start is inclusive, end is exclusive.
    """
    scope = resolve_scope(scope, role)
    query = scoped_pass_query(school_id, scope, user_id)

    if status:
        if status not in PASS_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PASS_STATUSES)}", field="status")
        query = query.filter(Pass.status == status)
    if start is not None:
        query = query.filter(Pass.starts_at >= start)
    if end is not None:
        query = query.filter(Pass.starts_at < end)

    return query.order_by(Pass.starts_at.desc(), Pass.id.desc()).all()


def list_active_passes(school_id: int) -> list[Pass]:
    return db.session.query(Pass).filter(
        Pass.school_id == school_id,
        Pass.status == STATUS_ACTIVE,
    ).order_by(Pass.starts_at.desc(), Pass.id.desc()).all()


def expire_stale_passes(older_than: timedelta, now: datetime | None = None) -> int:
    """
    Move active passes that started before now - older_than to expired.

    ends_at is set to starts_at + older_than, the moment the pass crossed
    the cutoff. Operator-invoked only (flask maintenance expire-passes).

    Returns count of passes expired.
    """
    now = now or utcnow()
    cutoff = now - older_than

    stale = db.session.query(Pass.id, Pass.school_id, Pass.starts_at).filter(
        Pass.status == STATUS_ACTIVE,
        Pass.starts_at < cutoff,
    ).all()

    expired = 0
    for pass_id, school_id, starts_at in stale:
        # A return that commits after the select above wins; skip the row
        updated = db.session.query(Pass).filter(
            Pass.id == pass_id,
            Pass.status == STATUS_ACTIVE,
        ).update({Pass.status: STATUS_EXPIRED, Pass.ends_at: starts_at + older_than}, synchronize_session=False)
        if not updated:
            continue
        expired += 1
        audit_service.record(None, school_id, "PASS_EXPIRED", "pass", pass_id, {"hours": older_than.total_seconds() / 3600})

    db.session.commit()
    return expired
