# Overview: Service-layer operations for schools; encapsulates business logic and database work.

"""
School (tenant) management. Superadmin only, except for an admin reading
and renaming their own school through /api/admin/settings.

DELETE CASCADE: deleting a school removes, in dependency order, its
passes, teacher grade selections, students, grades, kiosk devices,
invites and users. Audit rows are kept; school_id on audits is a plain
integer and actor ids pointing at removed users are nulled.
"""

from flask import current_app

from ..extensions import db
from ..models import (
    School,
    User,
    RegistrationToken,
    KioskDevice,
    Grade,
    Student,
    TeacherGradeMap,
    Pass,
    Audit,
)
from ..models.auth import ROLE_TEACHER, ROLE_ADMIN
from ..validation import (
    ModelValidationPolicy,
    ValidationError,
    ConflictError,
    NotFoundError,
    validate_payload,
)
from passpilot.time_utils import utcnow
from . import audit_service


MAX_SEATS = 10000

SCHOOL_POLICY = ModelValidationPolicy(
    writable_fields={"name", "seatsAllowed", "active"},
    required_on_create={"name"},
    aliases={"seatsAllowed": "seats_allowed"},
)

# Admins may rename their own school and nothing else
SCHOOL_SETTINGS_POLICY = ModelValidationPolicy(
    writable_fields={"name"},
    aliases={},
)


def _check_patch(patch: dict) -> None:
    name = patch.get("name")
    if name is not None and len(name) < 2:
        raise ValidationError("name must be at least 2 characters", field="name")
    seats = patch.get("seats_allowed")
    if seats is not None and not (1 <= seats <= MAX_SEATS):
        raise ValidationError(f"seatsAllowed must be between 1 and {MAX_SEATS}", field="seatsAllowed")


def get_school(school_id: int) -> School:
    school = db.session.get(School, school_id)
    if not school:
        raise NotFoundError("School not found")
    return school


def seats_in_use(school_id: int, include_pending_invites: bool = True) -> int:
    """
    Licensed seats consumed: active teachers and admins, plus outstanding
    invites (unused, unexpired) when include_pending_invites is set.
    """
    used = db.session.query(User).filter(
        User.school_id == school_id,
        User.active.is_(True),
        User.role.in_((ROLE_TEACHER, ROLE_ADMIN)),
    ).count()

    if include_pending_invites:
        used += db.session.query(RegistrationToken).filter(
            RegistrationToken.school_id == school_id,
            RegistrationToken.used_at.is_(None),
            RegistrationToken.expires_at > utcnow(),
        ).count()

    return used


def ensure_seat_available(school: School, include_pending_invites: bool = True) -> None:
    if seats_in_use(school.id, include_pending_invites) >= school.seats_allowed:
        raise ConflictError("Seat limit reached for this school", seatsAllowed=school.seats_allowed)


def school_to_dict(school: School) -> dict:
    data = school.to_dict()
    data["seatsUsed"] = seats_in_use(school.id, include_pending_invites=False)
    return data


def list_schools() -> list[School]:
    return db.session.query(School).order_by(School.id.asc()).all()


def create_school(payload: dict, actor_user_id: int | None = None) -> School:
    patch = validate_payload(model=School, payload=payload, policy=SCHOOL_POLICY, partial=False)
    _check_patch(patch)

    school = School(
        name=patch["name"],
        seats_allowed=patch.get("seats_allowed") or 50,
        active=patch.get("active", True),
    )
    db.session.add(school)
    db.session.flush()

    audit_service.record(actor_user_id, school.id, "SCHOOL_CREATED", "school", school.id, {"name": school.name})
    db.session.commit()

    current_app.logger.info("School %s created: %s", school.id, school.name)
    return school


def update_school(school_id: int, payload: dict, actor_user_id: int | None = None,
                  policy: ModelValidationPolicy = SCHOOL_POLICY) -> School:
    school = get_school(school_id)
    patch = validate_payload(model=School, payload=payload, policy=policy, partial=True)
    _check_patch(patch)

    for key, value in patch.items():
        setattr(school, key, value)

    audit_service.record(actor_user_id, school.id, "SCHOOL_UPDATED", "school", school.id, payload)
    db.session.commit()
    return school


def delete_school(school_id: int, actor: User) -> dict:
    """
    Hard-delete a school and everything it owns.

    A superadmin cannot delete the school their own account belongs to.
    Returns per-table deletion counts.
    """
    school = get_school(school_id)
    if actor.school_id == school.id:
        raise ConflictError("Cannot delete your own school")

    user_ids = [u for (u,) in db.session.query(User.id).filter(User.school_id == school.id).all()]
    counts = {}

    counts["passes"] = db.session.query(Pass).filter(Pass.school_id == school.id).delete(synchronize_session=False)
    counts["teacherGradeMap"] = db.session.query(TeacherGradeMap).filter(
        TeacherGradeMap.school_id == school.id
    ).delete(synchronize_session=False)
    counts["students"] = db.session.query(Student).filter(Student.school_id == school.id).delete(synchronize_session=False)
    counts["grades"] = db.session.query(Grade).filter(Grade.school_id == school.id).delete(synchronize_session=False)
    counts["kiosks"] = db.session.query(KioskDevice).filter(KioskDevice.school_id == school.id).delete(synchronize_session=False)
    counts["invites"] = db.session.query(RegistrationToken).filter(
        RegistrationToken.school_id == school.id
    ).delete(synchronize_session=False)

    if user_ids:
        # Invites created by this school's users in other schools outlive them
        db.session.query(RegistrationToken).filter(
            RegistrationToken.created_by_user_id.in_(user_ids)
        ).update({RegistrationToken.created_by_user_id: None}, synchronize_session=False)
        db.session.query(Audit).filter(Audit.actor_user_id.in_(user_ids)).update(
            {Audit.actor_user_id: None}, synchronize_session=False
        )

    counts["users"] = db.session.query(User).filter(User.school_id == school.id).delete(synchronize_session=False)

    name = school.name
    db.session.query(School).filter(School.id == school_id).delete(synchronize_session=False)
    db.session.expunge(school)

    audit_service.record(actor.id, school_id, "SCHOOL_DELETED", "school", school_id, {"name": name, **counts})
    db.session.commit()

    current_app.logger.info("School %s deleted by user %s: %s", school_id, actor.id, counts)
    return counts
