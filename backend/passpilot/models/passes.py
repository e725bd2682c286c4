from __future__ import annotations

from ..extensions import db


PASS_TYPE_GENERAL = "general"
PASS_TYPE_CUSTOM = "custom"
PASS_TYPES = ("general", "nurse", "discipline", "custom")

STATUS_ACTIVE = "active"
STATUS_RETURNED = "returned"
STATUS_EXPIRED = "expired"
PASS_STATUSES = (STATUS_ACTIVE, STATUS_RETURNED, STATUS_EXPIRED)


class Pass(db.Model):
    """
    A student temporarily out of class.

    LIFECYCLE:
    - active: created by a teacher or a kiosk device, starts_at = now
    - returned: terminal, ends_at set exactly once
    - expired: terminal, only set by the operator maintenance command

    INVARIANT: at most one active pass per student. The partial unique index
    below is the enforcement; the service-level existence check only gives a
    friendlier early rejection.

    Duration is never stored; it is derived from starts_at/ends_at at read time.
    """
    __tablename__ = "passes"
    __table_args__ = (
        db.Index(
            "uq_passes_active_student",
            "student_id",
            unique=True,
            sqlite_where=db.text("status = 'active'"),
            postgresql_where=db.text("status = 'active'"),
        ),
        db.Index("ix_passes_school_starts", "school_id", "starts_at"),
        db.Index("ix_passes_school_status", "school_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False, index=True)

    # Nullable: legacy passes carry only a free-text student_name
    student_id = db.Column(db.Integer, db.ForeignKey("students.id"), nullable=True)

    # Display snapshot taken at issue time
    student_name = db.Column(db.String(140), nullable=False)

    reason = db.Column(db.String(200), nullable=True)
    type = db.Column(db.String(20), nullable=False, default=PASS_TYPE_GENERAL)
    custom_reason = db.Column(db.String(200), nullable=True)

    # Exactly one issuer: a user, or a kiosk device
    issued_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    kiosk_device_id = db.Column(db.Integer, db.ForeignKey("kiosk_devices.id"), nullable=True)

    status = db.Column(db.String(20), nullable=False, default=STATUS_ACTIVE)
    starts_at = db.Column(db.DateTime(timezone=True), nullable=False)
    ends_at = db.Column(db.DateTime(timezone=True), nullable=True)

    student = db.relationship("Student", backref=db.backref("passes", lazy=True))
    issued_by = db.relationship("User", backref=db.backref("issued_passes", lazy=True))
    kiosk_device = db.relationship("KioskDevice", backref=db.backref("passes", lazy=True))

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Pass id={self.id} student_id={self.student_id} status={self.status}>"
