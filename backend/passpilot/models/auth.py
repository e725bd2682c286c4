from __future__ import annotations

from ..extensions import db
from passpilot.time_utils import to_utc_z


ROLE_TEACHER = "teacher"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
ROLES = (ROLE_TEACHER, ROLE_ADMIN, ROLE_SUPERADMIN)
ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPERADMIN)


class User(db.Model):
    """
    Staff accounts for authentication and attribution.

    MULTI-TENANT: Users belong to exactly one school (school_id).
    Email is unique across all schools; login still requires the school id.

    ROLES:
    - teacher: own passes and selected grades
    - admin: whole school
    - superadmin: every school (via /api/sa)
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_school_role", "school_id", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(20), nullable=False, default=ROLE_TEACHER)

    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False, index=True)

    display_name = db.Column(db.String(120), nullable=True)

    active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # "My Class" grade tab the teacher last switched to. No FK: grades are
    # soft-deleted, and get_my_class ignores an id that is no longer selected.
    last_active_grade_id = db.Column(db.Integer, nullable=True)

    school = db.relationship("School", backref=db.backref("users", lazy=True))

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "role": self.role,
            "schoolId": self.school_id,
            "displayName": self.display_name,
            "active": self.active,
            "createdAt": to_utc_z(self.created_at),
            "lastLoginAt": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }


class RegistrationToken(db.Model):
    """
    Persisted invite codes.

    WHY: Invites must survive restarts and work across instances, so the
    code hash and its expiry live in the database, never in process memory.

    SECURITY NOTES:
    - Only the bcrypt hash of the code is stored
    - Single use: used_at is set on redemption
    - Time limited: expires_at
    """
    __tablename__ = "registration_tokens"
    __table_args__ = (
        db.Index("ix_registration_tokens_email_school", "email", "school_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), nullable=False)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False, index=True)
    role = db.Column(db.String(20), nullable=False, default=ROLE_TEACHER)
    code_hash = db.Column(db.String(255), nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "email": self.email,
            "schoolId": self.school_id,
            "role": self.role,
            "createdByUserId": self.created_by_user_id,
            "expiresAt": to_utc_z(self.expires_at),
            "usedAt": to_utc_z(self.used_at) if self.used_at else None,
            "createdAt": to_utc_z(self.created_at),
        }


class KioskDevice(db.Model):
    """
    Shared classroom terminal that lets students issue their own passes.

    Authenticates independently of User: room + PIN at login, then a signed
    device cookie that embeds `token`. Rotating the token invalidates every
    cookie previously handed to that device.
    """
    __tablename__ = "kiosk_devices"
    __table_args__ = (
        db.UniqueConstraint("school_id", "room", name="uq_kiosk_devices_school_room"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    school_id = db.Column(db.Integer, db.ForeignKey("schools.id"), nullable=False, index=True)
    room = db.Column(db.String(80), nullable=False)

    # Bcrypt hashed PIN
    pin_hash = db.Column(db.String(255), nullable=False)

    token = db.Column(db.String(255), nullable=False, unique=True)
    active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    school = db.relationship("School", backref=db.backref("kiosk_devices", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schoolId": self.school_id,
            "room": self.room,
            "active": self.active,
            "createdAt": to_utc_z(self.created_at),
        }
