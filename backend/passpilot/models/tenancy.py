from __future__ import annotations

from ..extensions import db
from passpilot.time_utils import to_utc_z

class School(db.Model):
    """
    Multi-tenant root: every tenant is a School.

    MULTI-TENANT: grades, students, users, kiosks and passes all carry
    school_id. No data may cross school boundaries.

    LIFECYCLE:
    - Created by a superadmin
    - Soft-disabled through `active` (users and kiosks stop authenticating)
    - Hard-deleted only by superadmin school deletion, which cascades
    """
    __tablename__ = "schools"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    # Licensed teacher/admin accounts
    seats_allowed = db.Column(db.Integer, nullable=False, default=50)

    active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<School id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "seatsAllowed": self.seats_allowed,
            "active": self.active,
            "createdAt": to_utc_z(self.created_at),
        }
