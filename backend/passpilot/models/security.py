from __future__ import annotations

import json

from ..extensions import db
from passpilot.time_utils import to_utc_z


class Audit(db.Model):
    """
    Append-only record of administrative actions.

    IMMUTABLE: Never update or delete.

    school_id is a plain integer (no FK) so rows outlive the deletion of the
    school they describe; superadmins can still read what happened.
    """
    __tablename__ = "audits"
    __table_args__ = (
        db.Index("ix_audits_school_created", "school_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    school_id = db.Column(db.Integer, nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False)  # e.g. USER_PROMOTED, SCHOOL_DELETED
    target_type = db.Column(db.String(32), nullable=True)  # user, school, pass, kiosk...
    target_id = db.Column(db.Integer, nullable=True)

    # JSON-encoded payload
    data = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "actorUserId": self.actor_user_id,
            "schoolId": self.school_id,
            "action": self.action,
            "targetType": self.target_type,
            "targetId": self.target_id,
            "data": json.loads(self.data) if self.data else None,
            "createdAt": to_utc_z(self.created_at),
        }


class RateLimitBucket(db.Model):
    """
    Fixed-window request counter shared by every app instance.

    key is "<ip>:<path>"; window_start is the aligned start of the window.
    """
    __tablename__ = "rate_limit_buckets"
    __table_args__ = (
        db.UniqueConstraint("key", "window_start", name="uq_rate_limit_buckets_key_window"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(255), nullable=False)
    window_start = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    count = db.Column(db.Integer, nullable=False, default=0)
