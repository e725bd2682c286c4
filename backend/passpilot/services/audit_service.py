# Overview: Service-layer operations for audit; append-only administrative log.

import json

from ..extensions import db
from ..models import Audit


MAX_AUDIT_LIMIT = 500
DEFAULT_AUDIT_LIMIT = 100


def record(
    actor_user_id: int | None,
    school_id: int | None,
    action: str,
    target_type: str | None = None,
    target_id: int | None = None,
    data: dict | None = None,
) -> Audit:
    """
    Append an audit row to the current transaction.

    The caller commits together with the change being audited, so the
    audit row and the change land or fail as one.
    """
    audit = Audit(
        actor_user_id=actor_user_id,
        school_id=school_id,
        action=action,
        target_type=target_type,
        target_id=target_id,
        data=json.dumps(data, sort_keys=True, default=str) if data is not None else None,
    )
    db.session.add(audit)
    return audit


def list_audits(school_id: int | None = None, limit: int | None = None) -> list[Audit]:
    """Newest first. school_id=None lists every school (superadmin)."""
    if limit is None:
        limit = DEFAULT_AUDIT_LIMIT
    limit = max(1, min(int(limit), MAX_AUDIT_LIMIT))

    query = db.session.query(Audit)
    if school_id is not None:
        query = query.filter(Audit.school_id == school_id)
    return query.order_by(Audit.created_at.desc(), Audit.id.desc()).limit(limit).all()
