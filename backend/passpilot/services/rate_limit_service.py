"""
Persistent Fixed-Window Rate Limiter

WHY: Slow down credential guessing on login, kiosk login and invite
activation, and stop a kiosk from flooding pass creation.

Counters live in the rate_limit_buckets table, so every worker and every
instance shares them. This is a best-effort safeguard, not a security
boundary.

WINDOWING:
- window_start = now truncated to a multiple of window_seconds (epoch aligned)
- one row per (key, window_start); key is "<ip>:<path>"
- the (key, window_start) unique constraint serialises first inserts
"""

from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import RateLimitBucket
from passpilot.time_utils import utcnow


_EPOCH = datetime(1970, 1, 1)


def window_start_for(now: datetime, window_seconds: int) -> datetime:
    elapsed = int((now - _EPOCH).total_seconds())
    return _EPOCH + timedelta(seconds=elapsed - (elapsed % window_seconds))


def hit(key: str, limit: int, window_seconds: int, now: datetime | None = None) -> tuple[bool, int]:
    """
    Count one request against key.

    Returns (allowed, retry_after_seconds). retry_after is 0 when allowed.
    """
    now = now or utcnow()
    window_start = window_start_for(now, window_seconds)

    bucket = db.session.query(RateLimitBucket).filter_by(key=key, window_start=window_start).first()
    if bucket is None:
        bucket = RateLimitBucket(key=key, window_start=window_start, count=1)
        db.session.add(bucket)
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created the row first
            db.session.rollback()
            bucket = db.session.query(RateLimitBucket).filter_by(key=key, window_start=window_start).one()
            bucket.count = RateLimitBucket.count + 1
            db.session.commit()
    else:
        bucket.count = RateLimitBucket.count + 1
        db.session.commit()

    db.session.refresh(bucket)

    if bucket.count > limit:
        retry_after = int((window_start + timedelta(seconds=window_seconds) - now).total_seconds())
        return False, max(retry_after, 1)
    return True, 0


def cleanup(older_than: timedelta) -> int:
    """
    Delete buckets whose window started before now - older_than.

    Returns count of rows deleted.
    """
    cutoff = utcnow() - older_than
    deleted = db.session.query(RateLimitBucket).filter(
        RateLimitBucket.window_start < cutoff
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
