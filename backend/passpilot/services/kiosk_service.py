# Overview: Service-layer operations for kiosk devices; encapsulates business logic and database work.

"""
Kiosk devices: shared classroom terminals.

A device is (school, room, PIN, token). Kiosk login checks the PIN and
hands out a signed cookie that embeds the device token; every kiosk request
re-reads the device and compares the token, so rotating it (or
deactivating the device) ends every existing kiosk session.
"""

import hmac
import secrets

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import KioskDevice, School
from ..validation import ValidationError, ConflictError
from . import audit_service
from .auth_service import hash_pin, check_secret
from .tenant_service import get_kiosk_in_school


ROOM_MAX = 80


def generate_device_token() -> str:
    return secrets.token_urlsafe(32)


def _clean_room(room) -> str:
    if room is None or not str(room).strip():
        raise ValidationError("room is required", field="room")
    room = str(room).strip()
    if len(room) > ROOM_MAX:
        raise ValidationError(f"room exceeds max length {ROOM_MAX}", field="room")
    return room


def list_devices(school_id: int) -> list[KioskDevice]:
    return db.session.query(KioskDevice).filter_by(school_id=school_id).order_by(KioskDevice.room.asc()).all()


def create_device(school_id: int, room, pin, actor_user_id: int | None = None) -> KioskDevice:
    room = _clean_room(room)

    if db.session.query(KioskDevice.id).filter_by(school_id=school_id, room=room).first():
        raise ConflictError("A kiosk already exists for this room", field="room")

    device = KioskDevice(
        school_id=school_id,
        room=room,
        pin_hash=hash_pin(pin),
        token=generate_device_token(),
        active=True,
    )
    db.session.add(device)
    try:
        db.session.flush()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A kiosk already exists for this room", field="room")

    audit_service.record(actor_user_id, school_id, "KIOSK_CREATED", "kiosk", device.id, {"room": room})
    db.session.commit()
    return device


def set_device_active(device_id: int, school_id: int, active, actor_user_id: int | None = None) -> KioskDevice:
    if not isinstance(active, bool):
        raise ValidationError("active must be true or false", field="active")
    device = get_kiosk_in_school(device_id, school_id)
    device.active = active
    audit_service.record(actor_user_id, school_id, "KIOSK_ACTIVATE" if active else "KIOSK_DEACTIVATE",
                         "kiosk", device.id, None)
    db.session.commit()
    return device


def rotate_token(device_id: int, school_id: int, actor_user_id: int | None = None, pin=None) -> KioskDevice:
    """New token (logs out every kiosk cookie); optionally a new PIN too."""
    device = get_kiosk_in_school(device_id, school_id)
    device.token = generate_device_token()
    if pin is not None:
        device.pin_hash = hash_pin(pin)
    audit_service.record(actor_user_id, school_id, "KIOSK_ROTATED", "kiosk", device.id,
                         {"pinChanged": pin is not None})
    db.session.commit()
    return device


def authenticate_device(school_id: int, room, pin) -> KioskDevice | None:
    """
    Returns the device when school, room and PIN match an active device
    in an active school, None otherwise.
    """
    if school_id is None or not room or pin is None:
        return None

    device = db.session.query(KioskDevice).filter_by(
        school_id=school_id, room=str(room).strip(), active=True
    ).first()
    if device is None:
        return None

    school = db.session.get(School, school_id)
    if school is None or not school.active:
        return None

    if not check_secret(str(pin).strip(), device.pin_hash):
        current_app.logger.warning("Kiosk login failed for school %s room %s", school_id, room)
        return None
    return device


def device_for_session(payload: dict) -> KioskDevice | None:
    """Resolve a verified kiosk cookie payload to a live device."""
    device_id = payload.get("kioskDeviceId")
    if not isinstance(device_id, int):
        return None
    device = db.session.get(KioskDevice, device_id)
    if device is None or not device.active:
        return None
    if device.school_id != payload.get("schoolId"):
        return None
    if not hmac.compare_digest(device.token.encode("utf-8"), str(payload.get("token") or "").encode("utf-8")):
        return None
    school = db.session.get(School, device.school_id)
    if school is None or not school.active:
        return None
    return device
