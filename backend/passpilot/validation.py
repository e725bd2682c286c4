from __future__ import annotations
from datetime import datetime
from passpilot.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta


class PassPilotError(Exception):
    """Base for errors that map onto an HTTP status."""

    status_code = 500

    def __init__(self, message: str, **extra):
        super().__init__(message)
        self.message = message
        self.extra = extra


class ValidationError(PassPilotError, ValueError):
    """400-level input problem."""

    status_code = 400


class AuthenticationError(PassPilotError):
    """401: missing session or bad credentials."""

    status_code = 401


class AuthorizationError(PassPilotError):
    """403: role or tenant mismatch."""

    status_code = 403


class NotFoundError(PassPilotError, LookupError):
    """404: unknown id, or an id owned by another tenant."""

    status_code = 404


class ConflictError(PassPilotError, ValueError):
    """409-level business rule conflict (e.g., duplicate active pass)."""

    status_code = 409


class RateLimitError(PassPilotError):
    """429: fixed-window limit exceeded."""

    status_code = 429


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Which wire fields a route may write for one model.

    SECURITY: writable_fields is the allowlist; anything else is a 400.
    aliases maps the camelCase wire name onto the column key.
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    aliases: dict[str, str] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any, label: str):
    coltype = col.type

    if value is None:
        return None

    # seatsAllowed and friends: whole numbers only
    if isinstance(coltype, Integer):
        # bool is an int subclass; keep it out
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # "50" from a form post is fine, "5e1" and "50.0" are not
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{label} must be an integer", field=label)
            if 'e' in stripped.lower():
                raise ValidationError(f"{label} must be a plain integer (scientific notation not allowed)", field=label)
            if '.' in stripped:
                raise ValidationError(f"{label} must be an integer (no decimals)", field=label)
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{label} must be an integer", field=label)
        if isinstance(value, float):
            raise ValidationError(f"{label} must be an integer, not a decimal", field=label)
        raise ValidationError(f"{label} must be an integer", field=label)

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{label} must be true or false", field=label)

    # ISO-8601 text, stored naive UTC
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{label} must be an ISO-8601 datetime", field=label)
            if dt is None:
                raise ValidationError(f"{label} must be an ISO-8601 datetime", field=label)
            return dt
        raise ValidationError(f"{label} must be a datetime", field=label)

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        if isinstance(value, (dict, list)):
            raise ValidationError(f"{label} must be a string", field=label)
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Turn a camelCase JSON body into a column-keyed patch for `model`.

    Only keys in policy.writable_fields get through. Column metadata drives
    the checks: nullability, integer/boolean/datetime coercion, and String(n)
    length. With partial=False every required_on_create key must be present
    (POST); with partial=True only the keys sent are checked (PATCH).
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}", fields=missing)

    cols = _columns_by_key(model)

    patch: dict = {}

    for wire_key, raw in payload.items():
        # allowlist first, then column lookup
        if wire_key not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {wire_key}", field=wire_key)
        key = policy.aliases.get(wire_key, wire_key)
        if key not in cols:
            raise ValidationError(f"Unknown field: {wire_key}", field=wire_key)
        col = cols[key]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{wire_key} cannot be null", field=wire_key)
            patch[key] = None
            continue

        val = _coerce_value(col, raw, wire_key)

        # "   " is not a school name
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{wire_key} cannot be blank", field=wire_key)

        # String(n) length
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{wire_key} exceeds max length {col.type.length}", field=wire_key)

        patch[key] = val

    return patch


def require_int(value: Any, label: str) -> int:
    """Coerce a path/query/body id to int, or raise ValidationError."""
    if isinstance(value, bool):
        raise ValidationError(f"{label} must be an integer", field=label)
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    raise ValidationError(f"{label} must be an integer", field=label)


def optional_int(value: Any, label: str) -> int | None:
    if value is None or value == "":
        return None
    return require_int(value, label)
