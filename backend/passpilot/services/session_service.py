# Overview: Service-layer operations for session; signs and verifies the cookie tokens.

"""
Signed Cookie Sessions

WHY: No server-side session store. The cookie itself carries the identity
and is tamper-evident through an HMAC-SHA256 signature keyed by SECRET_KEY.

TOKEN FORMAT:
    base64url(json(payload)) + "." + base64url(hmac_sha256(secret, first_part))
    (unpadded base64url on both halves)

PAYLOADS:
- user:  {userId, schoolId, role, iat}
- kiosk: {kioskDeviceId, schoolId, room, token, iat}

SECURITY NOTES:
- Signatures compared with hmac.compare_digest (timing-safe)
- No exp claim: expiry is the cookie max-age (SESSION_MAX_AGE_SECONDS).
  A stolen cookie stays usable for that window unless the user, school or
  kiosk token is deactivated/rotated, which require_auth checks per request.
- Anything malformed is "no session", never an exception
"""

import base64
import hashlib
import hmac
import json
import time

from flask import current_app


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


def _sign(body: str, secret: str | None = None) -> str:
    key = (secret or current_app.config["SECRET_KEY"]).encode("utf-8")
    digest = hmac.new(key, body.encode("ascii"), hashlib.sha256).digest()
    return _b64encode(digest)


def create_session(payload: dict, secret: str | None = None) -> str:
    """Serialise and sign a session payload. Adds `iat` when missing."""
    data = dict(payload)
    data.setdefault("iat", int(time.time()))
    body = _b64encode(json.dumps(data, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{_sign(body, secret)}"


def read_session(token: str | None, secret: str | None = None) -> dict | None:
    """
    Verify a token and return its payload.

    Returns None when the token is missing, unsigned, tampered with,
    undecodable, or does not decode to a JSON object.
    """
    if not token or not isinstance(token, str) or "." not in token:
        return None
    # base64url and the signature are pure ASCII; anything else is garbage
    if not token.isascii():
        return None

    body, _, signature = token.rpartition(".")
    if not body or not signature:
        return None

    expected = _sign(body, secret)
    if not hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii", "replace")):
        return None

    try:
        payload = json.loads(_b64decode(body))
    except (ValueError, UnicodeDecodeError):
        return None

    if not isinstance(payload, dict):
        return None
    return payload


def user_payload(user) -> dict:
    return {"userId": user.id, "schoolId": user.school_id, "role": user.role}


def kiosk_payload(device) -> dict:
    return {
        "kioskDeviceId": device.id,
        "schoolId": device.school_id,
        "room": device.room,
        "token": device.token,
    }


def _set_cookie(response, name: str, token: str) -> None:
    response.set_cookie(
        name,
        token,
        max_age=current_app.config["SESSION_MAX_AGE_SECONDS"],
        httponly=True,
        samesite="Lax",
        secure=current_app.config["AUTH_COOKIE_SECURE"],
        path="/",
    )


def set_session_cookie(response, user) -> str:
    """Sign a user session and attach it to the response. Returns the token."""
    token = create_session(user_payload(user))
    _set_cookie(response, current_app.config["AUTH_COOKIE_NAME"], token)
    return token


def clear_session_cookie(response) -> None:
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"], path="/")


def set_kiosk_cookie(response, device) -> str:
    token = create_session(kiosk_payload(device))
    _set_cookie(response, current_app.config["KIOSK_COOKIE_NAME"], token)
    return token


def clear_kiosk_cookie(response) -> None:
    response.delete_cookie(current_app.config["KIOSK_COOKIE_NAME"], path="/")
