# Overview: Request decorators and blueprint guards for API routes.

from functools import wraps

from flask import current_app, g, request

from .extensions import db
from .models import User, School
from .models.auth import ADMIN_ROLES
from .services import session_service, rate_limit_service, kiosk_service
from .services.tenant_service import enforce_request_tenant
from .validation import AuthenticationError, AuthorizationError, RateLimitError


def load_user_session() -> User:
    """
    Authenticate the request from the user cookie and establish tenant context.

    Sets on Flask g:
    - g.current_user: the User row (re-read every request)
    - g.school_id: the tenant for this request
    - g.role: the role from the database row, not from the cookie

    SECURITY: Raises AuthenticationError (401) if:
    - No cookie, or a cookie that fails signature verification
    - User deleted or deactivated
    - School deleted or deactivated
    - Cookie schoolId no longer matches the user's school
    """
    token = request.cookies.get(current_app.config["AUTH_COOKIE_NAME"])
    payload = session_service.read_session(token)
    if not payload:
        raise AuthenticationError("Authentication required")

    user_id = payload.get("userId")
    user = db.session.get(User, user_id) if isinstance(user_id, int) else None
    if user is None or not user.active:
        raise AuthenticationError("Authentication required")

    if payload.get("schoolId") != user.school_id:
        raise AuthenticationError("Authentication required")

    school = db.session.get(School, user.school_id)
    if school is None or not school.active:
        raise AuthenticationError("Authentication required")

    g.current_user = user
    g.school_id = user.school_id
    g.role = user.role
    return user


def load_kiosk_session():
    """
    Authenticate the request from the kiosk cookie.

    Sets g.kiosk_device and g.school_id. The cookie's token must still match
    the device row, so a rotated or deactivated device is a 401.
    """
    token = request.cookies.get(current_app.config["KIOSK_COOKIE_NAME"])
    payload = session_service.read_session(token)
    if not payload:
        raise AuthenticationError("Kiosk session required")

    device = kiosk_service.device_for_session(payload)
    if device is None:
        raise AuthenticationError("Kiosk session required")

    g.kiosk_device = device
    g.school_id = device.school_id
    g.current_user = None
    g.role = None
    return device


def require_auth(f):
    """Require a valid user session (for routes outside a protected blueprint)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        load_user_session()
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles. superadmin satisfies any admin check.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            load_user_session()
            _check_role(roles)
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_admin(f):
    return require_role(*ADMIN_ROLES)(f)


def _check_role(roles) -> None:
    if g.role not in roles:
        current_app.logger.warning(
            "Role %s denied on %s %s (needs %s)", g.role, request.method, request.path, ", ".join(roles)
        )
        raise AuthorizationError("Forbidden")


def protect_blueprint(bp, *, kiosk: bool = False, roles=None, tenant: bool = True) -> None:
    """
    Register the authentication + tenant guard for every route of a blueprint.

    MULTI-TENANT: Every tenant-scoped blueprint calls this once, so no route
    can forget the guard. After authenticating, any schoolId the client
    declared (path, JSON body or query string) must equal the session's
    school or the request is a 403.

    kiosk=True authenticates with the kiosk cookie instead of the user one.
    roles restricts the whole blueprint. tenant=False is for the cross-tenant
    superadmin API.
    """
    @bp.before_request
    def _guard():
        if request.method == "OPTIONS":
            return None

        if kiosk:
            load_kiosk_session()
        else:
            load_user_session()
            if roles:
                _check_role(roles)

        if tenant:
            enforce_request_tenant(g.school_id)
        return None


def rate_limit(name: str):
    """
    Fixed-window limit from config RATELIMIT_<name> = (max_requests, window_seconds),
    keyed by client ip and path.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if current_app.config.get("RATELIMIT_ENABLED", True):
                limit, window = current_app.config[f"RATELIMIT_{name}"]
                key = f"{request.remote_addr or 'unknown'}:{request.path}"
                allowed, retry_after = rate_limit_service.hit(key, limit, window)
                if not allowed:
                    current_app.logger.warning("Rate limit exceeded for %s", key)
                    raise RateLimitError("Too many requests, try again later", retryAfter=retry_after)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
