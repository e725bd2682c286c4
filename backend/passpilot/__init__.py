# backend/passpilot/__init__.py
import logging

from flask import Flask, g, request
from werkzeug.exceptions import HTTPException

from .config import Config
from .extensions import db, migrate
from .responses import fail
from .validation import PassPilotError


MASKED_FIELDS = {"password", "currentPassword", "newPassword", "pin", "code"}


def _masked_body() -> dict | None:
    body = request.get_json(silent=True) if request.is_json else None
    if not isinstance(body, dict):
        return None
    return {k: ("***" if k in MASKED_FIELDS else v) for k, v in body.items()}


def register_error_handlers(app: Flask) -> None:
    """
    One envelope for every failure.

    - PassPilotError subclasses carry their own status and extra fields
    - HTTPException (unknown route, wrong method) keeps its status
    - Anything else is logged with request context and answered with a
      generic 500; the message is added as `detail` outside production
    """

    @app.errorhandler(PassPilotError)
    def handle_passpilot_error(e: PassPilotError):
        db.session.rollback()
        response, status = fail(e.message, e.status_code, **e.extra)
        if "retryAfter" in e.extra:
            response.headers["Retry-After"] = str(e.extra["retryAfter"])
        return response, status

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        return fail(e.description or e.name, e.code or 500)

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        db.session.rollback()
        user = getattr(g, "current_user", None)
        app.logger.exception(
            "Unhandled error on %s %s body=%s user=%s school=%s",
            request.method,
            request.path,
            _masked_body(),
            user.id if user is not None else None,
            getattr(g, "school_id", None),
        )
        extra = {}
        if app.config.get("PASSPILOT_ENV") != "production":
            extra["detail"] = str(e)
        return fail("Internal server error", 500, **extra)


def create_app(test_config: dict | None = None) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(Config)
    if test_config:
        app.config.update(test_config)

    app.logger.setLevel(getattr(logging, str(app.config.get("LOG_LEVEL", "INFO")).upper(), logging.INFO))

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.profile import profile_bp
    from .routes.passes import passes_bp
    from .routes.roster import roster_bp
    from .routes.reports import reports_bp
    from .routes.admin import admin_bp
    from .routes.superadmin import sa_bp
    from .routes.kiosk import kiosk_auth_bp, kiosk_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(profile_bp)
    app.register_blueprint(passes_bp)
    app.register_blueprint(roster_bp)
    app.register_blueprint(reports_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(sa_bp)
    app.register_blueprint(kiosk_auth_bp)
    app.register_blueprint(kiosk_bp)

    register_error_handlers(app)

    allowed_origins = {
        o.strip() for o in str(app.config.get("CORS_ALLOWED_ORIGINS") or "").split(",") if o.strip()
    }

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Headers"] = "Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    return app
