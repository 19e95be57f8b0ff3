import logging
from datetime import timedelta

from flask import Flask, g, request, session
from dotenv import load_dotenv

from app.ecclesia.cache import init_view_cache
from app.ecclesia.config import load_config
from app.ecclesia.db import dispose_engine_on_fork, init_db, missing_schema, teardown_db_session
from app.ecclesia.errors import ActionError, ErrorKind
from app.ecclesia.responses import fail
from app.ecclesia.security import csrf_failure
from app.ecclesia.routes import bp as routes_bp
from app.ecclesia.auth import bp as auth_bp, load_current_user
from app.ecclesia.modules.organizations.admin import bp as organizations_bp
from app.ecclesia.modules.accounts.admin import bp as accounts_bp
from app.ecclesia.modules.areas.admin import bp as areas_bp

# Tables and columns the code expects; anything missing means `alembic upgrade head` was not run.
EXPECTED_SCHEMA: dict[str, tuple[str, ...]] = {
    "profiles": ("email", "password_hash", "role", "organization_id", "location_id", "email_verified"),
    "user_roles": ("user_id", "role"),
    "organizations": ("slug",),
    "locations": ("organization_id", "is_main_campus", "pastor_id"),
    "areas": ("location_id", "created_by"),
    "area_members": ("area_id", "user_id", "is_leader", "added_by"),
    "audit_events": ("action", "client_ip"),
}


def _is_health_path() -> bool:
    return request.path.startswith(("/static/", "/health", "/healthz"))


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    @app.before_request
    def _csrf_guard():
        if _is_health_path():
            return None
        session.permanent = True
        err = csrf_failure()
        if err is not None:
            app.logger.warning("CSRF rejected: endpoint=%s", request.endpoint)
            return fail(err)
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    engine = init_db(app)
    dispose_engine_on_fork(app)
    init_view_cache(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(organizations_bp)
    app.register_blueprint(accounts_bp, url_prefix="/admin")
    app.register_blueprint(areas_bp, url_prefix="/admin")

    def _load_user_wrapper():
        if _is_health_path():
            g.current_user = None
            return None
        return load_current_user()

    app.before_request(_load_user_wrapper)
    app.teardown_appcontext(teardown_db_session)

    # Schema health runs on the first real request, not at import: tests and
    # release scripts create the schema after the app exists.
    app.config.setdefault("_schema_health_missing", None)

    @app.before_request
    def _schema_health_guardrail():
        if _is_health_path():
            return None
        missing = app.config["_schema_health_missing"]
        if missing is None:
            try:
                missing = missing_schema(engine, EXPECTED_SCHEMA)
            except Exception as e:
                app.logger.exception("Schema health check failed: %s", e)
                missing = []
            if missing:
                app.logger.error("DB schema out of date; run `alembic upgrade head`. Missing: %s", ", ".join(missing))
            app.config["_schema_health_missing"] = missing
        if not missing:
            return None
        return fail(ActionError(ErrorKind.DATA_STORE_ERROR, "Database schema is out of date. Missing: " + ", ".join(missing)))

    def _error(kind: ErrorKind, message: str, status: int):
        return fail(ActionError(kind, message, status=status))

    @app.errorhandler(400)
    def _err_400(e):  # type: ignore[no-redef]
        return _error(ErrorKind.VALIDATION_FAILED, "Bad request.", 400)

    @app.errorhandler(401)
    def _err_401(e):  # type: ignore[no-redef]
        return _error(ErrorKind.UNAUTHORIZED, "Login required.", 401)

    @app.errorhandler(403)
    def _err_403(e):  # type: ignore[no-redef]
        app.logger.warning("Forbidden: path=%s request_id=%s", request.path, getattr(g, "request_id", None))
        return _error(ErrorKind.UNAUTHORIZED, "Not authorized.", 403)

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return _error(ErrorKind.NOT_FOUND, "Not found.", 404)

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return _error(ErrorKind.VALIDATION_FAILED, "Method not allowed.", 405)

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        return _error(ErrorKind.VALIDATION_FAILED, "Request body too large.", 413)

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure the stack trace reaches the platform logs.
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return _error(ErrorKind.DATA_STORE_ERROR, "Internal server error.", 500)

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
