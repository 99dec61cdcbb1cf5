"""
Employee Onboarding Platform
Flask Application Factory.

Usage:
    from onboarding import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

from onboarding.auth import init_auth
from onboarding.config import config
from onboarding.middleware.diagnostics import run_startup_diagnostics
from onboarding.middleware.jwt_auth import init_jwt_middleware
from onboarding.middleware.logging_config import configure_logging
from onboarding.middleware.rate_limiter import init_rate_limits
from onboarding.middleware.timing import init_request_timing
from onboarding.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT first, then the identity check that reads g.jwt_user_id ─────
    init_jwt_middleware(app)
    init_auth(app)

    # ── Request guards (input length) ────────────────────────────────────
    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from onboarding.models import checklist as _checklist_models        # noqa: F401
    from onboarding.models import directory as _directory_models        # noqa: F401
    from onboarding.models import notification as _notification_models  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "testing":
        with app.app_context():
            os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from onboarding.blueprints import register_blueprints
    register_blueprints(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("run-auto-assign")
    @click.option("--user-id", type=int, default=None, help="Only match this user.")
    def run_auto_assign_cmd(user_id):
        """Run the auto-assignment matcher for one or all active users."""
        from onboarding.services import auto_assign_service

        if user_id is not None:
            results = {user_id: auto_assign_service.run_for_user(user_id)}
        else:
            results = auto_assign_service.run_for_all()
        assigned = sum(1 for rs in results.values() for r in rs if r["result"] == "assigned")
        skipped = sum(1 for rs in results.values() for r in rs if r["result"] == "skipped")
        click.echo(f"Auto-assignment: {len(results)} user(s), {assigned} assigned, {skipped} skipped.")

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        return {"error": "Not found", "code": "ERR_NOT_FOUND", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(Exception)
    def unhandled(e):
        if isinstance(e, HTTPException):
            return e
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        db.session.rollback()
        return {"error": "Internal server error", "code": "ERR_INTERNAL"}, 500

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
