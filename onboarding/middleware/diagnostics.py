"""
Startup diagnostics — runs once when the Flask app starts.

Checks the database and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from onboarding.models import db

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup (inside app context)."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        table_count = "?"
        try:
            db.session.execute(db.text("SELECT 1"))
            table_count = len(sa_inspect(db.engine).get_table_names())
            if table_count == 0:
                issues.append("No tables found — run 'flask db upgrade'")
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        storage = app.config.get("REDIS_URL", "memory://")
        auth_enabled = str(app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  Employee Onboarding Platform — Startup Diagnostics         ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  Rate limits : {storage.split(':', 1)[0]:<46s}║
║  Auth        : {'ENABLED' if auth_enabled else 'DISABLED (X-User-Id)':<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
