"""
Employee Onboarding Platform
Request identity middleware.

Every /api/v1/* request (except health) must carry an acting user:

    1. JWT (Authorization: Bearer <token>)      →  g.jwt_user_id (see middleware/jwt_auth)
    2. X-User-Id header, only while auth is off  →  development / tests

The resolved id lands in ``g.actor_id``; blueprints read it through
``current_actor_id()`` and pass it to the services, which decide what the
actor may do.

Configuration:
    API_AUTH_ENABLED  — set to "false" to accept X-User-Id (development only)
"""

import logging
import os

from flask import current_app, g, request

from onboarding.utils.errors import E, api_error

logger = logging.getLogger(__name__)

_FALSEY = ("false", "0", "no", "off")


def _is_auth_enabled() -> bool:
    """Check whether authentication is enabled (env var or app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in _FALSEY
    try:
        return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in _FALSEY
    except RuntimeError:
        # Outside app context
        return True


def _header_user_id() -> int | None:
    raw = request.headers.get("X-User-Id", "").strip()
    if not raw.isdigit():
        return None
    return int(raw)


def current_actor_id() -> int | None:
    return getattr(g, "actor_id", None)


# ── CSRF protection for API ──────────────────────────────────────────────────

def _check_content_type():
    """
    For state-changing requests with a body, require
    Content-Type: application/json. HTML forms cannot send it, which makes
    this a lightweight CSRF mitigation.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return api_error(
                E.VALIDATION_INVALID,
                "Content-Type must be application/json for state-changing requests",
                status=415,
            )
    return None


# ── before_request hook installer ────────────────────────────────────────────

def init_auth(app):
    """
    Install the identity check on the Flask app.

    Must be registered after init_jwt_middleware so g.jwt_user_id is set.
    """
    @app.before_request
    def _before_request_auth():
        g.actor_id = None
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path == "/api/v1/health" or request.path.startswith("/api/v1/health/"):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        actor_id = getattr(g, "jwt_user_id", None)
        if actor_id is None and not _is_auth_enabled():
            actor_id = _header_user_id()

        if actor_id is None:
            return api_error(E.UNAUTHENTICATED, "Authentication required. Provide a Bearer token.")

        g.actor_id = actor_id
        return None

    logger.info("Auth middleware installed (enabled=%s)", _is_auth_enabled())
