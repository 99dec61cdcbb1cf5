"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in onboarding/__init__.py with no default
limits; this module applies granular limits per route category.

Usage:
    from onboarding.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

WRITE_LIMIT = "60/minute"
READ_LIMIT = "200/minute"
MATCHER_LIMIT = "10/minute"


def actor_or_ip_key():
    """Rate-limit key: the acting user when known, else the remote IP."""
    actor_id = getattr(g, "actor_id", None)
    if actor_id:
        return f"user:{actor_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per acting user, falling back to remote IP):
        - Auto-assign matcher:       10/minute
        - Checklist write surfaces:  60/minute
        - Inbox reads:               200/minute
        - Health check:              exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    bp = app.blueprints.get("auto_assign")
    if bp:
        limiter.limit(MATCHER_LIMIT, key_func=actor_or_ip_key)(bp)

    for bp_name in ("checklist", "assignment", "progress"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(WRITE_LIMIT, key_func=actor_or_ip_key)(bp)

    bp = app.blueprints.get("notification_bp")
    if bp:
        limiter.limit(READ_LIMIT, key_func=actor_or_ip_key)(bp)

    bp = app.blueprints.get("health_bp")
    if bp:
        limiter.exempt(bp)

    app.logger.info(
        "Rate limiter configured — matcher: %s, write: %s, read: %s",
        MATCHER_LIMIT, WRITE_LIMIT, READ_LIMIT,
    )
