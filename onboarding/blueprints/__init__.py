"""
Employee Onboarding Platform
Blueprint registry and shared request helpers.
"""

from flask import request


def pagination_args(default_limit=50, max_limit=200):
    """Read limit/offset pagination from the query string.

    Query params:
        limit  — max items (default 50, capped at max_limit)
        offset — starting position (default 0)

    Returns:
        (limit, offset)
    """
    try:
        limit = min(max(int(request.args.get("limit", default_limit)), 1), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset


def json_body():
    """Return the request's JSON object, or None if the body is not a JSON object."""
    data = request.get_json(silent=True)
    if data is None and not request.get_data():
        return {}
    return data if isinstance(data, dict) else None


def register_blueprints(app):
    from onboarding.blueprints.assignment_bp import assignment_bp
    from onboarding.blueprints.auto_assign_bp import auto_assign_bp
    from onboarding.blueprints.checklist_bp import checklist_bp
    from onboarding.blueprints.health_bp import health_bp
    from onboarding.blueprints.notification_bp import notification_bp
    from onboarding.blueprints.progress_bp import progress_bp

    for bp in (checklist_bp, assignment_bp, progress_bp, auto_assign_bp, notification_bp, health_bp):
        app.register_blueprint(bp)
