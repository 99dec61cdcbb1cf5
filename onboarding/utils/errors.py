"""Standardised API error responses.

Usage
-----
    from onboarding.utils.errors import api_error, E

    return api_error(E.NOT_FOUND, "Checklist assignment not found")
    return api_error(E.VALIDATION_REQUIRED, "template_id is required")
    return api_error(E.VALIDATION_RULE, "Invalid stage", details={"stage": "invalid"})
"""

from __future__ import annotations

from flask import jsonify

from onboarding.core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from onboarding.models import db


# ── Error code constants ──────────────────────────────────────────────
class E:
    """Machine-readable error code constants (``ERR_`` prefix)."""

    # Malformed request – HTTP 400
    VALIDATION_REQUIRED = "ERR_VALIDATION_REQUIRED"
    VALIDATION_INVALID = "ERR_VALIDATION_INVALID"

    # Business-rule validation – HTTP 422
    VALIDATION_RULE = "ERR_VALIDATION_RULE"

    # Identity – HTTP 401
    UNAUTHENTICATED = "ERR_UNAUTHENTICATED"

    # Permissions – HTTP 403
    FORBIDDEN = "ERR_FORBIDDEN"

    # Not-found – HTTP 404
    NOT_FOUND = "ERR_NOT_FOUND"

    # Conflict – HTTP 409
    CONFLICT = "ERR_CONFLICT"

    # Server – HTTP 500
    DATABASE = "ERR_DATABASE"
    INTERNAL = "ERR_INTERNAL"


# ── Default HTTP status mapping ───────────────────────────────────────
_DEFAULT_STATUS: dict[str, int] = {
    E.VALIDATION_REQUIRED: 400,
    E.VALIDATION_INVALID: 400,
    E.VALIDATION_RULE: 422,
    E.UNAUTHENTICATED: 401,
    E.FORBIDDEN: 403,
    E.NOT_FOUND: 404,
    E.CONFLICT: 409,
    E.DATABASE: 500,
    E.INTERNAL: 500,
}


def api_error(
    code: str,
    message: str,
    *,
    status: int | None = None,
    details: dict | None = None,
):
    """Return a standard JSON error response.

    Parameters
    ----------
    code : str
        Machine-readable error code (use ``E.*`` constants).
    message : str
        Human-readable explanation for developers / UI.
    status : int, optional
        HTTP status override.  Falls back to ``_DEFAULT_STATUS[code]``,
        then to ``400``.
    details : dict, optional
        Field-level breakdown.

    Returns
    -------
    tuple[Response, int]
        ``(jsonify(body), http_status)`` – drop-in for Flask views.
    """

    http_status = status or _DEFAULT_STATUS.get(code, 400)

    body: dict = {
        "error": message,
        "code": code,
    }
    if details:
        body["details"] = details

    return jsonify(body), http_status


def register_service_error_handlers(bp):
    """Map the service exception hierarchy onto ``bp``.

    Every checklist blueprint calls this once after creation. Pending
    session changes are rolled back before the error response goes out.
    """

    @bp.errorhandler(NotFoundError)
    def _not_found(exc):
        db.session.rollback()
        return api_error(E.NOT_FOUND, str(exc))

    @bp.errorhandler(ValidationError)
    def _validation(exc):
        db.session.rollback()
        return api_error(E.VALIDATION_RULE, str(exc), details=exc.details)

    @bp.errorhandler(ConflictError)
    def _conflict(exc):
        db.session.rollback()
        return api_error(E.CONFLICT, str(exc))

    @bp.errorhandler(ForbiddenError)
    def _forbidden(exc):
        db.session.rollback()
        return api_error(E.FORBIDDEN, str(exc))

    return bp
