"""
Checklist Assignment Blueprint.

Endpoints (all under /api/v1/checklist-assignments):
    POST   /                          Body: {user_id, template_id, due_date?}
    POST   /bulk                      Body: {template_id, user_ids: [...], due_date?}
                                      Returns 200 with one result per user.
    GET    /<id>                      assignment + progress items + derived fields
    DELETE /<id>
    GET    /user/<user_id>
    GET    /department/<department>
    GET    /team/<team_id>
    GET    /analytics/department/<department>
    GET    /analytics/team/<team_id>
"""

import logging

from flask import Blueprint, jsonify

from onboarding.auth import current_actor_id
from onboarding.blueprints import json_body
from onboarding.services import analytics_service, assignment_service
from onboarding.utils.errors import E, api_error, register_service_error_handlers
from onboarding.utils.helpers import parse_date_input, parse_int

logger = logging.getLogger(__name__)

assignment_bp = Blueprint("assignment", __name__, url_prefix="/api/v1/checklist-assignments")
register_service_error_handlers(assignment_bp)


def _parse_common(data):
    """Return (template_id, due_date, error_response)."""
    template_id = parse_int(data.get("template_id"))
    if template_id is None:
        return None, None, api_error(E.VALIDATION_REQUIRED, "template_id is required")
    try:
        due_date = parse_date_input(data.get("due_date"))
    except ValueError as exc:
        return None, None, api_error(E.VALIDATION_INVALID, str(exc), details={"due_date": "invalid"})
    return template_id, due_date, None


@assignment_bp.route("", methods=["POST"])
def create_assignment():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")
    user_id = parse_int(data.get("user_id"))
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")
    template_id, due_date, err = _parse_common(data)
    if err:
        return err

    assignment = assignment_service.assign(current_actor_id(), user_id, template_id, due_date)
    return jsonify(assignment), 201


@assignment_bp.route("/bulk", methods=["POST"])
def bulk_create_assignments():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")
    user_ids = data.get("user_ids")
    if not isinstance(user_ids, list) or not user_ids:
        return api_error(E.VALIDATION_REQUIRED, "user_ids must be a non-empty list")
    template_id, due_date, err = _parse_common(data)
    if err:
        return err

    results = assignment_service.bulk_assign(current_actor_id(), template_id, user_ids, due_date)
    succeeded = sum(1 for r in results if r["ok"])
    return jsonify({
        "results": results,
        "succeeded": succeeded,
        "failed": len(results) - succeeded,
    }), 200


@assignment_bp.route("/<int:assignment_id>", methods=["GET"])
def get_assignment(assignment_id: int):
    return jsonify(assignment_service.get_assignment_detail(current_actor_id(), assignment_id)), 200


@assignment_bp.route("/<int:assignment_id>", methods=["DELETE"])
def delete_assignment(assignment_id: int):
    assignment_service.delete_assignment(current_actor_id(), assignment_id)
    return jsonify({"deleted": True, "id": assignment_id}), 200


# ── Scoped lists ───────────────────────────────────────────────────────────────


@assignment_bp.route("/user/<int:user_id>", methods=["GET"])
def list_user_assignments(user_id: int):
    items = assignment_service.list_for_user(current_actor_id(), user_id)
    return jsonify({"items": items, "total": len(items)}), 200


@assignment_bp.route("/department/<department>", methods=["GET"])
def list_department_assignments(department: str):
    items = assignment_service.list_for_department(current_actor_id(), department)
    return jsonify({"items": items, "total": len(items)}), 200


@assignment_bp.route("/team/<team_id>", methods=["GET"])
def list_team_assignments(team_id: str):
    items = assignment_service.list_for_team(current_actor_id(), team_id)
    return jsonify({"items": items, "total": len(items)}), 200


# ── Analytics ──────────────────────────────────────────────────────────────────


@assignment_bp.route("/analytics/department/<department>", methods=["GET"])
def department_analytics(department: str):
    return jsonify(analytics_service.department_analytics(current_actor_id(), department)), 200


@assignment_bp.route("/analytics/team/<team_id>", methods=["GET"])
def team_analytics(team_id: str):
    return jsonify(analytics_service.team_analytics(current_actor_id(), team_id)), 200
