"""
Auto-Assignment Blueprint.

    POST /api/v1/auto-assign/run   Body: {user_id}

HR-only; runs the rule matcher for one employee and returns per-template
results (assigned / skipped).
"""

import logging

from flask import Blueprint, jsonify

from onboarding.auth import current_actor_id
from onboarding.blueprints import json_body
from onboarding.services import auto_assign_service, directory_service
from onboarding.utils.errors import E, api_error, register_service_error_handlers
from onboarding.utils.helpers import parse_int

logger = logging.getLogger(__name__)

auto_assign_bp = Blueprint("auto_assign", __name__, url_prefix="/api/v1/auto-assign")
register_service_error_handlers(auto_assign_bp)


@auto_assign_bp.route("/run", methods=["POST"])
def run_auto_assign():
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")
    user_id = parse_int(data.get("user_id"))
    if user_id is None:
        return api_error(E.VALIDATION_REQUIRED, "user_id is required")

    actor = directory_service.resolve_actor(current_actor_id())
    directory_service.require_hr(actor, "run auto-assignment")

    results = auto_assign_service.run_for_user(user_id)
    return jsonify({"user_id": user_id, "results": results}), 200
