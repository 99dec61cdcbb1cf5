"""
Checklist Progress Blueprint — completion, verification, reminders.

Endpoints (all under /api/v1/checklist-progress):
    PATCH  /<id>            Body: {is_completed: bool, notes?: str}
    PATCH  /<id>/verify     Body: {verification_status: "approved"|"rejected", verification_notes?}
    POST   /<id>/reminder   Body: {note: str}

State rules and role gates live in progress_service.
"""

import logging

from flask import Blueprint, jsonify

from onboarding.auth import current_actor_id
from onboarding.blueprints import json_body
from onboarding.services import progress_service
from onboarding.utils.errors import E, api_error, register_service_error_handlers

logger = logging.getLogger(__name__)

progress_bp = Blueprint("progress", __name__, url_prefix="/api/v1/checklist-progress")
register_service_error_handlers(progress_bp)


@progress_bp.route("/<int:progress_id>", methods=["PATCH"])
def update_progress(progress_id: int):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")
    completed = data.get("is_completed")
    if not isinstance(completed, bool):
        return api_error(E.VALIDATION_REQUIRED, "is_completed (boolean) is required")

    result = progress_service.set_completion(
        current_actor_id(), progress_id, completed, notes=data.get("notes"),
    )
    return jsonify(result), 200


@progress_bp.route("/<int:progress_id>/verify", methods=["PATCH"])
def verify_progress(progress_id: int):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")
    decision = data.get("verification_status") or data.get("decision")
    if not decision:
        return api_error(E.VALIDATION_REQUIRED, "verification_status is required")

    result = progress_service.verify(
        current_actor_id(), progress_id, decision,
        notes=data.get("verification_notes", data.get("notes")),
    )
    return jsonify(result), 200


@progress_bp.route("/<int:progress_id>/reminder", methods=["POST"])
def send_reminder(progress_id: int):
    data = json_body()
    if data is None:
        return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")
    note = data.get("note")
    if not isinstance(note, str) or not note.strip():
        return api_error(E.VALIDATION_REQUIRED, "note is required")

    notif = progress_service.send_reminder(current_actor_id(), progress_id, note)
    return jsonify(notif), 201
