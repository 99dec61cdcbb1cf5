"""
Checklist Template Blueprint.

Endpoints (all under /api/v1):
    GET    /checklists                        ?program_type=&stage=
    POST   /checklists                        Body: {title, description, program_type, stage,
                                                     auto_assign, requires_verification, items?}
    GET    /checklists/<id>                   template + ordered items + rule
    PUT    /checklists/<id>                   metadata only
    DELETE /checklists/<id>                   ?cascade=true to drop completed assignments
    GET    /checklists/<id>/items
    POST   /checklists/<id>/items             Body: {title, phase, controlled_by, order_index?, ...}
    PUT    /checklist-items/<id>
    DELETE /checklist-items/<id>
    GET    /checklists/<id>/auto-assign-rule
    PUT    /checklists/<id>/auto-assign-rule  Body: {departments, program_types, stages,
                                                     due_in_days, auto_notify}
    GET    /checklists/report/by-stage

Layer contract:
    - Blueprint: parse input, call service, return JSON.
    - NO db.session calls here; HR checks live in the services.
"""

import logging

from flask import Blueprint, jsonify, request

from onboarding.auth import current_actor_id
from onboarding.blueprints import json_body
from onboarding.services import auto_assign_service, template_service
from onboarding.utils.errors import E, api_error, register_service_error_handlers
from onboarding.utils.helpers import parse_bool_arg

logger = logging.getLogger(__name__)

checklist_bp = Blueprint("checklist", __name__, url_prefix="/api/v1")
register_service_error_handlers(checklist_bp)


def _invalid_body():
    return api_error(E.VALIDATION_INVALID, "Request body must be a JSON object.")


# ── Templates ──────────────────────────────────────────────────────────────────


@checklist_bp.route("/checklists", methods=["GET"])
def list_checklists():
    items = template_service.list_templates(
        program_type=request.args.get("program_type"),
        stage=request.args.get("stage"),
    )
    return jsonify({"items": items, "total": len(items)}), 200


@checklist_bp.route("/checklists", methods=["POST"])
def create_checklist():
    data = json_body()
    if data is None:
        return _invalid_body()
    title = data.get("title")
    if not isinstance(title, str) or not title.strip():
        return api_error(E.VALIDATION_REQUIRED, "title is required")

    tpl = template_service.create_template(current_actor_id(), data)
    return jsonify(tpl), 201


@checklist_bp.route("/checklists/<int:template_id>", methods=["GET"])
def get_checklist(template_id: int):
    return jsonify(template_service.get_template(template_id)), 200


@checklist_bp.route("/checklists/<int:template_id>", methods=["PUT"])
def update_checklist(template_id: int):
    data = json_body()
    if data is None:
        return _invalid_body()
    tpl = template_service.update_template(current_actor_id(), template_id, data)
    return jsonify(tpl), 200


@checklist_bp.route("/checklists/<int:template_id>", methods=["DELETE"])
def delete_checklist(template_id: int):
    cascade = parse_bool_arg(request.args.get("cascade"))
    template_service.delete_template(current_actor_id(), template_id, cascade=cascade)
    return jsonify({"deleted": True, "id": template_id}), 200


@checklist_bp.route("/checklists/report/by-stage", methods=["GET"])
def checklists_by_stage():
    return jsonify({"items": template_service.count_by_stage()}), 200


# ── Items ──────────────────────────────────────────────────────────────────────


@checklist_bp.route("/checklists/<int:template_id>/items", methods=["GET"])
def list_checklist_items(template_id: int):
    items = template_service.list_items(template_id)
    return jsonify({"items": items, "total": len(items)}), 200


@checklist_bp.route("/checklists/<int:template_id>/items", methods=["POST"])
def add_checklist_item(template_id: int):
    data = json_body()
    if data is None:
        return _invalid_body()
    item = template_service.add_item(current_actor_id(), template_id, data)
    return jsonify(item), 201


@checklist_bp.route("/checklist-items/<int:item_id>", methods=["PUT"])
def update_checklist_item(item_id: int):
    data = json_body()
    if data is None:
        return _invalid_body()
    return jsonify(template_service.update_item(current_actor_id(), item_id, data)), 200


@checklist_bp.route("/checklist-items/<int:item_id>", methods=["DELETE"])
def delete_checklist_item(item_id: int):
    template_service.delete_item(current_actor_id(), item_id)
    return jsonify({"deleted": True, "id": item_id}), 200


# ── Auto-assignment rule ───────────────────────────────────────────────────────


@checklist_bp.route("/checklists/<int:template_id>/auto-assign-rule", methods=["GET"])
def get_auto_assign_rule(template_id: int):
    return jsonify({"template_id": template_id, "rule": auto_assign_service.get_rule(template_id)}), 200


@checklist_bp.route("/checklists/<int:template_id>/auto-assign-rule", methods=["PUT"])
def set_auto_assign_rule(template_id: int):
    data = json_body()
    if data is None:
        return _invalid_body()
    rule = auto_assign_service.set_rule(current_actor_id(), template_id, data)
    return jsonify({"template_id": template_id, "rule": rule}), 200
