"""
Employee Onboarding Platform
Notification inbox Blueprint.

Every route works on the acting user's own notifications:
    GET  /api/v1/notifications                ?unread_only=true&kind=&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all

Rows are created by the checklist workflow through NotificationService;
there is no public create endpoint.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from onboarding.auth import current_actor_id
from onboarding.blueprints import pagination_args
from onboarding.services.notification import NotificationService
from onboarding.utils.errors import register_service_error_handlers
from onboarding.utils.helpers import parse_bool_arg

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notification_bp", __name__, url_prefix="/api/v1")
register_service_error_handlers(notification_bp)


@notification_bp.route("/notifications", methods=["GET"])
def list_notifications():
    limit, offset = pagination_args()
    items, total = NotificationService.list_for_recipient(
        current_actor_id(),
        unread_only=parse_bool_arg(request.args.get("unread_only")),
        kind=request.args.get("kind"),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "limit": limit,
        "offset": offset,
    }), 200


@notification_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_actor_id())}), 200


@notification_bp.route("/notifications/<int:notification_id>/read", methods=["POST"])
def mark_read(notification_id: int):
    notif = NotificationService.mark_read(notification_id, current_actor_id())
    return jsonify(notif.to_dict()), 200


@notification_bp.route("/notifications/read-all", methods=["POST"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_actor_id())
    return jsonify({"marked_read": count}), 200
